"""
Connector File Projection
Read model of sync jobs as the connector file list shown to users

The job is the source of truth: a file shows 'syncing' as soon as
request_sync returns and reconciles to 'synced' or 'failed' from the job.
"""
from collections import Counter
from typing import Any, Dict, Iterable, List

from app.models.records import SyncJob
from app.models.schemas.connector import ConnectorSyncFile


def to_connector_file(job: SyncJob) -> ConnectorSyncFile:
    return ConnectorSyncFile(
        id=job.job_id,
        name=job.title or job.external_ref,
        connector=job.connector_type,
        status=job.state,
        last_synced_at=job.last_synced_at,
        error=job.last_error,
        external_ref=job.external_ref,
        document_id=job.document_id,
        attempt=job.attempt,
    )


def connector_file_stats(jobs: Iterable[SyncJob]) -> Dict[str, Any]:
    jobs = list(jobs)
    return {
        "total": len(jobs),
        "by_connector": dict(Counter(job.connector_type.value for job in jobs)),
        "by_status": dict(Counter(job.state.value for job in jobs)),
    }


def project_jobs(jobs: Iterable[SyncJob]) -> List[ConnectorSyncFile]:
    return [to_connector_file(job) for job in jobs]
