"""
Sync Schemas
Models for per-file connector sync requests and job status
"""
from datetime import datetime
from typing import Literal, Optional

from pydantic import Field

from app.models.records import ConnectorType, SyncJob, SyncState
from app.models.schemas.base import APIModel


class SyncFileRequest(APIModel):
    """
    fileId is either the id of a listed connector file (a sync job id) or,
    when connector is given, the external reference of the file to sync
    (Drive file id, Notion page id, "owner/repo[@branch]:path", URL).
    """
    file_id: str = Field(..., min_length=1)
    action: Literal["sync"] = "sync"
    connector: Optional[ConnectorType] = None
    name: Optional[str] = Field(None, max_length=500)


class SyncJobResponse(APIModel):
    job_id: str
    state: SyncState
    connector: ConnectorType
    external_ref: str
    title: Optional[str] = None
    attempt: int
    last_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    document_id: Optional[str] = None
    started_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: SyncJob) -> "SyncJobResponse":
        return cls(
            job_id=job.job_id,
            state=job.state,
            connector=job.connector_type,
            external_ref=job.external_ref,
            title=job.title,
            attempt=job.attempt,
            last_error=job.last_error,
            last_synced_at=job.last_synced_at,
            document_id=job.document_id,
            started_at=job.started_at,
            deadline_at=job.deadline_at,
        )
