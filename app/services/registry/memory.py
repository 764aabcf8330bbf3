"""
In-Memory Registry
Process-local registry for local development and tests

Records are copied on the way in and out so callers never hold a reference
to stored state. Each method body runs without awaiting, which makes every
check-and-write atomic on the event loop.
"""
from typing import Dict, List, Optional, Tuple

from app.models.records import (
    ConnectorType,
    Credential,
    Document,
    DocumentStatus,
    SyncJob,
    SyncState,
)
from app.services.registry.base import SyncRegistry


class InMemoryRegistry(SyncRegistry):

    def __init__(self):
        self._credentials: Dict[Tuple[str, ConnectorType], Credential] = {}
        self._jobs: Dict[Tuple[str, str], SyncJob] = {}
        self._documents: Dict[Tuple[str, str], Document] = {}

    # Credentials

    async def _get_credential(self, owner_id, connector_type):
        credential = self._credentials.get((owner_id, connector_type))
        return credential.model_copy(deep=True) if credential else None

    async def _put_credential(self, credential):
        self._credentials[(credential.owner_id, credential.connector_type)] = credential.model_copy(deep=True)
        return credential

    async def _delete_credential(self, owner_id, connector_type):
        return self._credentials.pop((owner_id, connector_type), None) is not None

    async def _list_credentials(self, owner_id):
        return [
            credential.model_copy(deep=True)
            for (owner, _), credential in self._credentials.items()
            if owner == owner_id
        ]

    # Sync jobs

    async def _get_sync_job(self, owner_id, job_id):
        job = self._jobs.get((owner_id, job_id))
        return job.model_copy(deep=True) if job else None

    def _find(self, owner_id: str, connector_type: ConnectorType, external_ref: str) -> Optional[SyncJob]:
        for (owner, _), job in self._jobs.items():
            if owner == owner_id and job.connector_type == connector_type and job.external_ref == external_ref:
                return job
        return None

    async def _find_sync_job(self, owner_id, connector_type, external_ref):
        job = self._find(owner_id, connector_type, external_ref)
        return job.model_copy(deep=True) if job else None

    async def _create_sync_job(self, job):
        existing = self._find(job.owner_id, job.connector_type, job.external_ref)
        if existing is not None:
            return existing.model_copy(deep=True)
        self._jobs[(job.owner_id, job.job_id)] = job.model_copy(deep=True)
        return job

    async def _compare_and_set_sync_job(self, job, expected_state, expected_attempt):
        stored = self._jobs.get((job.owner_id, job.job_id))
        if stored is None or stored.state != expected_state or stored.attempt != expected_attempt:
            return False
        self._jobs[(job.owner_id, job.job_id)] = job.model_copy(deep=True)
        return True

    async def _list_sync_jobs(self, owner_id, connector_type, state, limit):
        jobs = [
            job for (owner, _), job in self._jobs.items()
            if owner == owner_id
            and (connector_type is None or job.connector_type == connector_type)
            and (state is None or job.state == state)
        ]
        jobs.sort(key=lambda j: j.updated_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs[:limit]]

    # Documents

    async def _get_document(self, owner_id, document_id):
        document = self._documents.get((owner_id, document_id))
        return document.model_copy(deep=True) if document else None

    async def _put_document(self, document):
        self._documents[(document.owner_id, document.document_id)] = document.model_copy(deep=True)
        return document

    async def _delete_document(self, owner_id, document_id):
        return self._documents.pop((owner_id, document_id), None) is not None

    async def _list_documents(self, owner_id, status, source, limit):
        documents = [
            document for (owner, _), document in self._documents.items()
            if owner == owner_id
            and (status is None or document.status == status)
            and (source is None or document.source == source)
        ]
        documents.sort(key=lambda d: d.created_at, reverse=True)
        if limit is not None:
            documents = documents[:limit]
        return [document.model_copy(deep=True) for document in documents]
