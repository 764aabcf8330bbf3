"""
Sync Registry Interface
Owner-scoped storage of credentials, sync jobs and documents

Every read takes an owner_id and every write carries one; both are rejected
when it is missing. Sync job transitions go through compare_and_set_sync_job
so concurrent outcome/timeout/retry writers cannot both win.
"""
import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from app.core.errors import ValidationFailure
from app.models.records import (
    ConnectorType,
    Credential,
    Document,
    DocumentStatus,
    SyncJob,
    SyncState,
    utcnow,
)

logger = logging.getLogger(__name__)


def require_owner(owner_id: Optional[str], record: str = "record") -> str:
    if not owner_id or not str(owner_id).strip():
        raise ValidationFailure(f"{record} requires a non-empty owner_id")
    return owner_id


class SyncRegistry(ABC):
    """
    Public methods validate ownership and stamp updated_at, then delegate to
    the backend-specific underscore methods.
    """

    # ============================================================================
    # CREDENTIALS (keyed by owner_id + connector_type)
    # ============================================================================

    async def get_credential(self, owner_id: str, connector_type: ConnectorType) -> Optional[Credential]:
        require_owner(owner_id, "Credential lookup")
        return await self._get_credential(owner_id, ConnectorType(connector_type))

    async def put_credential(self, credential: Credential) -> Credential:
        require_owner(credential.owner_id, "Credential")
        credential = credential.model_copy(update={"updated_at": utcnow()})
        return await self._put_credential(credential)

    async def delete_credential(self, owner_id: str, connector_type: ConnectorType) -> bool:
        require_owner(owner_id, "Credential delete")
        return await self._delete_credential(owner_id, ConnectorType(connector_type))

    async def list_credentials(self, owner_id: str) -> List[Credential]:
        require_owner(owner_id, "Credential list")
        return await self._list_credentials(owner_id)

    # ============================================================================
    # SYNC JOBS (keyed by owner_id + job_id, unique per owner + connector + ref)
    # ============================================================================

    async def get_sync_job(self, owner_id: str, job_id: str) -> Optional[SyncJob]:
        require_owner(owner_id, "SyncJob lookup")
        return await self._get_sync_job(owner_id, job_id)

    async def find_sync_job(
        self,
        owner_id: str,
        connector_type: ConnectorType,
        external_ref: str
    ) -> Optional[SyncJob]:
        require_owner(owner_id, "SyncJob lookup")
        return await self._find_sync_job(owner_id, ConnectorType(connector_type), external_ref)

    async def create_sync_job(self, job: SyncJob) -> SyncJob:
        """Insert the job unless one exists for its key; return the stored job."""
        require_owner(job.owner_id, "SyncJob")
        return await self._create_sync_job(job)

    async def compare_and_set_sync_job(
        self,
        job: SyncJob,
        expected_state: SyncState,
        expected_attempt: int
    ) -> bool:
        """Write job only if the stored record is still (expected_state, expected_attempt)."""
        require_owner(job.owner_id, "SyncJob")
        job = job.model_copy(update={"updated_at": utcnow()})
        return await self._compare_and_set_sync_job(job, SyncState(expected_state), expected_attempt)

    async def list_sync_jobs(
        self,
        owner_id: str,
        connector_type: Optional[ConnectorType] = None,
        state: Optional[SyncState] = None,
        limit: int = 100
    ) -> List[SyncJob]:
        require_owner(owner_id, "SyncJob list")
        return await self._list_sync_jobs(owner_id, connector_type, state, limit)

    # ============================================================================
    # DOCUMENTS (keyed by owner_id + document_id)
    # ============================================================================

    async def get_document(self, owner_id: str, document_id: str) -> Optional[Document]:
        require_owner(owner_id, "Document lookup")
        return await self._get_document(owner_id, document_id)

    async def put_document(self, document: Document) -> Document:
        require_owner(document.owner_id, "Document")
        document = document.model_copy(update={"updated_at": utcnow()})
        return await self._put_document(document)

    async def delete_document(self, owner_id: str, document_id: str) -> bool:
        require_owner(owner_id, "Document delete")
        return await self._delete_document(owner_id, document_id)

    async def list_documents(
        self,
        owner_id: str,
        status: Optional[DocumentStatus] = None,
        source: Optional[ConnectorType] = None,
        limit: Optional[int] = None
    ) -> List[Document]:
        """Newest first."""
        require_owner(owner_id, "Document list")
        return await self._list_documents(owner_id, status, source, limit)

    # ============================================================================
    # BACKEND HOOKS
    # ============================================================================

    @abstractmethod
    async def _get_credential(self, owner_id: str, connector_type: ConnectorType) -> Optional[Credential]: ...

    @abstractmethod
    async def _put_credential(self, credential: Credential) -> Credential: ...

    @abstractmethod
    async def _delete_credential(self, owner_id: str, connector_type: ConnectorType) -> bool: ...

    @abstractmethod
    async def _list_credentials(self, owner_id: str) -> List[Credential]: ...

    @abstractmethod
    async def _get_sync_job(self, owner_id: str, job_id: str) -> Optional[SyncJob]: ...

    @abstractmethod
    async def _find_sync_job(self, owner_id: str, connector_type: ConnectorType, external_ref: str) -> Optional[SyncJob]: ...

    @abstractmethod
    async def _create_sync_job(self, job: SyncJob) -> SyncJob: ...

    @abstractmethod
    async def _compare_and_set_sync_job(self, job: SyncJob, expected_state: SyncState, expected_attempt: int) -> bool: ...

    @abstractmethod
    async def _list_sync_jobs(
        self,
        owner_id: str,
        connector_type: Optional[ConnectorType],
        state: Optional[SyncState],
        limit: int
    ) -> List[SyncJob]: ...

    @abstractmethod
    async def _get_document(self, owner_id: str, document_id: str) -> Optional[Document]: ...

    @abstractmethod
    async def _put_document(self, document: Document) -> Document: ...

    @abstractmethod
    async def _delete_document(self, owner_id: str, document_id: str) -> bool: ...

    @abstractmethod
    async def _list_documents(
        self,
        owner_id: str,
        status: Optional[DocumentStatus],
        source: Optional[ConnectorType],
        limit: Optional[int]
    ) -> List[Document]: ...
