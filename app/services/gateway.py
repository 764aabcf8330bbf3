"""
Ingestion Gateway
Identity-bound entry points for documents, connector sync and search

SECURITY:
- Every operation requires a resolved Identity (Unauthenticated otherwise)
- The caller's owner_id is injected into every read filter and write payload
- Another owner's records are indistinguishable from missing ones (NotFound)
"""
import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.errors import (
    ExtractionFailure,
    NotFound,
    TransientUnavailable,
    Unauthenticated,
    ValidationFailure,
)
from app.models.records import (
    ConnectorType,
    CredentialHandle,
    Document,
    DocumentStatus,
    Identity,
    SyncJob,
    SyncState,
    TokenGrant,
    requires_credentials,
)
from app.services.credentials.vault import CredentialVault
from app.services.ingestion.documents import DocumentIngestor
from app.services.registry.base import SyncRegistry
from app.services.sync.coordinator import SyncCoordinator

logger = logging.getLogger(__name__)

# Allowed upload MIME types (whitelist)
ALLOWED_MIME_TYPES = {
    # Documents
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    # Text
    "text/plain",
    "text/csv",
    "text/html",
    "text/markdown",
    "application/json",
    # Images (OCR)
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
    "image/tiff",
}


@dataclass
class DocumentPage:
    documents: List[Document]
    page: int
    limit: int
    total: int
    by_status: Dict[str, int] = field(default_factory=dict)
    by_type: Dict[str, int] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


def _owner(identity: Optional[Identity]) -> str:
    if identity is None or not identity.owner_id:
        raise Unauthenticated("Authentication required")
    return identity.owner_id


class IngestionGateway:

    def __init__(
        self,
        registry: SyncRegistry,
        vault: CredentialVault,
        coordinator: SyncCoordinator,
        ingestor: DocumentIngestor,
        index
    ):
        self.registry = registry
        self.vault = vault
        self.coordinator = coordinator
        self.ingestor = ingestor
        self.index = index

    # ============================================================================
    # DOCUMENTS
    # ============================================================================

    async def list_documents(
        self,
        identity: Optional[Identity],
        limit: int = 20,
        page: int = 1,
        status: Optional[DocumentStatus] = None,
        source: Optional[ConnectorType] = None,
        search: Optional[str] = None
    ) -> DocumentPage:
        owner_id = _owner(identity)
        if not 1 <= limit <= 100:
            raise ValidationFailure("limit must be between 1 and 100")
        if page < 1:
            raise ValidationFailure("page must be >= 1")

        all_documents = await self.registry.list_documents(owner_id)
        filtered = [
            d for d in all_documents
            if (status is None or d.status == DocumentStatus(status))
            and (source is None or d.source == ConnectorType(source))
        ]
        if search:
            needle = search.lower()
            filtered = [d for d in filtered if needle in d.title.lower() or needle in d.kind.lower()]

        start = (page - 1) * limit
        return DocumentPage(
            documents=filtered[start:start + limit],
            page=page,
            limit=limit,
            total=len(filtered),
            by_status=dict(Counter(d.status.value for d in all_documents)),
            by_type=dict(Counter(d.kind for d in all_documents)),
        )

    async def get_document(self, identity: Optional[Identity], document_id: str) -> Document:
        owner_id = _owner(identity)
        document = await self.registry.get_document(owner_id, document_id)
        if document is None:
            raise NotFound("Document not found")
        return document

    async def create_document(
        self,
        identity: Optional[Identity],
        title: str,
        content: str,
        kind: str = "text"
    ) -> Document:
        owner_id = _owner(identity)
        if not title or not title.strip():
            raise ValidationFailure("title is required")
        if not content or not content.strip():
            raise ValidationFailure("content is required")

        logger.info(f"📝 Creating text document '{title}' for owner {owner_id}")
        return await self.ingestor.ingest_text(owner_id, title.strip(), content, kind=kind or "text")

    async def upload_document(
        self,
        identity: Optional[Identity],
        filename: str,
        data: bytes,
        mime_type: Optional[str],
        title: Optional[str] = None
    ) -> Document:
        """
        Raises:
            ValidationFailure: Empty, oversized or disallowed file
            ExtractionFailure: Nothing could be extracted (failed record is kept)
        """
        owner_id = _owner(identity)
        base_mime = (mime_type or "").split(";")[0].strip().lower()
        if base_mime not in ALLOWED_MIME_TYPES:
            raise ValidationFailure(f"File type '{mime_type}' not allowed")
        if not data:
            raise ValidationFailure("File is empty")
        if len(data) > settings.max_upload_bytes:
            raise ValidationFailure(f"File too large (max {settings.max_upload_bytes // (1024 * 1024)}MB)")

        document = await self.ingestor.ingest_file(
            owner_id=owner_id,
            title=title or filename,
            data=data,
            filename=filename,
            mime_type=base_mime,
        )
        if document.status == DocumentStatus.FAILED and not document.content:
            raise ExtractionFailure(
                f"Extraction failed for document {document.document_id}: {document.extraction_meta.error}"
            )
        return document

    async def delete_document(self, identity: Optional[Identity], document_id: str) -> None:
        owner_id = _owner(identity)
        document = await self.registry.get_document(owner_id, document_id)
        if document is None:
            raise NotFound("Document not found")

        try:
            await self.index.delete_document(owner_id, document_id)
        except Exception as e:
            logger.error(f"❌ Failed to remove chunks for document {document_id}: {e}")
            raise TransientUnavailable("Search index unavailable, document not deleted")

        await self.registry.delete_document(owner_id, document_id)
        logger.info(f"🗑️  Deleted document {document_id} for owner {owner_id}")

    # ============================================================================
    # CONNECTOR FILES / SYNC
    # ============================================================================

    async def list_connector_files(
        self,
        identity: Optional[Identity],
        connector: Optional[ConnectorType] = None,
        status: Optional[SyncState] = None,
        limit: int = 100
    ) -> List[SyncJob]:
        owner_id = _owner(identity)
        return await self.coordinator.list_jobs(owner_id, connector, status, limit)

    async def request_connector_sync(
        self,
        identity: Optional[Identity],
        file_id: str,
        connector: Optional[ConnectorType] = None,
        name: Optional[str] = None
    ) -> SyncJob:
        owner_id = _owner(identity)
        if not file_id or not file_id.strip():
            raise ValidationFailure("fileId is required")

        if connector is None:
            existing = await self.coordinator.get_job(owner_id, file_id)
            return await self.coordinator.request_sync(
                owner_id, existing.connector_type, existing.external_ref, name or existing.title
            )
        return await self.coordinator.request_sync(owner_id, connector, file_id, name)

    async def get_sync_job(self, identity: Optional[Identity], job_id: str) -> SyncJob:
        owner_id = _owner(identity)
        return await self.coordinator.get_job(owner_id, job_id)

    # ============================================================================
    # CONNECTIONS
    # ============================================================================

    async def connect_connector(
        self,
        identity: Optional[Identity],
        connector: ConnectorType,
        grant: TokenGrant
    ) -> CredentialHandle:
        owner_id = _owner(identity)
        return await self.vault.store(owner_id, connector, grant)

    async def disconnect_connector(self, identity: Optional[Identity], connector: ConnectorType) -> None:
        owner_id = _owner(identity)
        await self.vault.revoke(owner_id, connector)

    async def connector_status(self, identity: Optional[Identity]) -> List[Tuple[ConnectorType, Optional[CredentialHandle]]]:
        """(connector, handle) for every connector; handle is None for credential-free connectors."""
        owner_id = _owner(identity)
        statuses: List[Tuple[ConnectorType, Optional[CredentialHandle]]] = []
        for connector in ConnectorType:
            if requires_credentials(connector):
                statuses.append((connector, await self.vault.describe(owner_id, connector)))
            else:
                statuses.append((connector, None))
        return statuses

    # ============================================================================
    # SEARCH
    # ============================================================================

    async def search(
        self,
        identity: Optional[Identity],
        query: str,
        limit: int = 10,
        threshold: float = 0.7
    ) -> List[Dict[str, Any]]:
        owner_id = _owner(identity)
        if not query or not query.strip():
            raise ValidationFailure("query is required")

        hits = await self.index.search(owner_id, query.strip(), limit=limit, threshold=threshold)
        results = [hit for hit in hits if hit.get("owner_id") == owner_id]
        if len(results) != len(hits):
            logger.error(f"🚨 SECURITY: dropped {len(hits) - len(results)} foreign search hits for owner {owner_id}")
        return results
