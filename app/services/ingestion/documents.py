"""
Document Ingestion Pipeline
extract → reconcile → chunk → index, with status tracked on the Document

Status: pending → processing → completed | failed
A document with empty content is never completed, and a failed document
keeps no chunks in the index.
"""
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from app.core.errors import Timeout
from app.models.records import (
    ConnectorType,
    Document,
    DocumentStatus,
    ExtractionMeta,
)
from app.services.extraction.extractors import ExtractionService
from app.services.extraction.reconciler import NO_CONTENT_ERROR
from app.services.ingestion.chunking import chunk_text
from app.services.registry.base import SyncRegistry

logger = logging.getLogger(__name__)

# Returns False once the sync attempt driving an ingestion is no longer current
AttemptGuard = Callable[[], Awaitable[bool]]

MIME_KINDS = {
    "application/pdf": "pdf",
    "text/markdown": "markdown",
    "text/html": "html",
    "text/csv": "csv",
    "application/json": "json",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": "docx",
    "application/msword": "doc",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": "xlsx",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation": "pptx",
}


def document_kind(mime_type: Optional[str]) -> str:
    if not mime_type:
        return "file"
    base = mime_type.split(";")[0].strip().lower()
    if base in MIME_KINDS:
        return MIME_KINDS[base]
    if base.startswith("image/"):
        return "image"
    if base.startswith("text/"):
        return "text"
    return "file"


class DocumentIngestor:
    """
    Persists a document through every status change so listings always show
    where ingestion is.

    Args:
        registry: Document storage
        extraction: OCR/LLM extraction service
        index: Vector index (QdrantDocumentIndex or InMemoryDocumentIndex)
    """

    def __init__(self, registry: SyncRegistry, extraction: ExtractionService, index):
        self.registry = registry
        self.extraction = extraction
        self.index = index

    async def _start(
        self,
        owner_id: str,
        title: str,
        kind: str,
        size_bytes: int,
        source: ConnectorType,
        source_ref: Optional[str],
        mime_type: Optional[str],
        document_id: Optional[str],
        metadata: Optional[Dict[str, Any]]
    ) -> Document:
        fields = dict(
            owner_id=owner_id,
            title=title,
            kind=kind,
            size_bytes=size_bytes,
            source=source,
            source_ref=source_ref,
            mime_type=mime_type,
            status=DocumentStatus.PENDING,
            metadata=metadata or {},
        )
        if document_id:
            fields["document_id"] = document_id
            # re-sync overwrites the canonical document but keeps its creation time
            existing = await self.registry.get_document(owner_id, document_id)
            if existing is not None:
                fields["created_at"] = existing.created_at

        pending = await self.registry.put_document(Document(**fields))
        return await self.registry.put_document(pending.model_copy(update={"status": DocumentStatus.PROCESSING}))

    @staticmethod
    async def _check_current(target: str, guard: Optional[AttemptGuard]) -> None:
        if guard is not None and not await guard():
            logger.warning(f"⏭️  Dropping ingestion of {target}: sync attempt no longer current")
            raise Timeout("Sync attempt is no longer current")

    async def _drop_chunks(self, document: Document) -> None:
        try:
            await self.index.delete_document(document.owner_id, document.document_id)
        except Exception as e:
            logger.error(f"❌ Failed to remove chunks for failed document {document.document_id}: {e}")

    async def _fail(self, document: Document, meta: ExtractionMeta, **update) -> Document:
        await self._drop_chunks(document)
        failed = document.model_copy(update={
            "status": DocumentStatus.FAILED,
            "chunk_count": 0,
            "extraction_meta": meta,
            **update,
        })
        logger.warning(f"❌ Document {document.document_id} failed: {meta.error}")
        return await self.registry.put_document(failed)

    async def _finish(
        self,
        document: Document,
        content: str,
        meta: ExtractionMeta,
        guard: Optional[AttemptGuard] = None
    ) -> Document:
        await self._check_current(document.document_id, guard)

        if not content or not content.strip():
            meta.error = meta.error or NO_CONTENT_ERROR
            return await self._fail(document, meta, content="")

        document = document.model_copy(update={"content": content, "extraction_meta": meta})
        chunks = chunk_text(content)
        try:
            chunk_count = await self.index.index_document(document, chunks)
        except Exception as e:
            logger.error(f"❌ Indexing failed for document {document.document_id}: {e}", exc_info=True)
            meta.error = f"IndexingFailure: {e}"
            return await self._fail(document, meta)

        await self._check_current(document.document_id, guard)
        completed = document.model_copy(update={
            "status": DocumentStatus.COMPLETED,
            "chunk_count": chunk_count,
        })
        logger.info(f"✅ Document {document.document_id} completed ({len(content)} chars, {chunk_count} chunks)")
        return await self.registry.put_document(completed)

    # ============================================================================
    # ENTRY POINTS
    # ============================================================================

    async def ingest_file(
        self,
        owner_id: str,
        title: str,
        data: bytes,
        filename: str,
        mime_type: Optional[str],
        source: ConnectorType = ConnectorType.DIRECT_UPLOAD,
        source_ref: Optional[str] = None,
        document_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        guard: Optional[AttemptGuard] = None
    ) -> Document:
        """
        Args:
            guard: For connector syncs; checked before the document is written
                back so a superseded attempt never overwrites a newer one

        Raises:
            Timeout: guard reported the attempt is no longer current
        """
        await self._check_current(document_id or filename, guard)

        document = await self._start(
            owner_id, title, document_kind(mime_type), len(data),
            source, source_ref, mime_type, document_id, metadata
        )
        logger.info(f"📄 Ingesting {filename} ({len(data)} bytes, {mime_type}) as {document.document_id}")

        try:
            content, meta = await self.extraction.extract(data, filename, mime_type)
        except Exception as e:
            logger.error(f"❌ Extraction crashed for {filename}: {e}", exc_info=True)
            content, meta = "", ExtractionMeta(error=f"{type(e).__name__}: {e}")

        return await self._finish(document, content, meta, guard)

    async def ingest_text(
        self,
        owner_id: str,
        title: str,
        content: str,
        kind: str = "text",
        source: ConnectorType = ConnectorType.DIRECT_UPLOAD,
        source_ref: Optional[str] = None,
        document_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Document:
        document = await self._start(
            owner_id, title, kind, len((content or "").encode("utf-8")),
            source, source_ref, "text/plain", document_id, metadata
        )
        meta = ExtractionMeta(native_text=True)
        return await self._finish(document, (content or "").strip(), meta)
