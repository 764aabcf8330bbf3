"""
Document Schemas
Models for document listing, creation and upload
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from app.models.records import ConnectorType, Document, DocumentStatus
from app.models.schemas.base import APIModel


class DocumentCreate(APIModel):
    """Request model for creating a text document."""
    title: str = Field(..., min_length=1, max_length=500, description="Document title")
    content: str = Field(..., min_length=1, description="Full document text")
    kind: str = Field("text", max_length=50, description="Document kind (text, markdown, note, ...)")


class DocumentSummary(APIModel):
    id: str
    title: str
    kind: str
    source: ConnectorType
    status: DocumentStatus
    size_bytes: int
    chunk_count: int
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentSummary":
        return cls(
            id=document.document_id,
            title=document.title,
            kind=document.kind,
            source=document.source,
            status=document.status,
            size_bytes=document.size_bytes,
            chunk_count=document.chunk_count,
            error=document.extraction_meta.error,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )


class DocumentDetail(DocumentSummary):
    content: str
    source_ref: Optional[str] = None
    mime_type: Optional[str] = None
    extraction_meta: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_document(cls, document: Document) -> "DocumentDetail":
        summary = DocumentSummary.from_document(document)
        meta = document.extraction_meta.model_dump(exclude={"sources"})
        return cls(
            **summary.model_dump(),
            content=document.content,
            source_ref=document.source_ref,
            mime_type=document.mime_type,
            extraction_meta=meta,
            metadata=document.metadata,
        )


class Pagination(APIModel):
    page: int
    limit: int
    total: int
    total_pages: int


class DocumentStats(APIModel):
    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]


class DocumentListResponse(APIModel):
    documents: List[DocumentSummary]
    pagination: Pagination
    stats: DocumentStats


class DeleteResponse(APIModel):
    success: bool
    id: str
