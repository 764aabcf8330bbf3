"""
Document Routes
List, read, create and delete the caller's documents
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query

from app.core.dependencies import get_gateway
from app.core.security import get_identity
from app.models.records import ConnectorType, DocumentStatus, Identity
from app.models.schemas import (
    DeleteResponse,
    DocumentCreate,
    DocumentDetail,
    DocumentListResponse,
    DocumentStats,
    DocumentSummary,
    Pagination,
)
from app.services.gateway import IngestionGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/documents", tags=["documents"])


@router.get("", response_model=DocumentListResponse, response_model_by_alias=True)
async def list_documents(
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    status: Optional[DocumentStatus] = Query(None),
    source: Optional[ConnectorType] = Query(None),
    search: Optional[str] = Query(None, max_length=200),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """
    List the caller's documents, newest first.

    Stats (by status / by type) cover all of the caller's documents,
    not just the current page.
    """
    result = await gateway.list_documents(identity, limit=limit, page=page, status=status, source=source, search=search)
    return DocumentListResponse(
        documents=[DocumentSummary.from_document(d) for d in result.documents],
        pagination=Pagination(
            page=result.page,
            limit=result.limit,
            total=result.total,
            total_pages=result.total_pages,
        ),
        stats=DocumentStats(
            total=sum(result.by_status.values()),
            by_status=result.by_status,
            by_type=result.by_type,
        ),
    )


@router.get("/{document_id}", response_model=DocumentDetail, response_model_by_alias=True)
async def get_document(
    document_id: str = Path(..., min_length=1),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    document = await gateway.get_document(identity, document_id)
    return DocumentDetail.from_document(document)


@router.post("", response_model=DocumentDetail, response_model_by_alias=True, status_code=201)
async def create_document(
    body: DocumentCreate,
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """Create a document from raw text. Indexed synchronously."""
    document = await gateway.create_document(identity, body.title, body.content, kind=body.kind)
    return DocumentDetail.from_document(document)


@router.delete("", response_model=DeleteResponse)
async def delete_document_by_query(
    document_id: str = Query(..., alias="id", min_length=1),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    await gateway.delete_document(identity, document_id)
    return DeleteResponse(success=True, id=document_id)


@router.delete("/{document_id}", response_model=DeleteResponse)
async def delete_document(
    document_id: str = Path(..., min_length=1),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    await gateway.delete_document(identity, document_id)
    return DeleteResponse(success=True, id=document_id)
