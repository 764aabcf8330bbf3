"""
Search Routes
Owner-scoped semantic search over indexed document chunks
"""
import logging

from fastapi import APIRouter, Depends, Request

from app.core.dependencies import get_gateway
from app.core.security import get_identity
from app.middleware.rate_limit import SEARCH_LIMIT, limiter
from app.models.records import Identity
from app.models.schemas import SearchQuery, SearchResponse, SearchResult
from app.services.gateway import IngestionGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["search"])


@router.post("/search", response_model=SearchResponse, response_model_by_alias=True)
@limiter.limit(SEARCH_LIMIT)
async def search(
    request: Request,
    query: SearchQuery,
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """
    Search the caller's documents.

    Results are chunks scored by similarity, best first, and never
    include another owner's content.
    """
    hits = await gateway.search(identity, query.query, limit=query.limit, threshold=query.threshold)
    logger.info(f"🔍 Search '{query.query[:50]}' → {len(hits)} results")

    results = [
        SearchResult(
            document_id=hit["document_id"],
            title=hit.get("title"),
            content=hit.get("content", ""),
            score=hit.get("score", 0.0),
            source=hit.get("source"),
            chunk_index=hit.get("chunk_index"),
        )
        for hit in hits
    ]
    return SearchResponse(query=query.query, results=results, total=len(results))
