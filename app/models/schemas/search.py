"""
Search Schemas
Models for owner-scoped semantic search
"""
from typing import List, Optional

from pydantic import Field

from app.models.schemas.base import APIModel


class SearchQuery(APIModel):
    query: str = Field(..., min_length=1, max_length=2000, description="Search query text")
    limit: int = Field(10, ge=1, le=100, description="Max results")
    threshold: float = Field(0.7, ge=0.0, le=1.0, description="Minimum similarity score")


class SearchResult(APIModel):
    document_id: str
    title: Optional[str] = None
    content: str
    score: float
    source: Optional[str] = None
    chunk_index: Optional[int] = None


class SearchResponse(APIModel):
    query: str
    results: List[SearchResult]
    total: int
