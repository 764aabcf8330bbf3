"""
Search
Owner-filtered chunk index used by ingestion and the search endpoint
"""
from app.services.search.index import InMemoryDocumentIndex, QdrantDocumentIndex

__all__ = ["InMemoryDocumentIndex", "QdrantDocumentIndex"]
