"""
Vector Index
Qdrant-backed chunk index with OpenAI embeddings

SECURITY: every point carries owner_id in its payload and every query and
delete is filtered by it. Callers still post-filter search results.
"""
import logging
import uuid
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from qdrant_client import QdrantClient, models

from app.core.circuit_breakers import with_openai_retry, with_qdrant_retry
from app.core.config import settings
from app.models.records import Document

logger = logging.getLogger(__name__)

EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def chunk_point_id(document_id: str, chunk_index: int) -> str:
    """Deterministic point id so re-indexing a document overwrites its chunks."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"chunk:{document_id}:{chunk_index}"))


def owner_filter(owner_id: str, document_id: Optional[str] = None) -> models.Filter:
    conditions = [models.FieldCondition(key="owner_id", match=models.MatchValue(value=owner_id))]
    if document_id is not None:
        conditions.append(models.FieldCondition(key="document_id", match=models.MatchValue(value=document_id)))
    return models.Filter(must=conditions)


class QdrantDocumentIndex:
    """
    Args:
        qdrant: Shared Qdrant client (sync client, like the rest of the app)
        openai_client: Async OpenAI client for embeddings
    """

    def __init__(
        self,
        qdrant: QdrantClient,
        openai_client: AsyncOpenAI,
        collection_name: Optional[str] = None,
        embedding_model: Optional[str] = None
    ):
        self.qdrant = qdrant
        self.openai_client = openai_client
        self.collection_name = collection_name or settings.qdrant_collection_name
        self.embedding_model = embedding_model or settings.embedding_model
        self._collection_ready = False

    # ============================================================================
    # EMBEDDINGS
    # ============================================================================

    @with_openai_retry
    async def embed(self, texts: List[str]) -> List[List[float]]:
        response = await self.openai_client.embeddings.create(
            model=self.embedding_model,
            input=texts
        )
        return [item.embedding for item in response.data]

    # ============================================================================
    # COLLECTION
    # ============================================================================

    def _ensure_collection(self) -> None:
        if self._collection_ready:
            return
        if not self.qdrant.collection_exists(self.collection_name):
            size = EMBEDDING_DIMENSIONS.get(self.embedding_model, 1536)
            self.qdrant.create_collection(
                collection_name=self.collection_name,
                vectors_config=models.VectorParams(size=size, distance=models.Distance.COSINE),
            )
            for field in ("owner_id", "document_id"):
                self.qdrant.create_payload_index(
                    collection_name=self.collection_name,
                    field_name=field,
                    field_schema=models.PayloadSchemaType.KEYWORD,
                )
            logger.info(f"✅ Created Qdrant collection '{self.collection_name}' ({size} dims)")
        self._collection_ready = True

    # ============================================================================
    # WRITE
    # ============================================================================

    @with_qdrant_retry
    async def index_document(self, document: Document, chunks: List[str]) -> int:
        """Replace all chunks of the document. Returns number of points written."""
        self._ensure_collection()
        await self.delete_document(document.owner_id, document.document_id)
        if not chunks:
            return 0

        vectors = await self.embed(chunks)
        points = [
            models.PointStruct(
                id=chunk_point_id(document.document_id, index),
                vector=vector,
                payload={
                    "owner_id": document.owner_id,
                    "document_id": document.document_id,
                    "title": document.title,
                    "source": document.source.value,
                    "chunk_index": index,
                    "text": chunk,
                },
            )
            for index, (chunk, vector) in enumerate(zip(chunks, vectors))
        ]
        self.qdrant.upsert(collection_name=self.collection_name, points=points)
        logger.info(f"📇 Indexed {len(points)} chunks for document {document.document_id}")
        return len(points)

    async def delete_document(self, owner_id: str, document_id: str) -> None:
        self._ensure_collection()
        self.qdrant.delete(
            collection_name=self.collection_name,
            points_selector=models.FilterSelector(filter=owner_filter(owner_id, document_id)),
        )

    # ============================================================================
    # READ
    # ============================================================================

    async def search(
        self,
        owner_id: str,
        query: str,
        limit: int = 10,
        threshold: float = 0.7
    ) -> List[Dict[str, Any]]:
        self._ensure_collection()
        vector = (await self.embed([query]))[0]
        response = self.qdrant.query_points(
            collection_name=self.collection_name,
            query=vector,
            query_filter=owner_filter(owner_id),
            limit=limit,
            score_threshold=threshold,
            with_payload=True,
        )
        return [
            {
                "owner_id": point.payload.get("owner_id"),
                "document_id": point.payload.get("document_id"),
                "title": point.payload.get("title"),
                "source": point.payload.get("source"),
                "chunk_index": point.payload.get("chunk_index"),
                "content": point.payload.get("text", ""),
                "score": point.score,
            }
            for point in response.points
        ]


class InMemoryDocumentIndex:
    """
    Keyword-overlap index for local development (REGISTRY_BACKEND=memory
    without Qdrant). Same interface and owner filtering as QdrantDocumentIndex.
    """

    def __init__(self):
        self._chunks: Dict[str, List[Dict[str, Any]]] = {}

    async def index_document(self, document: Document, chunks: List[str]) -> int:
        self._chunks[document.document_id] = [
            {
                "owner_id": document.owner_id,
                "document_id": document.document_id,
                "title": document.title,
                "source": document.source.value,
                "chunk_index": index,
                "content": chunk,
            }
            for index, chunk in enumerate(chunks)
        ]
        return len(chunks)

    async def delete_document(self, owner_id: str, document_id: str) -> None:
        chunks = self._chunks.get(document_id)
        if chunks and chunks[0]["owner_id"] == owner_id:
            del self._chunks[document_id]

    async def search(self, owner_id: str, query: str, limit: int = 10, threshold: float = 0.7) -> List[Dict[str, Any]]:
        terms = set(query.lower().split())
        if not terms:
            return []
        hits = []
        for chunks in self._chunks.values():
            for chunk in chunks:
                if chunk["owner_id"] != owner_id:
                    continue
                words = set(chunk["content"].lower().split())
                score = len(terms & words) / len(terms)
                if score >= threshold:
                    hits.append({**chunk, "score": score})
        hits.sort(key=lambda h: h["score"], reverse=True)
        return hits[:limit]
