"""
Document Ingestion
extract → reconcile → chunk → index
"""
from app.services.ingestion.chunking import chunk_text
from app.services.ingestion.documents import DocumentIngestor, document_kind

__all__ = [
    "DocumentIngestor",
    "chunk_text",
    "document_kind",
]
