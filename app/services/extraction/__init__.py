"""
Document Extraction
OCR + LLM extraction and reconciliation into canonical content
"""
from app.services.extraction.reconciler import ExtractionReconciler
from app.services.extraction.extractors import (
    ExtractionService,
    LLMExtractor,
    OCRClient,
    is_text_mime,
)

__all__ = [
    "ExtractionReconciler",
    "ExtractionService",
    "LLMExtractor",
    "OCRClient",
    "is_text_mime",
]
