"""
Text Chunking
Splits document content into overlapping chunks for the vector index

Splits on the coarsest boundary that fits (paragraph → line → sentence → word),
falling back to a hard cut for unbroken runs.
"""
from typing import List

from app.core.config import settings

SEPARATORS = ("\n\n", "\n", ". ", " ")


def _cut_point(text: str, start: int, end: int) -> int:
    window = text[start:end]
    for separator in SEPARATORS:
        position = window.rfind(separator)
        # ignore boundaries in the first half; they make tiny chunks
        if position > len(window) // 2:
            return start + position + len(separator)
    return end


def chunk_text(text: str, chunk_size: int = None, chunk_overlap: int = None) -> List[str]:
    chunk_size = chunk_size or settings.chunk_size
    chunk_overlap = settings.chunk_overlap if chunk_overlap is None else chunk_overlap
    if chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be smaller than chunk_size")

    text = (text or "").strip()
    if not text:
        return []
    if len(text) <= chunk_size:
        return [text]

    chunks: List[str] = []
    start = 0
    while start < len(text):
        end = min(start + chunk_size, len(text))
        if end < len(text):
            end = _cut_point(text, start, end)
        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end >= len(text):
            break
        start = max(end - chunk_overlap, start + 1)
    return chunks
