"""
Extraction Collaborators
OCR service client, GPT-4o vision extractor and the concurrent extraction service

Strategy:
1. Text MIME types (text/*, JSON): decoded directly, no OCR/LLM
2. Everything else: OCR and LLM run concurrently, both outcomes collected
   (a failure becomes an ExtractionResult with error set)
3. ExtractionReconciler merges whatever came back
"""
import asyncio
import base64
import logging
from typing import List, Optional, Tuple

import httpx
from openai import AsyncOpenAI

from app.core.circuit_breakers import with_openai_retry
from app.core.config import settings
from app.models.records import ExtractionMeta, ExtractionMethod, ExtractionResult
from app.services.extraction.reconciler import ExtractionReconciler

logger = logging.getLogger(__name__)

TEXT_MIME_TYPES = {
    "application/json",
    "application/xml",
    "application/x-yaml",
    "application/yaml",
}

IMAGE_MIME_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/gif", "image/webp"}

LLM_EXTRACTION_PROMPT = (
    "Extract all text content from this document. Preserve headings, lists and "
    "table structure as plain text. Return only the extracted text."
)


class ExtractionUnavailable(Exception):
    """Extraction method not configured or not applicable to this file type."""


def is_text_mime(mime_type: Optional[str]) -> bool:
    if not mime_type:
        return False
    base = mime_type.split(";")[0].strip().lower()
    return base.startswith("text/") or base in TEXT_MIME_TYPES


# ============================================================================
# OCR SERVICE CLIENT
# ============================================================================

class OCRClient:
    """
    Multipart POST to the configured OCR service.

    Response: {"text": str, "confidence": float | null}
    """

    def __init__(self, http_client: httpx.AsyncClient, service_url: Optional[str] = None):
        self.http_client = http_client
        self.service_url = service_url if service_url is not None else settings.ocr_service_url

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractionResult:
        if not self.service_url:
            raise ExtractionUnavailable("OCR service not configured")

        response = await self.http_client.post(
            self.service_url,
            files={"file": (filename, data, mime_type)},
        )
        response.raise_for_status()
        payload = response.json()

        confidence = payload.get("confidence")
        return ExtractionResult(
            method=ExtractionMethod.OCR,
            text=payload.get("text") or "",
            confidence=float(confidence) if confidence is not None else None,
        )


# ============================================================================
# LLM (GPT-4o VISION) EXTRACTOR
# ============================================================================

class LLMExtractor:
    """Sends the file to a vision-capable chat model as an image or file part."""

    def __init__(self, client: Optional[AsyncOpenAI], model: Optional[str] = None):
        self.client = client
        self.model = model or settings.llm_extraction_model

    @staticmethod
    def _content_part(data: bytes, filename: str, mime_type: str) -> dict:
        encoded = base64.b64encode(data).decode("utf-8")
        base = mime_type.split(";")[0].strip().lower()
        if base in IMAGE_MIME_TYPES:
            return {
                "type": "image_url",
                "image_url": {
                    "url": f"data:{base};base64,{encoded}",
                    "detail": "high"
                }
            }
        if base == "application/pdf":
            return {
                "type": "file",
                "file": {
                    "filename": filename,
                    "file_data": f"data:application/pdf;base64,{encoded}"
                }
            }
        raise ExtractionUnavailable(f"LLM extraction does not support {base}")

    @with_openai_retry
    async def _complete(self, content_part: dict) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": LLM_EXTRACTION_PROMPT},
                        content_part
                    ]
                }
            ],
            max_tokens=4096,
            temperature=0
        )
        return response.choices[0].message.content or ""

    async def extract(self, data: bytes, filename: str, mime_type: str) -> ExtractionResult:
        if self.client is None:
            raise ExtractionUnavailable("OpenAI API key not configured")
        text = await self._complete(self._content_part(data, filename, mime_type))
        return ExtractionResult(method=ExtractionMethod.LLM, text=text)


# ============================================================================
# EXTRACTION SERVICE
# ============================================================================

class ExtractionService:
    """Runs extraction for one file and returns (content, extraction_meta)."""

    def __init__(
        self,
        ocr: OCRClient,
        llm: LLMExtractor,
        reconciler: Optional[ExtractionReconciler] = None
    ):
        self.ocr = ocr
        self.llm = llm
        self.reconciler = reconciler or ExtractionReconciler()

    async def run_methods(self, data: bytes, filename: str, mime_type: str) -> List[ExtractionResult]:
        methods = (
            (ExtractionMethod.OCR, self.ocr.extract(data, filename, mime_type)),
            (ExtractionMethod.LLM, self.llm.extract(data, filename, mime_type)),
        )
        outcomes = await asyncio.gather(*(call for _, call in methods), return_exceptions=True)

        results: List[ExtractionResult] = []
        for (method, _), outcome in zip(methods, outcomes):
            if isinstance(outcome, BaseException):
                reason = str(outcome) or type(outcome).__name__
                logger.warning(f"⚠️  {method.value.upper()} extraction failed for {filename}: {reason}")
                results.append(ExtractionResult(method=method, error=reason))
            else:
                logger.info(f"   {method.value.upper()} extracted {len(outcome.text)} chars from {filename}")
                results.append(outcome)
        return results

    async def extract(self, data: bytes, filename: str, mime_type: Optional[str]) -> Tuple[str, ExtractionMeta]:
        mime_type = mime_type or "application/octet-stream"

        if is_text_mime(mime_type):
            text = data.decode("utf-8", errors="replace").strip()
            if not text:
                return "", ExtractionMeta(native_text=True, error="Document is empty")
            return text, ExtractionMeta(native_text=True)

        results = await self.run_methods(data, filename, mime_type)
        return self.reconciler.reconcile(results)
