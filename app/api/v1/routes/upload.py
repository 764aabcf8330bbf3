"""
File Upload Routes
Document ingestion for PDFs, Office files, images and text

SECURITY FEATURES:
- File size limits (MAX_UPLOAD_BYTES, 100MB default)
- MIME type validation (whitelist only, enforced by the gateway)
- Filename sanitization (prevent path traversal)
- Per-owner rate limit
"""
import logging
import re
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.core.config import settings
from app.core.dependencies import get_gateway
from app.core.errors import ValidationFailure
from app.core.security import get_identity
from app.middleware.rate_limit import UPLOAD_LIMIT, limiter
from app.models.records import Identity
from app.models.schemas import DocumentDetail
from app.services.gateway import IngestionGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/upload", tags=["upload"])

READ_CHUNK_BYTES = 1024 * 1024


def sanitize_filename(filename: str) -> str:
    """
    Sanitize user-provided filename to prevent security issues.

    SECURITY:
    - Prevents path traversal (../../etc/passwd)
    - Removes dangerous characters
    - Prevents hidden files

    Returns:
        Sanitized filename safe for storage
    """
    # Remove path components (prevent traversal)
    filename = Path(filename.replace("\\", "/")).name

    filename = re.sub(r'[^a-zA-Z0-9._-]', '_', filename)

    if len(filename) > 255:
        # Keep extension, truncate name
        name, dot, ext = filename.rpartition('.')
        filename = name[:250] + dot + ext if dot else filename[:255]

    if filename.startswith('.'):
        filename = '_' + filename

    if not filename.strip('_'):
        filename = 'unnamed_file'

    return filename


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """Read an upload in chunks, stopping as soon as it exceeds max_bytes."""
    data = bytearray()
    while True:
        chunk = await file.read(READ_CHUNK_BYTES)
        if not chunk:
            break
        data.extend(chunk)
        if len(data) > max_bytes:
            raise ValidationFailure(f"File too large (max {max_bytes // (1024 * 1024)}MB)")
    return bytes(data)


@router.post("/file", response_model=DocumentDetail, response_model_by_alias=True, status_code=201)
@limiter.limit(UPLOAD_LIMIT)
async def upload_file(
    request: Request,  # Required for rate limiting
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """
    Upload and ingest a file.

    Text files are stored as-is; PDFs and images go through OCR and LLM
    extraction and the results are reconciled into one text.

    Raises:
        400: Disallowed type, empty or oversized file
        422: Nothing could be extracted
    """
    filename = sanitize_filename(file.filename or "")
    data = await read_upload(file, settings.max_upload_bytes)

    logger.info(f"📤 Upload: {filename} ({len(data)} bytes, {file.content_type})")

    document = await gateway.upload_document(
        identity,
        filename=filename,
        data=data,
        mime_type=file.content_type,
        title=title,
    )
    return DocumentDetail.from_document(document)
