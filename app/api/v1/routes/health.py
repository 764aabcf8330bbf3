"""
Health Check Routes
System status and diagnostics
"""
import logging
from fastapi import APIRouter

from app.core.config import settings
from app.models.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

API_VERSION = "1.0.0"


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=API_VERSION,
        registry=settings.registry_backend,
        dispatch=settings.sync_dispatch_mode,
    )


@router.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "Knowledge Sync API",
        "version": API_VERSION,
        "description": "Owner-scoped document ingestion, connector sync and search",
        "endpoints": {
            "health": "/health",
            "documents": "/api/v1/documents",
            "upload": "/api/v1/upload/file",
            "connectors": {
                "files": "/api/v1/connectors/files",
                "status": "/api/v1/connectors/status",
            },
            "sync_jobs": "/api/v1/sync/jobs/{job_id}",
            "search": "/api/v1/search"
        }
    }
