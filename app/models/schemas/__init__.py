"""
Pydantic Schemas
All request/response models for API endpoints
"""

# Connector schemas (files, credentials, status)
from .connector import (
    ConnectorFileStats,
    ConnectorFilesResponse,
    ConnectorStatus,
    ConnectorStatusResponse,
    ConnectorSyncFile,
    CredentialGrant,
)

# Document schemas
from .documents import (
    DeleteResponse,
    DocumentCreate,
    DocumentDetail,
    DocumentListResponse,
    DocumentStats,
    DocumentSummary,
    Pagination,
)

# Health check schemas
from .health import HealthResponse

# Search schemas
from .search import SearchQuery, SearchResponse, SearchResult

# Sync schemas
from .sync import SyncFileRequest, SyncJobResponse

__all__ = [
    # Connector
    "ConnectorFileStats",
    "ConnectorFilesResponse",
    "ConnectorStatus",
    "ConnectorStatusResponse",
    "ConnectorSyncFile",
    "CredentialGrant",
    # Documents
    "DeleteResponse",
    "DocumentCreate",
    "DocumentDetail",
    "DocumentListResponse",
    "DocumentStats",
    "DocumentSummary",
    "Pagination",
    # Health
    "HealthResponse",
    # Search
    "SearchQuery",
    "SearchResponse",
    "SearchResult",
    # Sync
    "SyncFileRequest",
    "SyncJobResponse",
]
