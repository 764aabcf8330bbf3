"""
Connector Schemas
Models for connector files, credentials and connection status
"""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from app.models.records import ConnectorType, SyncState, TokenValidity
from app.models.schemas.base import APIModel


class ConnectorSyncFile(APIModel):
    """
    One synced (or syncing) external file, projected from its SyncJob.
    id is the sync job id.
    """
    id: str
    name: str
    connector: ConnectorType
    status: SyncState
    last_synced_at: Optional[datetime] = None
    error: Optional[str] = None
    external_ref: str
    document_id: Optional[str] = None
    attempt: int = 0


class ConnectorFileStats(APIModel):
    total: int
    by_connector: Dict[str, int]
    by_status: Dict[str, int]


class ConnectorFilesResponse(APIModel):
    files: List[ConnectorSyncFile]
    stats: ConnectorFileStats


class CredentialGrant(APIModel):
    """
    Tokens from a completed OAuth authorization for a connector.
    Sent by the frontend after its OAuth callback.
    """
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = Field(None, gt=0, description="Seconds until the access token expires")
    scope: Optional[str] = None


class ConnectorStatus(APIModel):
    connector: ConnectorType
    requires_credentials: bool
    connected: bool
    status: Optional[TokenValidity] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    has_refresh_token: bool = False


class ConnectorStatusResponse(APIModel):
    connectors: List[ConnectorStatus]
