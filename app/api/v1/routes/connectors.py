"""
Connector Routes
Connector file listing, per-file sync requests and connection management
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from app.core.dependencies import get_gateway
from app.core.security import get_identity
from app.middleware.rate_limit import SYNC_LIMIT, limiter
from app.models.records import ConnectorType, Identity, SyncState, TokenGrant, requires_credentials
from app.models.schemas import (
    ConnectorFilesResponse,
    ConnectorFileStats,
    ConnectorStatus,
    ConnectorStatusResponse,
    CredentialGrant,
    SyncFileRequest,
    SyncJobResponse,
)
from app.services.gateway import IngestionGateway
from app.services.sync.projection import connector_file_stats, project_jobs

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/connectors", tags=["connectors"])


@router.get("/files", response_model=ConnectorFilesResponse, response_model_by_alias=True)
async def list_connector_files(
    connector: Optional[ConnectorType] = Query(None),
    status: Optional[SyncState] = Query(None),
    limit: int = Query(100, ge=1, le=500),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """Connector files projected from their sync jobs."""
    jobs = await gateway.list_connector_files(identity, connector=connector, status=status, limit=limit)
    return ConnectorFilesResponse(
        files=project_jobs(jobs),
        stats=ConnectorFileStats(**connector_file_stats(jobs)),
    )


@router.post("/files", response_model=SyncJobResponse, response_model_by_alias=True, status_code=202)
@limiter.limit(SYNC_LIMIT)
async def sync_connector_file(
    request: Request,  # Required for rate limiting
    body: SyncFileRequest,
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """
    Request a sync of one connector file.

    Returns immediately with the job in 'syncing'; poll
    GET /api/v1/sync/jobs/{jobId} or the file list for the result.
    A request while the file is already syncing returns the same job.
    """
    job = await gateway.request_connector_sync(identity, body.file_id, connector=body.connector, name=body.name)
    return SyncJobResponse.from_job(job)


@router.get("/status", response_model=ConnectorStatusResponse, response_model_by_alias=True)
async def connector_status(
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    statuses = []
    for connector, handle in await gateway.connector_status(identity):
        if handle is None:
            statuses.append(ConnectorStatus(connector=connector, requires_credentials=False, connected=True))
            continue
        statuses.append(ConnectorStatus(
            connector=connector,
            requires_credentials=True,
            connected=handle.connected,
            status=handle.status,
            expires_at=handle.expires_at,
            scope=handle.scope,
            has_refresh_token=handle.has_refresh_token,
        ))
    return ConnectorStatusResponse(connectors=statuses)


@router.post("/{connector}/credentials", response_model=ConnectorStatus, response_model_by_alias=True, status_code=201)
async def connect_connector(
    connector: ConnectorType,
    body: CredentialGrant,
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """Store the tokens from a completed OAuth authorization."""
    grant = TokenGrant(
        access_token=body.access_token,
        refresh_token=body.refresh_token,
        expires_in=body.expires_in,
        scope=body.scope,
    )
    handle = await gateway.connect_connector(identity, connector, grant)
    return ConnectorStatus(
        connector=connector,
        requires_credentials=requires_credentials(connector),
        connected=handle.connected,
        status=handle.status,
        expires_at=handle.expires_at,
        scope=handle.scope,
        has_refresh_token=handle.has_refresh_token,
    )


@router.delete("/{connector}")
async def disconnect_connector(
    connector: ConnectorType,
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    await gateway.disconnect_connector(identity, connector)
    logger.info(f"🔌 Disconnected {connector.value} for owner {identity.owner_id}")
    return {"success": True, "connector": connector.value}
