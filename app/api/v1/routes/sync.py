"""
Sync Routes
Sync job status for polling clients
"""
import logging

from fastapi import APIRouter, Depends, Path

from app.core.dependencies import get_gateway
from app.core.security import get_identity
from app.models.records import Identity
from app.models.schemas import SyncJobResponse
from app.services.gateway import IngestionGateway

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/sync", tags=["sync"])


@router.get("/jobs/{job_id}", response_model=SyncJobResponse, response_model_by_alias=True)
async def get_sync_job(
    job_id: str = Path(..., min_length=1),
    identity: Identity = Depends(get_identity),
    gateway: IngestionGateway = Depends(get_gateway)
):
    """
    Current state of a sync job.

    A job past its deadline is reported as failed with lastError "Timeout".
    """
    job = await gateway.get_sync_job(identity, job_id)
    return SyncJobResponse.from_job(job)
