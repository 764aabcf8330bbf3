"""
Dramatiq Background Tasks
Runs one connector sync attempt per message and records its outcome

The message carries (owner_id, job_id, attempt). The worker only runs an
attempt that is still the job's current syncing attempt, so redelivered or
retried messages for finished or superseded attempts are dropped.
"""
import asyncio
import logging

import dramatiq
import httpx

from app.services.jobs.broker import broker  # noqa: F401  (sets the global broker)

logger = logging.getLogger(__name__)


def get_sync_dependencies():
    """
    Create fresh instances of dependencies for background tasks.
    Dramatiq workers run in separate processes, so we can't share global clients.

    Returns:
        (http_client, services)
    """
    from openai import AsyncOpenAI
    from qdrant_client import QdrantClient
    from supabase import create_client

    from app.core.config import settings
    from app.core.dependencies import build_index, build_registry, build_services

    http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(60.0),  # Longer timeout for background jobs
        limits=httpx.Limits(max_keepalive_connections=5, max_connections=10)
    )

    supabase = None
    if settings.supabase_url and settings.supabase_service_key:
        supabase = create_client(settings.supabase_url, settings.supabase_service_key)

    qdrant = QdrantClient(url=settings.qdrant_url, api_key=settings.qdrant_api_key) if settings.qdrant_url else None
    openai_client = AsyncOpenAI(api_key=settings.openai_api_key) if settings.openai_api_key else None

    services = build_services(
        registry=build_registry(supabase),
        http_client=http_client,
        index=build_index(qdrant, openai_client),
        openai_client=openai_client,
        dispatch_mode=None,
    )
    return http_client, services


async def run_connector_sync(services, owner_id: str, job_id: str, attempt: int) -> bool:
    """
    Run one attempt and deliver its outcome.

    Returns:
        True if the outcome was recorded, False if the attempt was skipped or stale
    """
    from app.models.records import SyncState

    job = await services.registry.get_sync_job(owner_id, job_id)
    if job is None:
        logger.warning(f"⚠️  Sync job {job_id} not found - dropping message")
        return False
    if job.state != SyncState.SYNCING or job.attempt != attempt:
        logger.info(
            f"⏭️  Skipping sync job {job_id} attempt {attempt} "
            f"(current: {job.state.value}, attempt {job.attempt})"
        )
        return False

    outcome = await services.runner.run(job)
    return await services.coordinator.on_sync_outcome(job_id, outcome)


async def _run_with_cleanup(http_client: httpx.AsyncClient, services, owner_id: str, job_id: str, attempt: int) -> bool:
    try:
        return await run_connector_sync(services, owner_id, job_id, attempt)
    finally:
        # Cleanup HTTP client in the same event loop
        await http_client.aclose()


@dramatiq.actor(max_retries=3)
def run_connector_sync_task(owner_id: str, job_id: str, attempt: int):
    """
    Background job for one connector file sync attempt.

    Args:
        owner_id: Owner of the sync job
        job_id: Sync job ID
        attempt: Attempt number this message was queued for
    """
    logger.info(f"🚀 Starting sync job {job_id} attempt {attempt} for owner {owner_id}")

    http_client, services = get_sync_dependencies()
    recorded = asyncio.run(_run_with_cleanup(http_client, services, owner_id, job_id, attempt))

    if recorded:
        logger.info(f"✅ Sync job {job_id} attempt {attempt} recorded")
    return recorded
