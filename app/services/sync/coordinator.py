"""
Sync Coordinator
Per-file sync state machine with single-flight start and execution deadlines

States:
    pending → syncing → synced | failed
    failed → syncing (retry), synced → syncing (re-sync)

Guarantees:
- request_sync on a syncing job returns it without a new execution
- Concurrent request_sync calls for one (owner, connector, ref) start at most one attempt
- Every transition is a registry compare-and-set on (state, attempt);
  outcomes and timeouts for stale attempts are no-ops
- A syncing attempt without an outcome by its deadline becomes failed("Timeout")
  exactly once (timer, plus lazy expiry on reads), and its running task is cancelled
"""
import asyncio
import logging
from datetime import timedelta
from typing import Callable, Dict, List, Optional, Set, Tuple

from app.core.concurrency import SingleFlight
from app.core.config import settings
from app.core.errors import NotFound, ValidationFailure
from app.models.records import (
    ConnectorType,
    SyncJob,
    SyncOutcome,
    SyncState,
    utcnow,
)
from app.services.registry.base import SyncRegistry
from app.services.sync.dispatch import SyncDispatcher

logger = logging.getLogger(__name__)

TIMEOUT_ERROR = "Timeout"


class SyncCoordinator:
    """
    Args:
        registry: Authoritative sync job storage
        dispatcher: Runs attempts (None in the worker, which only records outcomes)
        deadline_seconds: Max time an attempt may stay syncing
        clock: Returns the current UTC time (overridable in tests)
    """

    def __init__(
        self,
        registry: SyncRegistry,
        dispatcher: Optional[SyncDispatcher] = None,
        deadline_seconds: Optional[float] = None,
        clock: Callable = utcnow
    ):
        self.registry = registry
        self.dispatcher = dispatcher
        self.deadline_seconds = deadline_seconds or settings.sync_deadline_seconds
        self.clock = clock
        self._start_flight = SingleFlight("sync-start")
        self._timers: Dict[Tuple[str, str], asyncio.TimerHandle] = {}
        self._background: Set[asyncio.Task] = set()

    # ============================================================================
    # REQUEST
    # ============================================================================

    async def request_sync(
        self,
        owner_id: str,
        connector_type: ConnectorType,
        external_ref: str,
        title: Optional[str] = None
    ) -> SyncJob:
        """
        Start (or join) a sync of one external file. Returns the job, which is
        syncing unless the start was rejected.
        """
        connector_type = ConnectorType(connector_type)
        if connector_type == ConnectorType.DIRECT_UPLOAD:
            raise ValidationFailure("Uploaded documents have no external source to sync")
        external_ref = (external_ref or "").strip()
        if not external_ref:
            raise ValidationFailure("external_ref is required")

        key = (owner_id, connector_type, external_ref)
        return await self._start_flight.do(
            key,
            lambda: self._start(owner_id, connector_type, external_ref, title)
        )

    async def _start(
        self,
        owner_id: str,
        connector_type: ConnectorType,
        external_ref: str,
        title: Optional[str]
    ) -> SyncJob:
        job = await self.registry.find_sync_job(owner_id, connector_type, external_ref)
        if job is None:
            job = await self.registry.create_sync_job(SyncJob(
                owner_id=owner_id,
                connector_type=connector_type,
                external_ref=external_ref,
                title=title,
            ))
        else:
            job = await self._expire_if_overdue(job)

        if job.state == SyncState.SYNCING:
            logger.info(f"⏭️  Sync job {job.job_id} already syncing (attempt {job.attempt})")
            return job

        now = self.clock()
        started = job.model_copy(update={
            "state": SyncState.SYNCING,
            "attempt": job.attempt + 1,
            "last_error": None,
            "title": title or job.title,
            "started_at": now,
            "deadline_at": now + timedelta(seconds=self.deadline_seconds),
        })
        if not await self.registry.compare_and_set_sync_job(started, job.state, job.attempt):
            # another process started it first
            current = await self.registry.get_sync_job(owner_id, job.job_id)
            logger.info(f"⏭️  Sync job {job.job_id} started elsewhere")
            return current or job

        logger.info(
            f"🔄 Sync job {started.job_id} → syncing (attempt {started.attempt}, "
            f"{connector_type.value}:{external_ref})"
        )
        self._arm_deadline(started)

        if self.dispatcher is None:
            return started

        try:
            await self.dispatcher.dispatch(started, self.on_sync_outcome)
        except Exception as e:
            logger.error(f"❌ Failed to dispatch sync job {started.job_id}: {e}", exc_info=True)
            await self.on_sync_outcome(
                started.job_id,
                SyncOutcome.failure(owner_id, started.attempt, f"DispatchFailure: {e}")
            )
            return await self.registry.get_sync_job(owner_id, started.job_id) or started

        return started

    # ============================================================================
    # OUTCOME
    # ============================================================================

    async def on_sync_outcome(self, job_id: str, outcome: SyncOutcome) -> bool:
        """
        Record the result of an attempt. Returns False (no-op) when the job is
        not syncing or the outcome belongs to an older attempt.
        """
        job = await self.registry.get_sync_job(outcome.owner_id, job_id)
        if job is None:
            logger.warning(f"⚠️  Outcome for unknown sync job {job_id}")
            return False
        if job.state != SyncState.SYNCING:
            logger.info(f"Ignoring outcome for sync job {job_id}: state is {job.state.value}")
            return False
        if outcome.attempt is not None and outcome.attempt != job.attempt:
            logger.info(f"Ignoring stale outcome for sync job {job_id} (attempt {outcome.attempt} != {job.attempt})")
            return False

        if outcome.succeeded:
            finished = job.model_copy(update={
                "state": SyncState.SYNCED,
                "last_error": None,
                "last_synced_at": self.clock(),
                "document_id": outcome.document_id or job.document_id,
                "deadline_at": None,
            })
        else:
            finished = job.model_copy(update={
                "state": SyncState.FAILED,
                "last_error": outcome.error or "Unknown error",
                "deadline_at": None,
            })

        applied = await self.registry.compare_and_set_sync_job(finished, SyncState.SYNCING, job.attempt)
        if applied:
            self._cancel_deadline(job)
            logger.info(f"🏁 Sync job {job_id} → {finished.state.value}")
        return applied

    # ============================================================================
    # DEADLINES
    # ============================================================================

    def _arm_deadline(self, job: SyncJob) -> None:
        key = (job.owner_id, job.job_id)
        self._cancel_deadline(job)
        loop = asyncio.get_running_loop()
        delay = max(0.0, (job.deadline_at - self.clock()).total_seconds())
        self._timers[key] = loop.call_later(
            delay,
            self._spawn_deadline,
            job.owner_id, job.job_id, job.attempt
        )

    def _cancel_deadline(self, job: SyncJob) -> None:
        handle = self._timers.pop((job.owner_id, job.job_id), None)
        if handle is not None:
            handle.cancel()

    def _spawn_deadline(self, owner_id: str, job_id: str, attempt: int) -> None:
        self._timers.pop((owner_id, job_id), None)
        task = asyncio.ensure_future(self._on_deadline(owner_id, job_id, attempt))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _on_deadline(self, owner_id: str, job_id: str, attempt: int) -> None:
        try:
            job = await self.registry.get_sync_job(owner_id, job_id)
            if job is not None and job.state == SyncState.SYNCING and job.attempt == attempt:
                await self._fail_timeout(job)
        except Exception as e:
            logger.error(f"❌ Deadline check failed for sync job {job_id}: {e}", exc_info=True)

    async def _fail_timeout(self, job: SyncJob) -> bool:
        timed_out = job.model_copy(update={
            "state": SyncState.FAILED,
            "last_error": TIMEOUT_ERROR,
            "deadline_at": None,
        })
        applied = await self.registry.compare_and_set_sync_job(timed_out, SyncState.SYNCING, job.attempt)
        if applied:
            self._cancel_deadline(job)
            logger.warning(f"⏱️  Sync job {job.job_id} attempt {job.attempt} timed out")
            if self.dispatcher is not None:
                self.dispatcher.cancel(job)
        return applied

    def _is_overdue(self, job: SyncJob) -> bool:
        return (
            job.state == SyncState.SYNCING
            and job.deadline_at is not None
            and job.deadline_at <= self.clock()
        )

    async def _expire_if_overdue(self, job: SyncJob) -> SyncJob:
        if not self._is_overdue(job):
            return job
        await self._fail_timeout(job)
        return await self.registry.get_sync_job(job.owner_id, job.job_id) or job

    async def expire_overdue(self, owner_id: str) -> int:
        """Fail every overdue syncing job of an owner. Returns number expired."""
        syncing = await self.registry.list_sync_jobs(owner_id, state=SyncState.SYNCING, limit=1000)
        expired = 0
        for job in syncing:
            if self._is_overdue(job) and await self._fail_timeout(job):
                expired += 1
        return expired

    # ============================================================================
    # READ
    # ============================================================================

    async def get_job(self, owner_id: str, job_id: str) -> SyncJob:
        job = await self.registry.get_sync_job(owner_id, job_id)
        if job is None:
            raise NotFound("Sync job not found")
        return await self._expire_if_overdue(job)

    async def list_jobs(
        self,
        owner_id: str,
        connector_type: Optional[ConnectorType] = None,
        state: Optional[SyncState] = None,
        limit: int = 100
    ) -> List[SyncJob]:
        await self.expire_overdue(owner_id)
        return await self.registry.list_sync_jobs(owner_id, connector_type, state, limit)

    async def shutdown(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()
        if self.dispatcher is not None:
            await self.dispatcher.shutdown()
