"""
Sync Dispatch
Hands a started sync attempt to something that will run it

- InProcessDispatcher: asyncio task in the API process (SYNC_DISPATCH_MODE=inline)
- DramatiqDispatcher: Redis queue, executed by worker.py (SYNC_DISPATCH_MODE=dramatiq)

Either way the outcome reaches SyncCoordinator.on_sync_outcome. A timed-out
in-process attempt is cancelled; a queued one is stopped by the ingestion guard.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Dict, Tuple

from app.models.records import SyncJob, SyncOutcome
from app.services.sync.runner import SyncRunner

logger = logging.getLogger(__name__)

DeliverOutcome = Callable[[str, SyncOutcome], Awaitable[bool]]


class SyncDispatcher(ABC):

    @abstractmethod
    async def dispatch(self, job: SyncJob, deliver: DeliverOutcome) -> None:
        """Schedule the attempt. Must not wait for it to finish."""

    def cancel(self, job: SyncJob) -> bool:
        """Stop a timed-out attempt if it is still running here. Returns True if one was cancelled."""
        return False

    async def shutdown(self) -> None:
        return None


AttemptKey = Tuple[str, str, int]


def attempt_key(job: SyncJob) -> AttemptKey:
    return (job.owner_id, job.job_id, job.attempt)


class InProcessDispatcher(SyncDispatcher):

    def __init__(self, runner: SyncRunner):
        self.runner = runner
        self._tasks: Dict[AttemptKey, asyncio.Task] = {}

    async def _run(self, job: SyncJob, deliver: DeliverOutcome) -> None:
        outcome = await self.runner.run(job)
        await deliver(job.job_id, outcome)

    async def dispatch(self, job: SyncJob, deliver: DeliverOutcome) -> None:
        key = attempt_key(job)
        task = asyncio.create_task(self._run(job, deliver))
        self._tasks[key] = task
        task.add_done_callback(lambda _: self._tasks.pop(key, None))

    def cancel(self, job: SyncJob) -> bool:
        task = self._tasks.pop(attempt_key(job), None)
        if task is None or task.done():
            return False
        task.cancel()
        logger.info(f"🛑 Cancelled sync job {job.job_id} attempt {job.attempt}")
        return True

    async def drain(self) -> None:
        """Wait for every running attempt (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


class DramatiqDispatcher(SyncDispatcher):
    """
    Enqueues run_connector_sync_task. The worker reports the outcome through
    its own coordinator against the shared Supabase registry, so deliver is
    not used here.
    """

    def __init__(self):
        from app.services.jobs.tasks import run_connector_sync_task
        self._actor = run_connector_sync_task

    async def dispatch(self, job: SyncJob, deliver: DeliverOutcome) -> None:
        message = self._actor.send(job.owner_id, job.job_id, job.attempt)
        logger.info(f"📤 Queued sync job {job.job_id} attempt {job.attempt} (message {message.message_id})")
