"""Unit tests for sync job coordination."""

import asyncio
from datetime import timedelta
from typing import List

import pytest

from app.core.errors import NotFound, ValidationFailure
from app.models.records import ConnectorType, SyncJob, SyncOutcome, SyncState, utcnow
from app.services.sync import SyncCoordinator, SyncDispatcher
from tests.conftest import OWNER_A, OWNER_B

DRIVE = ConnectorType.GOOGLE_DRIVE


class RecordingDispatcher(SyncDispatcher):
    """Records dispatched attempts; outcomes are delivered by the test."""

    def __init__(self, fail: bool = False):
        self.dispatched: List[SyncJob] = []
        self.cancelled: List[tuple] = []
        self.fail = fail

    async def dispatch(self, job, deliver):
        if self.fail:
            raise ConnectionError("redis unavailable")
        self.dispatched.append(job)

    def cancel(self, job):
        self.cancelled.append((job.job_id, job.attempt))
        return True


class ManualClock:
    def __init__(self):
        self.now = utcnow()

    def __call__(self):
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


# ============================================================================
# REQUEST
# ============================================================================

@pytest.mark.asyncio
async def test_request_sync_starts_first_attempt(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)

    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1", title="Budget")

    assert job.state == SyncState.SYNCING
    assert job.attempt == 1
    assert job.title == "Budget"
    assert job.deadline_at is not None
    assert [d.job_id for d in dispatcher.dispatched] == [job.job_id]
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_concurrent_requests_start_one_attempt(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)

    jobs = await asyncio.gather(*(coordinator.request_sync(OWNER_A, DRIVE, "file-1") for _ in range(10)))

    assert len({job.job_id for job in jobs}) == 1
    assert {job.attempt for job in jobs} == {1}
    assert len(dispatcher.dispatched) == 1
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_request_while_syncing_returns_same_job(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)

    first = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")
    second = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    assert second.job_id == first.job_id
    assert second.attempt == 1
    assert len(dispatcher.dispatched) == 1
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_same_ref_for_two_owners_are_separate_jobs(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)

    a = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")
    b = await coordinator.request_sync(OWNER_B, DRIVE, "file-1")

    assert a.job_id != b.job_id
    assert len(dispatcher.dispatched) == 2
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_upload_and_empty_ref_are_rejected(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher)

    with pytest.raises(ValidationFailure):
        await coordinator.request_sync(OWNER_A, ConnectorType.DIRECT_UPLOAD, "doc-1")
    with pytest.raises(ValidationFailure):
        await coordinator.request_sync(OWNER_A, DRIVE, "   ")
    assert dispatcher.dispatched == []


@pytest.mark.asyncio
async def test_dispatch_failure_fails_the_attempt(registry):
    coordinator = SyncCoordinator(registry, RecordingDispatcher(fail=True), deadline_seconds=300)

    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    assert job.state == SyncState.FAILED
    assert job.last_error.startswith("DispatchFailure:")
    await coordinator.shutdown()


# ============================================================================
# OUTCOMES
# ============================================================================

@pytest.mark.asyncio
async def test_success_outcome_marks_synced_and_retry_starts_new_attempt(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    applied = await coordinator.on_sync_outcome(job.job_id, SyncOutcome.success(OWNER_A, 1, "doc-9"))
    synced = await coordinator.get_job(OWNER_A, job.job_id)

    assert applied is True
    assert synced.state == SyncState.SYNCED
    assert synced.last_synced_at is not None
    assert synced.document_id == "doc-9"

    again = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")
    assert again.job_id == job.job_id
    assert again.attempt == 2
    assert again.state == SyncState.SYNCING
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_failure_outcome_records_reason(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    await coordinator.on_sync_outcome(job.job_id, SyncOutcome.failure(OWNER_A, 1, "AuthExpired"))

    failed = await coordinator.get_job(OWNER_A, job.job_id)
    assert failed.state == SyncState.FAILED
    assert failed.last_error == "AuthExpired"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_stale_outcome_is_ignored(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")
    await coordinator.on_sync_outcome(job.job_id, SyncOutcome.failure(OWNER_A, 1, "TransientUnavailable"))
    await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    applied = await coordinator.on_sync_outcome(job.job_id, SyncOutcome.success(OWNER_A, 1, "doc-old"))

    current = await coordinator.get_job(OWNER_A, job.job_id)
    assert applied is False
    assert current.state == SyncState.SYNCING
    assert current.attempt == 2
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_outcome_for_finished_job_is_ignored(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")
    await coordinator.on_sync_outcome(job.job_id, SyncOutcome.success(OWNER_A, 1))

    assert await coordinator.on_sync_outcome(job.job_id, SyncOutcome.failure(OWNER_A, 1, "late")) is False
    assert (await coordinator.get_job(OWNER_A, job.job_id)).state == SyncState.SYNCED
    await coordinator.shutdown()


# ============================================================================
# DEADLINES
# ============================================================================

@pytest.mark.asyncio
async def test_syncing_job_times_out_exactly_once(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=0.05)
    transitions = []
    original = registry.compare_and_set_sync_job

    async def spy(job, expected_state, expected_attempt):
        applied = await original(job, expected_state, expected_attempt)
        if applied and job.last_error == "Timeout":
            transitions.append(job.job_id)
        return applied

    registry.compare_and_set_sync_job = spy

    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")
    await asyncio.sleep(0.2)

    # lazy expiry paths must not time it out again
    await coordinator.expire_overdue(OWNER_A)
    timed_out = await coordinator.get_job(OWNER_A, job.job_id)
    late = await coordinator.on_sync_outcome(job.job_id, SyncOutcome.success(OWNER_A, 1))

    assert timed_out.state == SyncState.FAILED
    assert timed_out.last_error == "Timeout"
    assert transitions == [job.job_id]
    assert late is False
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_outcome_before_deadline_cancels_timeout(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=0.05)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    await coordinator.on_sync_outcome(job.job_id, SyncOutcome.success(OWNER_A, 1))
    await asyncio.sleep(0.1)

    assert (await coordinator.get_job(OWNER_A, job.job_id)).state == SyncState.SYNCED
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_timeout_cancels_the_running_attempt(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=0.05)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    await asyncio.sleep(0.2)
    await coordinator.expire_overdue(OWNER_A)

    assert dispatcher.cancelled == [(job.job_id, 1)]
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_recorded_outcome_does_not_cancel(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    await coordinator.on_sync_outcome(job.job_id, SyncOutcome.failure(OWNER_A, 1, "TransientUnavailable"))

    assert dispatcher.cancelled == []
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_overdue_job_is_expired_on_read(registry, dispatcher):
    clock = ManualClock()
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300, clock=clock)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    clock.advance(301)
    listed = await coordinator.list_jobs(OWNER_A)

    assert listed[0].state == SyncState.FAILED
    assert listed[0].last_error == "Timeout"
    assert (await coordinator.get_job(OWNER_A, job.job_id)).last_error == "Timeout"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_request_after_overdue_starts_new_attempt(registry, dispatcher):
    clock = ManualClock()
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300, clock=clock)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    clock.advance(301)
    retried = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    assert retried.job_id == job.job_id
    assert retried.attempt == 2
    assert retried.state == SyncState.SYNCING
    assert len(dispatcher.dispatched) == 2
    await coordinator.shutdown()


# ============================================================================
# READ
# ============================================================================

@pytest.mark.asyncio
async def test_get_job_of_other_owner_is_not_found(registry, dispatcher):
    coordinator = SyncCoordinator(registry, dispatcher, deadline_seconds=300)
    job = await coordinator.request_sync(OWNER_A, DRIVE, "file-1")

    with pytest.raises(NotFound):
        await coordinator.get_job(OWNER_B, job.job_id)
    await coordinator.shutdown()
