"""End-to-end sync attempts: vault → fetcher → ingestion → job state."""

import asyncio
from typing import Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from pydantic import SecretStr

from app.core.errors import NotFound, TransientUnavailable
from app.models.records import (
    ConnectorType,
    Credential,
    DocumentStatus,
    SyncState,
    TokenValidity,
)
from app.services.credentials import CredentialVault
from app.services.ingestion import DocumentIngestor
from app.services.sync import InProcessDispatcher, SyncCoordinator, SyncRunner, get_canonical_document_id
from app.services.sync.providers import FetchedFile
from tests.conftest import OWNER_A, FakeAuthority, make_extraction

DRIVE = ConnectorType.GOOGLE_DRIVE


def _fetcher(fetched: Optional[FetchedFile] = None, error: Optional[Exception] = None):
    fetcher = MagicMock()
    if error is not None:
        fetcher.fetch = AsyncMock(side_effect=error)
    else:
        fetcher.fetch = AsyncMock(return_value=fetched or FetchedFile(
            filename="budget.txt",
            title="Budget",
            data=b"Q3 budget figures are final.",
            mime_type="text/plain",
        ))
    return fetcher


def _stack(registry, index, authority, fetchers, deadline_seconds=300, **extraction):
    vault = CredentialVault(registry, authority)
    ingestor = DocumentIngestor(registry, make_extraction(**extraction), index)
    runner = SyncRunner(vault, fetchers, ingestor)
    dispatcher = InProcessDispatcher(runner)
    return SyncCoordinator(registry, dispatcher, deadline_seconds=deadline_seconds), dispatcher


async def _store_drive_credential(registry, refresh: Optional[str] = "refresh-1"):
    await registry.put_credential(Credential(
        owner_id=OWNER_A,
        connector_type=DRIVE,
        access_token=SecretStr("old-token"),
        refresh_token=SecretStr(refresh) if refresh else None,
    ))


async def _sync(coordinator, dispatcher, connector=DRIVE, ref="file-1"):
    job = await coordinator.request_sync(OWNER_A, connector, ref)
    await dispatcher.drain()
    return await coordinator.get_job(OWNER_A, job.job_id)


@pytest.mark.asyncio
async def test_expired_token_is_refreshed_and_sync_succeeds(registry, index):
    await _store_drive_credential(registry)
    authority = FakeAuthority(validity={"old-token": TokenValidity.INVALID})
    fetcher = _fetcher()
    coordinator, dispatcher = _stack(registry, index, authority, {DRIVE: fetcher})

    job = await _sync(coordinator, dispatcher)

    assert job.state == SyncState.SYNCED
    assert job.last_synced_at is not None
    assert job.last_error is None
    assert job.document_id == get_canonical_document_id(OWNER_A, DRIVE, "file-1")
    assert fetcher.fetch.call_args.args == ("file-1", "new-token")

    credential = await registry.get_credential(OWNER_A, DRIVE)
    assert credential.access_token.get_secret_value() == "new-token"

    document = await registry.get_document(OWNER_A, job.document_id)
    assert document.status == DocumentStatus.COMPLETED
    assert document.source == DRIVE
    assert document.metadata["sync_job_id"] == job.job_id
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_rejected_token_without_refresh_token_fails_with_auth_expired(registry, index):
    await _store_drive_credential(registry, refresh=None)
    authority = FakeAuthority(validity={"old-token": TokenValidity.INVALID})
    fetcher = _fetcher()
    coordinator, dispatcher = _stack(registry, index, authority, {DRIVE: fetcher})

    job = await _sync(coordinator, dispatcher)

    assert job.state == SyncState.FAILED
    assert job.last_error == "AuthExpired"
    fetcher.fetch.assert_not_called()
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_upstream_outage_fails_with_transient_reason(registry, index):
    await _store_drive_credential(registry)
    fetcher = _fetcher(error=TransientUnavailable("google-drive unavailable (503)"))
    coordinator, dispatcher = _stack(registry, index, FakeAuthority(), {DRIVE: fetcher})

    job = await _sync(coordinator, dispatcher)

    assert job.state == SyncState.FAILED
    assert job.last_error == "TransientUnavailable"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_missing_upstream_file_reports_kind_and_message(registry, index):
    await _store_drive_credential(registry)
    fetcher = _fetcher(error=NotFound("google-drive file metadata not found"))
    coordinator, dispatcher = _stack(registry, index, FakeAuthority(), {DRIVE: fetcher})

    job = await _sync(coordinator, dispatcher)

    assert job.last_error == "NotFound: google-drive file metadata not found"
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_empty_extraction_fails_with_extraction_failure(registry, index):
    await _store_drive_credential(registry)
    fetcher = _fetcher(FetchedFile(filename="scan.pdf", title="Scan", data=b"%PDF", mime_type="application/pdf"))
    coordinator, dispatcher = _stack(registry, index, FakeAuthority(), {DRIVE: fetcher})

    job = await _sync(coordinator, dispatcher)

    assert job.state == SyncState.FAILED
    assert job.last_error.startswith("ExtractionFailure:")
    document = await registry.get_document(OWNER_A, get_canonical_document_id(OWNER_A, DRIVE, "file-1"))
    assert document.status == DocumentStatus.FAILED
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_web_crawler_needs_no_credential(registry, index):
    authority = FakeAuthority()
    fetcher = _fetcher(FetchedFile(
        filename="docs", title="Docs", data=b"Public handbook text.", mime_type="text/plain"
    ))
    coordinator, dispatcher = _stack(registry, index, authority, {ConnectorType.WEB_CRAWLER: fetcher})

    job = await _sync(coordinator, dispatcher, ConnectorType.WEB_CRAWLER, "https://example.com/docs")

    assert job.state == SyncState.SYNCED
    assert fetcher.fetch.call_args.args == ("https://example.com/docs", None)
    assert authority.validated == []
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_resync_updates_same_document(registry, index):
    await _store_drive_credential(registry)
    fetcher = _fetcher()
    coordinator, dispatcher = _stack(registry, index, FakeAuthority(), {DRIVE: fetcher})

    first = await _sync(coordinator, dispatcher)
    fetcher.fetch.return_value = FetchedFile(
        filename="budget.txt", title="Budget", data=b"Q4 budget figures.", mime_type="text/plain"
    )
    second = await _sync(coordinator, dispatcher)

    assert second.attempt == 2
    assert second.document_id == first.document_id
    documents = await registry.list_documents(OWNER_A)
    assert len(documents) == 1
    assert documents[0].content == "Q4 budget figures."
    await coordinator.shutdown()


# ============================================================================
# TIMED-OUT ATTEMPTS
# ============================================================================

WEB = ConnectorType.WEB_CRAWLER
PAGE_URL = "https://example.com/changelog"


def _slow_then_fast_fetcher(delay: float = 0.3):
    """First fetch hangs past the deadline with old content; later fetches are instant."""
    calls = []

    async def fetch(external_ref, access_token=None):
        calls.append(external_ref)
        if len(calls) == 1:
            await asyncio.sleep(delay)
            return FetchedFile(filename="changelog", title="Changelog", data=b"OLD stale content.", mime_type="text/plain")
        return FetchedFile(filename="changelog", title="Changelog", data=b"NEW fresh content.", mime_type="text/plain")

    fetcher = MagicMock()
    fetcher.fetch = AsyncMock(side_effect=fetch)
    return fetcher


@pytest.mark.asyncio
async def test_timed_out_attempt_cannot_overwrite_retry(registry, index):
    fetcher = _slow_then_fast_fetcher()
    coordinator, dispatcher = _stack(registry, index, FakeAuthority(), {WEB: fetcher}, deadline_seconds=0.05)

    job = await coordinator.request_sync(OWNER_A, WEB, PAGE_URL)
    await asyncio.sleep(0.1)
    timed_out = await coordinator.get_job(OWNER_A, job.job_id)

    retried = await coordinator.request_sync(OWNER_A, WEB, PAGE_URL)
    await dispatcher.drain()
    await asyncio.sleep(0.35)

    final = await coordinator.get_job(OWNER_A, job.job_id)
    document = await registry.get_document(OWNER_A, final.document_id)

    assert timed_out.state == SyncState.FAILED
    assert timed_out.last_error == "Timeout"
    assert retried.attempt == 2
    assert final.state == SyncState.SYNCED
    assert final.attempt == 2
    assert document.content == "NEW fresh content."
    assert await index.search(OWNER_A, "OLD stale content.", threshold=0.5) == []
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_queued_attempt_that_outlives_deadline_does_not_write(registry, index):
    # no in-process dispatcher: the attempt runs elsewhere and cannot be cancelled
    fetcher = _slow_then_fast_fetcher()
    ingestor = DocumentIngestor(registry, make_extraction(), index)
    runner = SyncRunner(CredentialVault(registry, FakeAuthority()), {WEB: fetcher}, ingestor)
    coordinator = SyncCoordinator(registry, None, deadline_seconds=0.05)

    first = await coordinator.request_sync(OWNER_A, WEB, PAGE_URL)
    stale_run = asyncio.create_task(runner.run(first))
    await asyncio.sleep(0.1)

    second = await coordinator.request_sync(OWNER_A, WEB, PAGE_URL)
    assert await coordinator.on_sync_outcome(second.job_id, await runner.run(second)) is True

    stale_outcome = await stale_run
    assert stale_outcome.error.startswith("Timeout")
    assert await coordinator.on_sync_outcome(first.job_id, stale_outcome) is False

    job = await coordinator.get_job(OWNER_A, first.job_id)
    document = await registry.get_document(OWNER_A, job.document_id)
    assert job.state == SyncState.SYNCED
    assert document.status == DocumentStatus.COMPLETED
    assert document.content == "NEW fresh content."
    await coordinator.shutdown()


@pytest.mark.asyncio
async def test_failed_resync_removes_old_chunks_from_search(registry, index):
    await _store_drive_credential(registry)
    fetcher = _fetcher(FetchedFile(filename="notes.txt", title="Notes", data=b"alpha beta gamma.", mime_type="text/plain"))
    coordinator, dispatcher = _stack(registry, index, FakeAuthority(), {DRIVE: fetcher})

    first = await _sync(coordinator, dispatcher)
    assert await index.search(OWNER_A, "alpha beta", threshold=0.5)

    fetcher.fetch.return_value = FetchedFile(filename="notes.txt", title="Notes", data=b"   ", mime_type="text/plain")
    second = await _sync(coordinator, dispatcher)

    document = await registry.get_document(OWNER_A, first.document_id)
    assert second.state == SyncState.FAILED
    assert document.status == DocumentStatus.FAILED
    assert document.content == ""
    assert await index.search(OWNER_A, "alpha beta", threshold=0.5) == []
    await coordinator.shutdown()
