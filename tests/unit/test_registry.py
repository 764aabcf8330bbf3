"""Unit tests for the sync registry backends."""

from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from app.core.errors import ValidationFailure
from app.models.records import (
    ConnectorType,
    Credential,
    Document,
    DocumentStatus,
    SyncJob,
    SyncState,
    utcnow,
)
from app.services.registry.supabase_registry import SupabaseRegistry
from tests.conftest import OWNER_A, OWNER_B


def _job(owner_id=OWNER_A, ref="file-1", **kwargs):
    return SyncJob(owner_id=owner_id, connector_type=ConnectorType.GOOGLE_DRIVE, external_ref=ref, **kwargs)


# ============================================================================
# OWNERSHIP
# ============================================================================

@pytest.mark.asyncio
async def test_reads_without_owner_are_rejected(registry):
    with pytest.raises(ValidationFailure):
        await registry.get_document("", "doc-1")
    with pytest.raises(ValidationFailure):
        await registry.list_sync_jobs("   ")


@pytest.mark.asyncio
async def test_writes_without_owner_are_rejected(registry):
    with pytest.raises(ValidationFailure):
        await registry.put_document(Document(owner_id="", title="x"))


@pytest.mark.asyncio
async def test_records_are_invisible_to_other_owners(registry):
    document = await registry.put_document(Document(owner_id=OWNER_A, title="Plan"))

    assert await registry.get_document(OWNER_B, document.document_id) is None
    assert await registry.list_documents(OWNER_B) == []
    assert await registry.delete_document(OWNER_B, document.document_id) is False
    assert await registry.get_document(OWNER_A, document.document_id) is not None


# ============================================================================
# SYNC JOBS
# ============================================================================

@pytest.mark.asyncio
async def test_create_sync_job_returns_existing_for_same_key(registry):
    first = await registry.create_sync_job(_job())
    second = await registry.create_sync_job(_job())

    assert second.job_id == first.job_id
    assert len(await registry.list_sync_jobs(OWNER_A)) == 1


@pytest.mark.asyncio
async def test_same_ref_for_different_owners_are_separate_jobs(registry):
    a = await registry.create_sync_job(_job(owner_id=OWNER_A))
    b = await registry.create_sync_job(_job(owner_id=OWNER_B))

    assert a.job_id != b.job_id


@pytest.mark.asyncio
async def test_compare_and_set_applies_only_on_expected_state_and_attempt(registry):
    job = await registry.create_sync_job(_job())
    syncing = job.model_copy(update={"state": SyncState.SYNCING, "attempt": 1})

    assert await registry.compare_and_set_sync_job(syncing, SyncState.PENDING, 0) is True
    # stale writer still expecting pending/0
    assert await registry.compare_and_set_sync_job(syncing, SyncState.PENDING, 0) is False

    done = syncing.model_copy(update={"state": SyncState.SYNCED})
    assert await registry.compare_and_set_sync_job(done, SyncState.SYNCING, 2) is False
    assert await registry.compare_and_set_sync_job(done, SyncState.SYNCING, 1) is True

    stored = await registry.get_sync_job(OWNER_A, job.job_id)
    assert stored.state == SyncState.SYNCED
    assert stored.attempt == 1


@pytest.mark.asyncio
async def test_list_sync_jobs_filters_by_state_and_connector(registry):
    await registry.create_sync_job(_job(ref="a"))
    job_b = await registry.create_sync_job(_job(ref="b"))
    await registry.create_sync_job(SyncJob(owner_id=OWNER_A, connector_type=ConnectorType.NOTION, external_ref="p"))
    await registry.compare_and_set_sync_job(
        job_b.model_copy(update={"state": SyncState.SYNCING, "attempt": 1}), SyncState.PENDING, 0
    )

    syncing = await registry.list_sync_jobs(OWNER_A, state=SyncState.SYNCING)
    drive = await registry.list_sync_jobs(OWNER_A, connector_type=ConnectorType.GOOGLE_DRIVE)

    assert [j.external_ref for j in syncing] == ["b"]
    assert sorted(j.external_ref for j in drive) == ["a", "b"]


@pytest.mark.asyncio
async def test_stored_job_is_not_mutated_through_returned_copy(registry):
    job = await registry.create_sync_job(_job())
    fetched = await registry.get_sync_job(OWNER_A, job.job_id)
    fetched.state = SyncState.FAILED

    assert (await registry.get_sync_job(OWNER_A, job.job_id)).state == SyncState.PENDING


# ============================================================================
# DOCUMENTS / CREDENTIALS
# ============================================================================

@pytest.mark.asyncio
async def test_list_documents_newest_first_with_filters(registry):
    now = utcnow()
    await registry.put_document(Document(owner_id=OWNER_A, title="old", created_at=now - timedelta(hours=1)))
    await registry.put_document(Document(
        owner_id=OWNER_A, title="new", status=DocumentStatus.COMPLETED, created_at=now
    ))

    titles = [d.title for d in await registry.list_documents(OWNER_A)]
    completed = await registry.list_documents(OWNER_A, status=DocumentStatus.COMPLETED)

    assert titles == ["new", "old"]
    assert [d.title for d in completed] == ["new"]


@pytest.mark.asyncio
async def test_put_credential_replaces_and_stamps_updated_at(registry):
    old = utcnow() - timedelta(days=1)
    credential = Credential(
        owner_id=OWNER_A,
        connector_type=ConnectorType.NOTION,
        access_token=SecretStr("tok-1"),
        updated_at=old,
    )
    await registry.put_credential(credential)
    await registry.put_credential(credential.model_copy(update={"access_token": SecretStr("tok-2")}))

    stored = await registry.get_credential(OWNER_A, ConnectorType.NOTION)
    assert stored.access_token.get_secret_value() == "tok-2"
    assert stored.updated_at > old
    assert len(await registry.list_credentials(OWNER_A)) == 1
    assert await registry.delete_credential(OWNER_A, ConnectorType.NOTION) is True
    assert await registry.get_credential(OWNER_A, ConnectorType.NOTION) is None


# ============================================================================
# SUPABASE BACKEND
# ============================================================================

def _chain(data):
    """Query builder mock: every builder method returns itself, execute() returns data."""
    query = MagicMock()
    for method in ("select", "eq", "limit", "order", "update", "upsert", "delete"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)
    client = MagicMock()
    client.table.return_value = query
    return client, query


@pytest.mark.asyncio
async def test_supabase_compare_and_set_filters_on_owner_id_state_and_attempt():
    client, query = _chain(data=[{"id": "job-1"}])
    registry = SupabaseRegistry(client)
    job = _job(job_id="job-1", state=SyncState.SYNCED, attempt=2)

    applied = await registry.compare_and_set_sync_job(job, SyncState.SYNCING, 2)

    assert applied is True
    client.table.assert_called_with("sync_jobs")
    row = query.update.call_args[0][0]
    assert row["id"] == "job-1"
    assert "job_id" not in row
    eq_calls = [c.args for c in query.eq.call_args_list]
    assert ("owner_id", OWNER_A) in eq_calls
    assert ("id", "job-1") in eq_calls
    assert ("state", "syncing") in eq_calls
    assert ("attempt", 2) in eq_calls


@pytest.mark.asyncio
async def test_supabase_compare_and_set_reports_lost_race():
    client, _ = _chain(data=[])
    registry = SupabaseRegistry(client)

    assert await registry.compare_and_set_sync_job(_job(), SyncState.SYNCING, 1) is False


@pytest.mark.asyncio
async def test_supabase_maps_rows_back_to_documents():
    now = utcnow().isoformat()
    client, _ = _chain(data=[{
        "id": "doc-1",
        "owner_id": OWNER_A,
        "title": "Spec",
        "kind": "pdf",
        "source": "google-drive",
        "status": "completed",
        "content": "hello",
        "extraction_meta": '{"ocr": true}',
        "metadata": None,
        "created_at": now,
        "updated_at": now,
    }])
    registry = SupabaseRegistry(client)

    document = await registry.get_document(OWNER_A, "doc-1")

    assert document.document_id == "doc-1"
    assert document.source == ConnectorType.GOOGLE_DRIVE
    assert document.extraction_meta.ocr is True
    assert document.metadata == {}


@pytest.mark.asyncio
async def test_supabase_document_upsert_is_keyed_on_owner_and_id():
    client, query = _chain(data=[])
    registry = SupabaseRegistry(client)

    document = await registry.put_document(Document(owner_id=OWNER_A, title="Plan"))

    client.table.assert_called_with("documents")
    row = query.upsert.call_args.args[0]
    assert row["owner_id"] == OWNER_A
    assert row["id"] == document.document_id
    assert query.upsert.call_args.kwargs["on_conflict"] == "owner_id,id"
