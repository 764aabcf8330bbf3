"""
Supabase Registry
Persists credentials, sync jobs and documents in Supabase tables

Tables:
- connector_credentials (unique owner_id, connector_type)
- sync_jobs (unique owner_id, connector_type, external_ref)
- documents

Every query is filtered by owner_id in addition to row-level security.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from supabase import Client

from app.models.records import (
    ConnectorType,
    Credential,
    Document,
    DocumentStatus,
    ExtractionMeta,
    SyncJob,
    SyncState,
)
from app.services.registry.base import SyncRegistry

logger = logging.getLogger(__name__)

CREDENTIALS_TABLE = "connector_credentials"
SYNC_JOBS_TABLE = "sync_jobs"
DOCUMENTS_TABLE = "documents"


# ============================================================================
# ROW MAPPING
# ============================================================================

def _credential_to_row(credential: Credential) -> Dict[str, Any]:
    return {
        "owner_id": credential.owner_id,
        "connector_type": credential.connector_type.value,
        "access_token": credential.access_token.get_secret_value(),
        "refresh_token": credential.refresh_token.get_secret_value() if credential.refresh_token else None,
        "expires_at": credential.expires_at.isoformat() if credential.expires_at else None,
        "scope": credential.scope,
        "created_at": credential.created_at.isoformat(),
        "updated_at": credential.updated_at.isoformat(),
    }


def _row_to_credential(row: Dict[str, Any]) -> Credential:
    return Credential.model_validate(row)


def _job_to_row(job: SyncJob) -> Dict[str, Any]:
    row = job.model_dump(mode="json")
    row["id"] = row.pop("job_id")
    return row


def _row_to_job(row: Dict[str, Any]) -> SyncJob:
    data = dict(row)
    data["job_id"] = data.pop("id")
    return SyncJob.model_validate(data)


def _document_to_row(document: Document) -> Dict[str, Any]:
    row = document.model_dump(mode="json")
    row["id"] = row.pop("document_id")
    return row


def _row_to_document(row: Dict[str, Any]) -> Document:
    data = dict(row)
    data["document_id"] = data.pop("id")
    # jsonb columns may come back as strings through some PostgREST proxies
    for key in ("extraction_meta", "metadata"):
        if isinstance(data.get(key), str):
            data[key] = json.loads(data[key])
    if data.get("extraction_meta") is None:
        data["extraction_meta"] = ExtractionMeta()
    if data.get("metadata") is None:
        data["metadata"] = {}
    return Document.model_validate(data)


class SupabaseRegistry(SyncRegistry):
    """Registry backed by the Supabase client (service role)."""

    def __init__(self, client: Client):
        self.client = client

    # ============================================================================
    # CREDENTIALS
    # ============================================================================

    async def _get_credential(self, owner_id, connector_type):
        result = self.client.table(CREDENTIALS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("connector_type", connector_type.value)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return _row_to_credential(result.data[0])

    async def _put_credential(self, credential):
        self.client.table(CREDENTIALS_TABLE).upsert(
            _credential_to_row(credential),
            on_conflict="owner_id,connector_type"
        ).execute()
        logger.debug(f"Stored {credential.connector_type.value} credential for owner {credential.owner_id}")
        return credential

    async def _delete_credential(self, owner_id, connector_type):
        result = self.client.table(CREDENTIALS_TABLE)\
            .delete()\
            .eq("owner_id", owner_id)\
            .eq("connector_type", connector_type.value)\
            .execute()
        return bool(result.data)

    async def _list_credentials(self, owner_id):
        result = self.client.table(CREDENTIALS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)\
            .execute()
        return [_row_to_credential(row) for row in result.data or []]

    # ============================================================================
    # SYNC JOBS
    # ============================================================================

    async def _get_sync_job(self, owner_id, job_id):
        result = self.client.table(SYNC_JOBS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("id", job_id)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return _row_to_job(result.data[0])

    async def _find_sync_job(self, owner_id, connector_type, external_ref):
        result = self.client.table(SYNC_JOBS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("connector_type", connector_type.value)\
            .eq("external_ref", external_ref)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return _row_to_job(result.data[0])

    async def _create_sync_job(self, job):
        # ON CONFLICT DO NOTHING, then read back whichever row won
        self.client.table(SYNC_JOBS_TABLE).upsert(
            _job_to_row(job),
            on_conflict="owner_id,connector_type,external_ref",
            ignore_duplicates=True
        ).execute()
        stored = await self._find_sync_job(job.owner_id, job.connector_type, job.external_ref)
        return stored or job

    async def _compare_and_set_sync_job(self, job, expected_state, expected_attempt):
        row = _job_to_row(job)
        result = self.client.table(SYNC_JOBS_TABLE)\
            .update(row)\
            .eq("owner_id", job.owner_id)\
            .eq("id", job.job_id)\
            .eq("state", expected_state.value)\
            .eq("attempt", expected_attempt)\
            .execute()
        applied = bool(result.data)
        if not applied:
            logger.debug(
                f"CAS rejected for sync job {job.job_id} "
                f"(expected {expected_state.value}#{expected_attempt})"
            )
        return applied

    async def _list_sync_jobs(self, owner_id, connector_type, state, limit):
        query = self.client.table(SYNC_JOBS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)
        if connector_type is not None:
            query = query.eq("connector_type", ConnectorType(connector_type).value)
        if state is not None:
            query = query.eq("state", SyncState(state).value)
        result = query.order("updated_at", desc=True).limit(limit).execute()
        return [_row_to_job(row) for row in result.data or []]

    # ============================================================================
    # DOCUMENTS
    # ============================================================================

    async def _get_document(self, owner_id, document_id):
        result = self.client.table(DOCUMENTS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)\
            .eq("id", document_id)\
            .limit(1)\
            .execute()
        if not result.data:
            return None
        return _row_to_document(result.data[0])

    async def _put_document(self, document):
        self.client.table(DOCUMENTS_TABLE).upsert(
            _document_to_row(document),
            on_conflict="owner_id,id"
        ).execute()
        return document

    async def _delete_document(self, owner_id, document_id):
        result = self.client.table(DOCUMENTS_TABLE)\
            .delete()\
            .eq("owner_id", owner_id)\
            .eq("id", document_id)\
            .execute()
        return bool(result.data)

    async def _list_documents(self, owner_id, status, source, limit):
        query = self.client.table(DOCUMENTS_TABLE)\
            .select("*")\
            .eq("owner_id", owner_id)
        if status is not None:
            query = query.eq("status", DocumentStatus(status).value)
        if source is not None:
            query = query.eq("source", ConnectorType(source).value)
        query = query.order("created_at", desc=True)
        if limit is not None:
            query = query.limit(limit)
        result = query.execute()
        return [_row_to_document(row) for row in result.data or []]
