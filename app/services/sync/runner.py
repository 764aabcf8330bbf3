"""
Connector Sync Runner
Executes one sync attempt: token → fetch → ingest → SyncOutcome

Never raises. Every failure becomes a failure outcome whose error is the
reason shown on the job (AuthExpired, TransientUnavailable,
"ExtractionFailure: ...", "<ErrorType>: message").
"""
import logging
from typing import Dict, Optional

from app.core.errors import AuthExpired, KnowledgeError, TransientUnavailable, ValidationFailure
from app.models.records import (
    ConnectorType,
    DocumentStatus,
    SyncJob,
    SyncOutcome,
    SyncState,
    requires_credentials,
)
from app.services.credentials.vault import CredentialVault
from app.services.ingestion.documents import AttemptGuard, DocumentIngestor
from app.services.registry.base import SyncRegistry
from app.services.sync.canonical import get_canonical_document_id
from app.services.sync.providers.base import ConnectorFetcher

logger = logging.getLogger(__name__)


class SyncRunner:
    """
    Args:
        vault: Source of access tokens for credentialed connectors
        fetchers: ConnectorType → fetcher (see providers.build_fetchers)
        ingestor: Document ingestion pipeline
        registry: Sync job storage used to check an attempt is still current
            (defaults to the ingestor's registry)
    """

    def __init__(
        self,
        vault: CredentialVault,
        fetchers: Dict[ConnectorType, ConnectorFetcher],
        ingestor: DocumentIngestor,
        registry: Optional[SyncRegistry] = None
    ):
        self.vault = vault
        self.fetchers = fetchers
        self.ingestor = ingestor
        self.registry = registry or ingestor.registry

    def _attempt_guard(self, job: SyncJob) -> AttemptGuard:
        async def still_current() -> bool:
            current = await self.registry.get_sync_job(job.owner_id, job.job_id)
            return (
                current is not None
                and current.state == SyncState.SYNCING
                and current.attempt == job.attempt
            )
        return still_current

    async def _access_token(self, job: SyncJob) -> Optional[str]:
        if not requires_credentials(job.connector_type):
            return None
        token, refreshed = await self.vault.get_valid_access_token(job.owner_id, job.connector_type)
        if refreshed:
            logger.info(f"   🔄 Using refreshed {job.connector_type.value} token for job {job.job_id}")
        return token

    async def _execute(self, job: SyncJob) -> SyncOutcome:
        fetcher = self.fetchers.get(job.connector_type)
        if fetcher is None:
            raise ValidationFailure(f"Connector '{job.connector_type.value}' cannot be synced")

        token = await self._access_token(job)
        fetched = await fetcher.fetch(job.external_ref, token)

        document = await self.ingestor.ingest_file(
            owner_id=job.owner_id,
            title=job.title or fetched.title,
            data=fetched.data,
            filename=fetched.filename,
            mime_type=fetched.mime_type,
            source=job.connector_type,
            source_ref=job.external_ref,
            document_id=get_canonical_document_id(job.owner_id, job.connector_type, job.external_ref),
            metadata={**fetched.metadata, "sync_job_id": job.job_id},
            guard=self._attempt_guard(job),
        )

        if document.status == DocumentStatus.FAILED:
            reason = document.extraction_meta.error or "Unknown error"
            if not document.content:
                reason = f"ExtractionFailure: {reason}"
            return SyncOutcome.failure(job.owner_id, job.attempt, reason)

        return SyncOutcome.success(job.owner_id, job.attempt, document.document_id)

    async def run(self, job: SyncJob) -> SyncOutcome:
        logger.info(
            f"🚀 Sync attempt {job.attempt} for {job.connector_type.value}:{job.external_ref} "
            f"(job {job.job_id}, owner {job.owner_id})"
        )
        try:
            outcome = await self._execute(job)
        except AuthExpired:
            outcome = SyncOutcome.failure(job.owner_id, job.attempt, AuthExpired.kind)
        except TransientUnavailable:
            outcome = SyncOutcome.failure(job.owner_id, job.attempt, TransientUnavailable.kind)
        except KnowledgeError as e:
            outcome = SyncOutcome.failure(job.owner_id, job.attempt, f"{e.kind}: {e.message}")
        except Exception as e:
            logger.error(f"❌ Sync job {job.job_id} crashed: {e}", exc_info=True)
            outcome = SyncOutcome.failure(job.owner_id, job.attempt, f"{type(e).__name__}: {e}")

        if outcome.succeeded:
            logger.info(f"✅ Sync job {job.job_id} attempt {job.attempt} succeeded → {outcome.document_id}")
        else:
            logger.warning(f"❌ Sync job {job.job_id} attempt {job.attempt} failed: {outcome.error}")
        return outcome
