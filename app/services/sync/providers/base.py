"""
Connector Fetcher Base
Shared HTTP error classification for connector content downloads

Status mapping (after transport retries are exhausted):
- 401/403 → AuthExpired
- 404 → NotFound
- 429, 5xx, transport errors → TransientUnavailable
- other 4xx → ValidationFailure
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from app.core.circuit_breakers import with_upstream_retry
from app.core.errors import AuthExpired, NotFound, TransientUnavailable, ValidationFailure
from app.models.records import ConnectorType

logger = logging.getLogger(__name__)


@dataclass
class FetchedFile:
    """One downloaded connector file, ready for DocumentIngestor.ingest_file."""
    filename: str
    title: str
    data: bytes
    mime_type: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def raise_for_upstream(response: httpx.Response, connector_type: ConnectorType, what: str) -> None:
    if response.is_success:
        return
    status = response.status_code
    label = f"{connector_type.value} {what}"
    if status in (401, 403):
        logger.warning(f"⚠️  {label}: access denied ({status})")
        raise AuthExpired()
    if status == 404:
        raise NotFound(f"{label} not found")
    if status == 429 or status >= 500:
        logger.warning(f"⚠️  {label}: upstream unavailable ({status})")
        raise TransientUnavailable(f"{label} unavailable ({status})")
    raise ValidationFailure(f"{label} rejected the request ({status})")


class ConnectorFetcher(ABC):
    """Downloads a single external file for one connector type."""

    connector_type: ConnectorType

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    @with_upstream_retry(max_attempts=3)
    async def _send(self, method: str, url: str, **kwargs) -> httpx.Response:
        return await self.http_client.request(method, url, **kwargs)

    async def request(self, method: str, url: str, what: str, **kwargs) -> httpx.Response:
        try:
            response = await self._send(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.error(f"❌ {self.connector_type.value} {what}: {type(e).__name__}: {e}")
            raise TransientUnavailable(f"{self.connector_type.value} unreachable")
        raise_for_upstream(response, self.connector_type, what)
        return response

    @abstractmethod
    async def fetch(self, external_ref: str, access_token: Optional[str]) -> FetchedFile:
        """Download the file identified by external_ref."""
