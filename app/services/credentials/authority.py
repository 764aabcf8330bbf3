"""
OAuth Token Authority
Validates and refreshes connector access tokens against the upstream providers

Classification:
- validate: 2xx → VALID, 401/403 → INVALID, anything else (network, 5xx, 429) → UNKNOWN
- refresh:  2xx → TokenGrant, 400/401/403 → AuthExpired, network/5xx/other → TransientUnavailable

The authority never retries; callers decide.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import httpx

from app.core.config import settings
from app.core.errors import AuthExpired, TransientUnavailable, ValidationFailure
from app.models.records import ConnectorType, TokenGrant, TokenValidity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderEndpoints:
    validate_url: str
    refresh_url: str
    # Google tokeninfo reports an unknown/expired token as 400 invalid_token
    extra_invalid_statuses: Tuple[int, ...] = ()


GOOGLE_ENDPOINTS = ProviderEndpoints(
    validate_url="https://www.googleapis.com/oauth2/v1/tokeninfo",
    refresh_url="https://oauth2.googleapis.com/token",
    extra_invalid_statuses=(400,),
)
NOTION_ENDPOINTS = ProviderEndpoints(
    validate_url="https://api.notion.com/v1/users/me",
    refresh_url="https://api.notion.com/v1/oauth/token",
)
GITHUB_ENDPOINTS = ProviderEndpoints(
    validate_url="https://api.github.com/user",
    refresh_url="https://github.com/login/oauth/access_token",
)


def endpoints_for(connector_type: ConnectorType) -> ProviderEndpoints:
    if connector_type == ConnectorType.GOOGLE_DRIVE:
        return GOOGLE_ENDPOINTS
    elif connector_type == ConnectorType.NOTION:
        return NOTION_ENDPOINTS
    elif connector_type == ConnectorType.GITHUB:
        return GITHUB_ENDPOINTS
    elif connector_type in (ConnectorType.WEB_CRAWLER, ConnectorType.DIRECT_UPLOAD):
        raise ValidationFailure(f"Connector '{connector_type.value}' does not use credentials")
    raise ValueError(f"Unknown connector type: {connector_type}")


class OAuthTokenAuthority:
    """
    Upstream token authority for Google Drive, Notion and GitHub.

    Args:
        http_client: Shared async HTTP client (timeouts configured by the owner)
    """

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    # ============================================================================
    # VALIDATE
    # ============================================================================

    async def validate(self, connector_type: ConnectorType, access_token: str) -> TokenValidity:
        endpoints = endpoints_for(connector_type)
        headers = {"Authorization": f"Bearer {access_token}"}
        if connector_type == ConnectorType.NOTION:
            headers["Notion-Version"] = settings.notion_api_version
        elif connector_type == ConnectorType.GITHUB:
            headers["Accept"] = "application/vnd.github+json"

        try:
            response = await self.http_client.get(endpoints.validate_url, headers=headers)
        except httpx.HTTPError as e:
            logger.warning(f"⚠️  {connector_type.value} token probe failed: {type(e).__name__}: {e}")
            return TokenValidity.UNKNOWN

        if response.is_success:
            return TokenValidity.VALID
        if response.status_code in (401, 403) or response.status_code in endpoints.extra_invalid_statuses:
            logger.info(f"{connector_type.value} access token rejected ({response.status_code})")
            return TokenValidity.INVALID

        logger.warning(f"⚠️  {connector_type.value} token probe inconclusive ({response.status_code})")
        return TokenValidity.UNKNOWN

    # ============================================================================
    # REFRESH
    # ============================================================================

    def _refresh_request(self, connector_type: ConnectorType, refresh_token: str) -> Dict[str, Any]:
        """Build httpx.post kwargs for a refresh_token grant."""
        if connector_type == ConnectorType.GOOGLE_DRIVE:
            return {
                "data": {
                    "client_id": settings.google_client_id or "",
                    "client_secret": settings.google_client_secret or "",
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
            }
        elif connector_type == ConnectorType.NOTION:
            return {
                "json": {"grant_type": "refresh_token", "refresh_token": refresh_token},
                "auth": (settings.notion_client_id or "", settings.notion_client_secret or ""),
                "headers": {"Notion-Version": settings.notion_api_version},
            }
        elif connector_type == ConnectorType.GITHUB:
            return {
                "data": {
                    "client_id": settings.github_client_id or "",
                    "client_secret": settings.github_client_secret or "",
                    "refresh_token": refresh_token,
                    "grant_type": "refresh_token",
                },
                "headers": {"Accept": "application/json"},
            }
        endpoints_for(connector_type)
        raise ValueError(f"Unknown connector type: {connector_type}")

    async def refresh(self, connector_type: ConnectorType, refresh_token: str) -> TokenGrant:
        endpoints = endpoints_for(connector_type)
        request_kwargs = self._refresh_request(connector_type, refresh_token)

        try:
            response = await self.http_client.post(endpoints.refresh_url, **request_kwargs)
        except httpx.HTTPError as e:
            logger.error(f"❌ {connector_type.value} token refresh unreachable: {type(e).__name__}: {e}")
            raise TransientUnavailable(f"{connector_type.value} token endpoint unreachable")

        if response.status_code in (400, 401, 403):
            logger.warning(f"⚠️  {connector_type.value} refresh token rejected ({response.status_code})")
            raise AuthExpired()
        if not response.is_success:
            logger.error(f"❌ {connector_type.value} token refresh failed ({response.status_code})")
            raise TransientUnavailable(f"{connector_type.value} token endpoint returned {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            raise TransientUnavailable(f"{connector_type.value} token endpoint returned invalid JSON")

        # GitHub reports grant errors with 200 + {"error": "bad_refresh_token"}
        if payload.get("error"):
            logger.warning(f"⚠️  {connector_type.value} refresh rejected: {payload.get('error')}")
            raise AuthExpired()
        if not payload.get("access_token"):
            raise TransientUnavailable(f"{connector_type.value} token endpoint returned no access_token")

        return _grant_from_payload(payload)


def _grant_from_payload(payload: Dict[str, Any]) -> TokenGrant:
    expires_in: Optional[int] = payload.get("expires_in")
    return TokenGrant(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token") or None,
        expires_in=int(expires_in) if expires_in is not None else None,
        scope=payload.get("scope"),
        token_type=payload.get("token_type") or "Bearer",
    )
