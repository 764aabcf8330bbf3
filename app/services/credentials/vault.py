"""
Credential Vault
Per-owner, per-connector OAuth credentials: validate, refresh, hand out tokens

Rules:
- Missing credential, or stored expiry in the past → INVALID (no network probe)
- UNKNOWN validity never triggers a refresh (TransientUnavailable instead)
- Refresh is single-flight per (owner_id, connector_type)
- A refresh that fails transiently leaves the stored credential untouched
- Tokens only leave the vault through get_valid_access_token
"""
import asyncio
import logging
from datetime import timedelta
from typing import Callable, List, Optional, Tuple

from pydantic import SecretStr

from app.core.concurrency import SingleFlight
from app.core.errors import AuthExpired, NotFound, TransientUnavailable, ValidationFailure
from app.models.records import (
    ConnectorType,
    Credential,
    CredentialHandle,
    TokenGrant,
    TokenValidity,
    requires_credentials,
    utcnow,
)
from app.services.credentials.authority import OAuthTokenAuthority
from app.services.registry.base import SyncRegistry

logger = logging.getLogger(__name__)

EXPIRY_SKEW_SECONDS = 30.0


class CredentialVault:
    """
    Owns connector credentials.

    Args:
        registry: Where credentials are persisted
        authority: Upstream validate/refresh endpoints
        clock: Returns the current UTC time (overridable in tests)
    """

    def __init__(
        self,
        registry: SyncRegistry,
        authority: OAuthTokenAuthority,
        clock: Callable = utcnow
    ):
        self.registry = registry
        self.authority = authority
        self.clock = clock
        self._refresh_flight = SingleFlight("credential-refresh")

    @staticmethod
    def _check_connector(connector_type: ConnectorType) -> ConnectorType:
        connector_type = ConnectorType(connector_type)
        if not requires_credentials(connector_type):
            raise ValidationFailure(f"Connector '{connector_type.value}' does not use credentials")
        return connector_type

    # ============================================================================
    # VALIDATE
    # ============================================================================

    async def _validate_credential(self, credential: Optional[Credential]) -> TokenValidity:
        if credential is None:
            return TokenValidity.INVALID
        if credential.is_expired(self.clock(), EXPIRY_SKEW_SECONDS):
            return TokenValidity.INVALID
        return await self.authority.validate(
            credential.connector_type,
            credential.access_token.get_secret_value()
        )

    async def validate(self, owner_id: str, connector_type: ConnectorType) -> TokenValidity:
        connector_type = self._check_connector(connector_type)
        credential = await self.registry.get_credential(owner_id, connector_type)
        return await self._validate_credential(credential)

    # ============================================================================
    # REFRESH (single-flight)
    # ============================================================================

    async def refresh(
        self,
        owner_id: str,
        connector_type: ConnectorType,
        stale_token: Optional[str] = None
    ) -> Credential:
        """
        Exchange the stored refresh token for a new access token.

        Concurrent callers for the same (owner_id, connector_type) share one
        upstream call. When stale_token is given and the stored token no
        longer matches it, another refresh already happened and the stored
        credential is returned as is.

        Raises:
            AuthExpired: No credential, no refresh token, or refresh rejected
            TransientUnavailable: Token endpoint unreachable or 5xx
        """
        connector_type = self._check_connector(connector_type)
        key = (owner_id, connector_type)
        return await self._refresh_flight.do(
            key,
            lambda: self._do_refresh(owner_id, connector_type, stale_token)
        )

    async def _do_refresh(
        self,
        owner_id: str,
        connector_type: ConnectorType,
        stale_token: Optional[str]
    ) -> Credential:
        credential = await self.registry.get_credential(owner_id, connector_type)
        if credential is None:
            logger.warning(f"⚠️  No {connector_type.value} credential for owner {owner_id}")
            raise AuthExpired()

        if stale_token is not None and credential.access_token.get_secret_value() != stale_token:
            logger.debug(f"{connector_type.value} token for owner {owner_id} already refreshed")
            return credential

        if credential.refresh_token is None:
            logger.warning(f"⚠️  {connector_type.value} credential for owner {owner_id} has no refresh token")
            raise AuthExpired()

        logger.info(f"🔄 Refreshing {connector_type.value} token for owner {owner_id}")
        grant = await self.authority.refresh(
            connector_type,
            credential.refresh_token.get_secret_value()
        )

        refreshed = self._apply_grant(credential, grant)
        await self.registry.put_credential(refreshed)
        logger.info(f"✅ {connector_type.value} token refreshed for owner {owner_id}")
        return refreshed

    def _apply_grant(self, credential: Credential, grant: TokenGrant) -> Credential:
        now = self.clock()
        return credential.model_copy(update={
            "access_token": SecretStr(grant.access_token),
            # providers that don't rotate refresh tokens omit it from the grant
            "refresh_token": SecretStr(grant.refresh_token) if grant.refresh_token else credential.refresh_token,
            "expires_at": now + timedelta(seconds=grant.expires_in) if grant.expires_in else None,
            "scope": grant.scope or credential.scope,
            "updated_at": now,
        })

    # ============================================================================
    # TOKEN ACCESS
    # ============================================================================

    async def get_valid_access_token(
        self,
        owner_id: str,
        connector_type: ConnectorType
    ) -> Tuple[str, bool]:
        """
        Returns:
            (access_token, refreshed)

        Raises:
            AuthExpired: Token invalid and could not be refreshed
            TransientUnavailable: Validity unknown, or refresh endpoint unavailable
        """
        connector_type = self._check_connector(connector_type)
        credential = await self.registry.get_credential(owner_id, connector_type)
        validity = await self._validate_credential(credential)

        if validity == TokenValidity.VALID:
            return credential.access_token.get_secret_value(), False
        elif validity == TokenValidity.UNKNOWN:
            raise TransientUnavailable(f"Could not verify {connector_type.value} token, try again later")
        elif validity == TokenValidity.INVALID:
            stale = credential.access_token.get_secret_value() if credential else None
            refreshed = await self.refresh(owner_id, connector_type, stale_token=stale)
            return refreshed.access_token.get_secret_value(), True
        raise ValueError(f"Unknown token validity: {validity}")

    # ============================================================================
    # LIFECYCLE
    # ============================================================================

    async def store(
        self,
        owner_id: str,
        connector_type: ConnectorType,
        grant: TokenGrant
    ) -> CredentialHandle:
        """Persist the credential from a completed authorization (replaces any existing one)."""
        connector_type = self._check_connector(connector_type)
        now = self.clock()
        existing = await self.registry.get_credential(owner_id, connector_type)

        credential = Credential(
            owner_id=owner_id,
            connector_type=connector_type,
            access_token=SecretStr(grant.access_token),
            refresh_token=SecretStr(grant.refresh_token) if grant.refresh_token else None,
            expires_at=now + timedelta(seconds=grant.expires_in) if grant.expires_in else None,
            scope=grant.scope,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        await self.registry.put_credential(credential)
        logger.info(f"🔐 Stored {connector_type.value} credential for owner {owner_id}")
        return self._handle(credential, TokenValidity.VALID)

    async def revoke(self, owner_id: str, connector_type: ConnectorType) -> None:
        connector_type = self._check_connector(connector_type)
        deleted = await self.registry.delete_credential(owner_id, connector_type)
        if not deleted:
            raise NotFound(f"No {connector_type.value} connection")
        logger.info(f"🔌 Disconnected {connector_type.value} for owner {owner_id}")

    # ============================================================================
    # HANDLES (no tokens)
    # ============================================================================

    @staticmethod
    def _handle(
        credential: Credential,
        status: TokenValidity,
        refreshed: bool = False
    ) -> CredentialHandle:
        return CredentialHandle(
            owner_id=credential.owner_id,
            connector_type=credential.connector_type,
            status=status,
            connected=True,
            expires_at=credential.expires_at,
            scope=credential.scope,
            has_refresh_token=credential.refresh_token is not None,
            refreshed=refreshed,
        )

    async def describe(self, owner_id: str, connector_type: ConnectorType) -> CredentialHandle:
        connector_type = self._check_connector(connector_type)
        credential = await self.registry.get_credential(owner_id, connector_type)
        if credential is None:
            return CredentialHandle(
                owner_id=owner_id,
                connector_type=connector_type,
                status=TokenValidity.INVALID,
                connected=False,
            )
        return self._handle(credential, await self._validate_credential(credential))

    async def list_handles(self, owner_id: str) -> List[CredentialHandle]:
        credentials = await self.registry.list_credentials(owner_id)
        statuses = await asyncio.gather(*(self._validate_credential(c) for c in credentials))
        return [self._handle(c, status) for c, status in zip(credentials, statuses)]
