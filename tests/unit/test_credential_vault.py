"""Unit tests for the credential vault."""

import asyncio
from datetime import timedelta
from typing import Optional

import pytest
from pydantic import SecretStr

from app.core.errors import AuthExpired, NotFound, TransientUnavailable, ValidationFailure
from app.models.records import ConnectorType, Credential, TokenGrant, TokenValidity, utcnow
from app.services.credentials import CredentialVault
from tests.conftest import OWNER_A, OWNER_B, FakeAuthority

DRIVE = ConnectorType.GOOGLE_DRIVE


async def _store(registry, access="old-token", refresh: Optional[str] = "refresh-1", expires_at=None, owner=OWNER_A):
    await registry.put_credential(Credential(
        owner_id=owner,
        connector_type=DRIVE,
        access_token=SecretStr(access),
        refresh_token=SecretStr(refresh) if refresh else None,
        expires_at=expires_at,
    ))


# ============================================================================
# VALIDATE
# ============================================================================

@pytest.mark.asyncio
async def test_missing_credential_is_invalid_without_network_call(registry):
    authority = FakeAuthority()
    vault = CredentialVault(registry, authority)

    assert await vault.validate(OWNER_A, DRIVE) == TokenValidity.INVALID
    assert authority.validated == []


@pytest.mark.asyncio
async def test_expired_credential_is_invalid_without_network_call(registry):
    await _store(registry, expires_at=utcnow() - timedelta(minutes=5))
    authority = FakeAuthority()
    vault = CredentialVault(registry, authority)

    assert await vault.validate(OWNER_A, DRIVE) == TokenValidity.INVALID
    assert authority.validated == []


@pytest.mark.asyncio
async def test_credential_free_connector_is_rejected(registry):
    vault = CredentialVault(registry, FakeAuthority())

    with pytest.raises(ValidationFailure):
        await vault.validate(OWNER_A, ConnectorType.WEB_CRAWLER)


# ============================================================================
# GET VALID ACCESS TOKEN
# ============================================================================

@pytest.mark.asyncio
async def test_valid_token_is_returned_without_refresh(registry):
    await _store(registry)
    authority = FakeAuthority()
    vault = CredentialVault(registry, authority)

    assert await vault.get_valid_access_token(OWNER_A, DRIVE) == ("old-token", False)
    assert authority.refresh_calls == 0


@pytest.mark.asyncio
async def test_invalid_token_is_refreshed_and_persisted(registry):
    await _store(registry)
    authority = FakeAuthority(validity={"old-token": TokenValidity.INVALID})
    vault = CredentialVault(registry, authority)

    token, refreshed = await vault.get_valid_access_token(OWNER_A, DRIVE)

    assert (token, refreshed) == ("new-token", True)
    stored = await registry.get_credential(OWNER_A, DRIVE)
    assert stored.access_token.get_secret_value() == "new-token"
    # grant without refresh_token keeps the old one
    assert stored.refresh_token.get_secret_value() == "refresh-1"
    assert stored.expires_at is not None


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_refresh(registry):
    await _store(registry)
    authority = FakeAuthority(validity={"old-token": TokenValidity.INVALID})
    vault = CredentialVault(registry, authority)

    results = await asyncio.gather(*(vault.get_valid_access_token(OWNER_A, DRIVE) for _ in range(10)))

    assert authority.refresh_calls == 1
    assert {token for token, _ in results} == {"new-token"}


@pytest.mark.asyncio
async def test_refreshes_for_different_owners_are_independent(registry):
    await _store(registry, owner=OWNER_A)
    await _store(registry, owner=OWNER_B)
    authority = FakeAuthority(validity={"old-token": TokenValidity.INVALID})
    vault = CredentialVault(registry, authority)

    await asyncio.gather(
        vault.get_valid_access_token(OWNER_A, DRIVE),
        vault.get_valid_access_token(OWNER_B, DRIVE),
    )

    assert authority.refresh_calls == 2


@pytest.mark.asyncio
async def test_unknown_validity_is_transient_and_never_refreshes(registry):
    await _store(registry)
    authority = FakeAuthority(validity={"old-token": TokenValidity.UNKNOWN})
    vault = CredentialVault(registry, authority)

    with pytest.raises(TransientUnavailable):
        await vault.get_valid_access_token(OWNER_A, DRIVE)
    assert authority.refresh_calls == 0


@pytest.mark.asyncio
async def test_invalid_without_refresh_token_is_auth_expired(registry):
    await _store(registry, refresh=None)
    authority = FakeAuthority(validity={"old-token": TokenValidity.INVALID})
    vault = CredentialVault(registry, authority)

    with pytest.raises(AuthExpired):
        await vault.get_valid_access_token(OWNER_A, DRIVE)
    assert authority.refresh_calls == 0


@pytest.mark.asyncio
async def test_no_credential_is_auth_expired(registry):
    vault = CredentialVault(registry, FakeAuthority())

    with pytest.raises(AuthExpired):
        await vault.get_valid_access_token(OWNER_A, DRIVE)


@pytest.mark.asyncio
async def test_transient_refresh_failure_leaves_credential_untouched(registry):
    await _store(registry)
    authority = FakeAuthority(
        validity={"old-token": TokenValidity.INVALID},
        refresh_error=TransientUnavailable("token endpoint down"),
    )
    vault = CredentialVault(registry, authority)

    with pytest.raises(TransientUnavailable):
        await vault.get_valid_access_token(OWNER_A, DRIVE)

    stored = await registry.get_credential(OWNER_A, DRIVE)
    assert stored.access_token.get_secret_value() == "old-token"
    assert stored.refresh_token.get_secret_value() == "refresh-1"


# ============================================================================
# REFRESH / LIFECYCLE
# ============================================================================

@pytest.mark.asyncio
async def test_refresh_with_stale_token_returns_already_refreshed_credential(registry):
    await _store(registry, access="fresh-token")
    authority = FakeAuthority()
    vault = CredentialVault(registry, authority)

    credential = await vault.refresh(OWNER_A, DRIVE, stale_token="old-token")

    assert credential.access_token.get_secret_value() == "fresh-token"
    assert authority.refresh_calls == 0


@pytest.mark.asyncio
async def test_store_keeps_created_at_and_reports_handle_without_tokens(registry):
    vault = CredentialVault(registry, FakeAuthority())

    first = await vault.store(OWNER_A, DRIVE, TokenGrant(access_token="a", refresh_token="r", expires_in=60))
    created = (await registry.get_credential(OWNER_A, DRIVE)).created_at
    await vault.store(OWNER_A, DRIVE, TokenGrant(access_token="b"))

    stored = await registry.get_credential(OWNER_A, DRIVE)
    assert stored.created_at == created
    assert stored.access_token.get_secret_value() == "b"
    assert first.has_refresh_token is True
    assert "access_token" not in first.model_dump()


@pytest.mark.asyncio
async def test_revoke_missing_credential_is_not_found(registry):
    vault = CredentialVault(registry, FakeAuthority())

    with pytest.raises(NotFound):
        await vault.revoke(OWNER_A, DRIVE)


@pytest.mark.asyncio
async def test_describe_unconnected_connector(registry):
    vault = CredentialVault(registry, FakeAuthority())

    handle = await vault.describe(OWNER_A, ConnectorType.NOTION)

    assert handle.connected is False
    assert handle.status == TokenValidity.INVALID
