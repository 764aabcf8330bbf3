"""Identity resolution from API keys and Supabase JWTs."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from app.core.config import settings
from app.core.errors import Unauthenticated
from app.core.security import identity_from_api_key, identity_from_jwt, sanitize_for_logging


def test_api_key_identity_uses_owner_header(monkeypatch):
    monkeypatch.setattr(settings, "api_key", "secret-key")

    identity = identity_from_api_key("secret-key", " owner-a ")

    assert identity.owner_id == "owner-a"
    assert identity.via == "api_key"


@pytest.mark.parametrize("api_key, owner", [
    ("wrong-key", "owner-a"),
    ("secret-key", None),
    ("secret-key", "   "),
])
def test_api_key_rejections(monkeypatch, api_key, owner):
    monkeypatch.setattr(settings, "api_key", "secret-key")

    with pytest.raises(Unauthenticated):
        identity_from_api_key(api_key, owner)


def test_api_key_not_configured(monkeypatch):
    monkeypatch.setattr(settings, "api_key", None)

    with pytest.raises(Unauthenticated):
        identity_from_api_key("anything", "owner-a")


def test_jwt_identity_is_supabase_user():
    supabase = MagicMock()
    supabase.auth.get_user.return_value = SimpleNamespace(user=SimpleNamespace(id="user-1", email="u@example.com"))

    identity = identity_from_jwt("token", supabase)

    assert identity.owner_id == "user-1"
    supabase.auth.get_user.assert_called_once_with("token")


def test_jwt_rejected_when_supabase_errors():
    supabase = MagicMock()
    supabase.auth.get_user.side_effect = RuntimeError("bad jwt")

    with pytest.raises(Unauthenticated):
        identity_from_jwt("token", supabase)


def test_jwt_without_supabase():
    with pytest.raises(Unauthenticated):
        identity_from_jwt("token", None)


def test_sanitize_for_logging_masks_email():
    assert sanitize_for_logging("user@example.com") == "u***@example.com"
