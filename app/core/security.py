"""
Security and Authentication
Resolves the caller's Identity from a Supabase JWT or a bot API key

SECURITY FEATURES:
- JWT validation via Supabase Auth (owner_id = JWT sub)
- API key authentication with timing-safe comparison; the bot names the
  owner it acts for in X-Owner-Id
- The resolved owner_id scopes every registry query downstream
"""
import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, Request
from fastapi.security import APIKeyHeader, HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from app.core.config import settings
from app.core.dependencies import get_supabase
from app.core.errors import Unauthenticated
from app.models.records import Identity

logger = logging.getLogger(__name__)

# Security schemes
bearer_scheme = HTTPBearer(auto_error=False)
api_key_scheme = APIKeyHeader(name="X-API-Key", auto_error=False)


# ============================================================================
# JWT AUTHENTICATION (Supabase)
# ============================================================================

def identity_from_jwt(token: str, supabase: Optional[Client]) -> Identity:
    if supabase is None:
        logger.error("JWT authentication attempted but Supabase is not configured")
        raise Unauthenticated("JWT authentication not configured")

    try:
        response = supabase.auth.get_user(token)
    except Exception as e:
        logger.warning(f"JWT validation error: {type(e).__name__}")
        raise Unauthenticated("Invalid authentication token")

    if not response or not response.user:
        logger.warning("JWT validation failed: no user returned")
        raise Unauthenticated("Invalid authentication token")

    user = response.user
    logger.debug(f"✅ User authenticated: {sanitize_for_logging(user.email or '')}")
    return Identity(user_id=user.id, email=user.email, via="jwt")


# ============================================================================
# API KEY AUTHENTICATION (bot integrations)
# ============================================================================

def identity_from_api_key(api_key: str, owner_id: Optional[str]) -> Identity:
    if not settings.api_key:
        logger.error("API key authentication attempted but API_KEY not configured")
        raise Unauthenticated("API key authentication not configured")

    # Timing-safe comparison (prevents timing attacks)
    if not hmac.compare_digest(api_key.encode(), settings.api_key.encode()):
        logger.warning(f"Invalid API key attempt: {api_key[:4]}...")
        raise Unauthenticated("Invalid API key")

    if not owner_id or not owner_id.strip():
        raise Unauthenticated("X-Owner-Id header required with API key authentication")

    return Identity(user_id=owner_id.strip(), via="api_key")


async def get_identity(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    api_key: Optional[str] = Depends(api_key_scheme),
    x_owner_id: Optional[str] = Header(None),
    supabase: Optional[Client] = Depends(get_supabase)
) -> Identity:
    """
    Resolve the caller.

    Also sets request.state.owner_id so rate limits are keyed per owner.

    Raises:
        Unauthenticated: No credentials, or credentials rejected
    """
    if api_key:
        identity = identity_from_api_key(api_key, x_owner_id)
    elif credentials and credentials.credentials:
        identity = identity_from_jwt(credentials.credentials, supabase)
    else:
        raise Unauthenticated("Authorization header or X-API-Key required")

    request.state.owner_id = identity.owner_id
    return identity


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def sanitize_for_logging(text: str, max_length: int = 50) -> str:
    """
    Sanitize sensitive data for logging (prevent PII leakage).

    Example:
        "user@example.com" -> "u***@example.com"
    """
    if not text:
        return ""

    if len(text) > max_length:
        text = text[:max_length] + "..."

    if "@" in text:
        local, _, domain = text.partition("@")
        masked_local = local[0] + "***" if len(local) > 1 else local
        text = f"{masked_local}@{domain}"

    return text
