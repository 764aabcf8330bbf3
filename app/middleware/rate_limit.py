"""
Rate Limiting
Per-caller request limits using slowapi

RATE LIMITS:
- Global: 100 requests/minute (default)
- File uploads: 30/hour
- Search queries: 60/minute
- Sync requests: 120/hour

Authenticated callers are keyed by owner id (set by get_identity),
everyone else by IP.
"""
import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

logger = logging.getLogger(__name__)

UPLOAD_LIMIT = "30/hour"
SEARCH_LIMIT = "60/minute"
SYNC_LIMIT = "120/hour"


def rate_limit_key_func(request: Request) -> str:
    owner_id = getattr(request.state, "owner_id", None)
    if owner_id:
        return f"owner:{owner_id}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(
    key_func=rate_limit_key_func,
    default_limits=["100/minute"],
    storage_uri="memory://",  # single instance; use redis:// when scaled out
)
