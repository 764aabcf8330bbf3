"""
CORS Configuration
Cross-Origin Resource Sharing settings for frontend access

SECURITY:
- Development: all origins, no credentials
- Otherwise: explicit origin whitelist from CORS_ALLOWED_ORIGINS
- NO "null" origin (prevents file:// attacks)
"""
import logging

from fastapi.middleware.cors import CORSMiddleware as FastAPICORSMiddleware

from app.core.config import settings

logger = logging.getLogger(__name__)


def get_cors_middleware():
    """Returns (middleware class, options) for app.add_middleware."""
    if settings.environment == "development":
        logger.warning("⚠️  DEV MODE: CORS allowing ALL origins (*)")
        return FastAPICORSMiddleware, {
            "allow_origins": ["*"],
            "allow_credentials": False,  # Must be False when using "*"
            "allow_methods": ["GET", "POST", "DELETE", "OPTIONS"],
            "allow_headers": ["*"],
            "expose_headers": ["X-Request-ID"],
            "max_age": 600,
        }

    allowed_origins = [origin for origin in settings.cors_origins if origin and origin != "null"]
    logger.info(f"🌐 CORS allowed origins: {allowed_origins}")

    return FastAPICORSMiddleware, {
        "allow_origins": allowed_origins,
        "allow_credentials": True,
        "allow_methods": ["GET", "POST", "DELETE", "OPTIONS"],
        "allow_headers": [
            "Content-Type",
            "Authorization",
            "X-API-Key",
            "X-Owner-Id",
            "X-Request-ID",
        ],
        "expose_headers": ["X-Request-ID", "Retry-After"],
        "max_age": 600,
    }
