"""
Unified Configuration
All environment variables and settings in one place

ARCHITECTURE:
- ONE registry backend for documents, sync jobs and connector credentials
  (in-memory for local dev/tests, Supabase for production)
- Sync jobs run inline (asyncio task) or on the Dramatiq worker
- Every record is owner-scoped; there is no cross-owner query

SECURITY:
- All secrets loaded from environment variables
- No hardcoded credentials
- OAuth client secrets never leave the backend
"""
from typing import List, Optional
import logging
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, model_validator

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """
    Unified application settings.
    Validates all environment variables at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================================================
    # SERVER
    # ============================================================================

    environment: str = Field(default="development", description="Environment: development/staging/production")
    port: int = Field(default=8080, description="Server port")
    debug: bool = Field(default=False, description="Debug mode")

    # ============================================================================
    # REGISTRY (documents, sync jobs, credentials)
    # ============================================================================

    registry_backend: str = Field(default="memory", description="Registry backend: memory | supabase")
    supabase_url: Optional[str] = Field(default=None, description="Supabase project URL")
    supabase_anon_key: Optional[str] = Field(default=None, description="Supabase anonymous key")
    supabase_service_key: Optional[str] = Field(default=None, description="Supabase service key (backend uses this)")

    # ============================================================================
    # SYNC EXECUTION
    # ============================================================================

    sync_dispatch_mode: str = Field(default="inline", description="Sync execution: inline (asyncio task) | dramatiq")
    sync_deadline_seconds: float = Field(default=300.0, description="Max seconds a sync attempt may stay 'syncing'", gt=0)
    redis_url: Optional[str] = Field(default=None, description="Redis connection URL (Dramatiq broker)")

    # ============================================================================
    # CONNECTOR OAUTH CLIENTS
    # ============================================================================

    google_client_id: Optional[str] = Field(default=None, description="Google OAuth client ID (Drive)")
    google_client_secret: Optional[str] = Field(default=None, description="Google OAuth client secret")
    notion_client_id: Optional[str] = Field(default=None, description="Notion OAuth client ID")
    notion_client_secret: Optional[str] = Field(default=None, description="Notion OAuth client secret")
    notion_api_version: str = Field(default="2022-06-28", description="Notion-Version header")
    github_client_id: Optional[str] = Field(default=None, description="GitHub OAuth app client ID")
    github_client_secret: Optional[str] = Field(default=None, description="GitHub OAuth app client secret")
    upstream_timeout_seconds: float = Field(default=30.0, description="Timeout for upstream connector calls")

    # ============================================================================
    # EXTRACTION
    # ============================================================================

    ocr_service_url: Optional[str] = Field(default=None, description="OCR service endpoint (multipart POST, returns {text, confidence})")
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key (LLM extraction + embeddings)")
    llm_extraction_model: str = Field(default="gpt-4o", description="Model used for LLM extraction")
    embedding_model: str = Field(default="text-embedding-3-small", description="Embedding model for the vector index")

    # ============================================================================
    # VECTOR INDEX (Qdrant)
    # ============================================================================

    qdrant_url: Optional[str] = Field(default=None, description="Qdrant URL")
    qdrant_api_key: Optional[str] = Field(default=None, description="Qdrant API key")
    qdrant_collection_name: str = Field(default="knowledge_chunks", description="Qdrant collection (all owners share, filtered by owner_id)")
    chunk_size: int = Field(default=1000, description="Characters per chunk")
    chunk_overlap: int = Field(default=200, description="Characters of overlap between chunks")

    # ============================================================================
    # API KEYS / LIMITS
    # ============================================================================

    api_key: Optional[str] = Field(default=None, description="API key for bot integrations (X-API-Key)")
    max_upload_bytes: int = Field(default=100 * 1024 * 1024, description="Max upload size in bytes")

    # ============================================================================
    # PRODUCTION INFRASTRUCTURE
    # ============================================================================

    sentry_dsn: Optional[str] = Field(default=None, description="Sentry DSN for error tracking")
    cors_allowed_origins: str = Field(default="http://localhost:3000", description="Comma-separated list of allowed CORS origins")

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    @model_validator(mode='after')
    def validate_settings(self):
        """
        Validate critical settings at startup.

        SECURITY CHECKS:
        - Supabase backend requires URL + service key
        - Dramatiq dispatch requires Redis
        - Warn if debug mode enabled in production
        """
        if self.registry_backend not in ("memory", "supabase"):
            raise ValueError(f"Invalid REGISTRY_BACKEND: {self.registry_backend} (memory | supabase)")

        if self.sync_dispatch_mode not in ("inline", "dramatiq"):
            raise ValueError(f"Invalid SYNC_DISPATCH_MODE: {self.sync_dispatch_mode} (inline | dramatiq)")

        if self.registry_backend == "supabase" and not (self.supabase_url and self.supabase_service_key):
            raise ValueError("REGISTRY_BACKEND=supabase requires SUPABASE_URL and SUPABASE_SERVICE_KEY")

        if self.sync_dispatch_mode == "dramatiq":
            if not self.redis_url:
                raise ValueError("SYNC_DISPATCH_MODE=dramatiq requires REDIS_URL")
            if self.registry_backend != "supabase":
                logger.warning("⚠️  Dramatiq dispatch with in-memory registry: worker cannot see API state")

        if self.environment == "production":
            if self.debug:
                logger.warning("⚠️  DEBUG MODE ENABLED IN PRODUCTION! This is insecure.")
            if self.registry_backend == "memory":
                logger.warning("⚠️  In-memory registry in production. Data is lost on restart.")
            if not self.sentry_dsn:
                logger.warning("⚠️  Sentry not configured in production. Error tracking disabled.")

        if not self.ocr_service_url:
            logger.info("ℹ️  OCR_SERVICE_URL not set. OCR extraction disabled.")
        if not self.openai_api_key:
            logger.info("ℹ️  OPENAI_API_KEY not set. LLM extraction and vector search disabled.")

        logger.debug(
            f"Configuration loaded: env={self.environment}, registry={self.registry_backend}, "
            f"dispatch={self.sync_dispatch_mode}, deadline={self.sync_deadline_seconds}s"
        )

        return self


# Global settings instance
settings = Settings()
