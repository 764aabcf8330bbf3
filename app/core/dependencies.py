"""
Dependency Injection
Provides reusable dependencies for FastAPI routes

DEPENDENCIES:
- Supabase client (registry backend + JWT validation)
- Qdrant client (vector index)
- OpenAI client (LLM extraction + embeddings)
- HTTP client (OAuth authorities, connector APIs, OCR service)
- Core services (registry, vault, coordinator, gateway)
"""
import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from openai import AsyncOpenAI
from qdrant_client import QdrantClient
from supabase import create_client, Client

from app.core.config import settings
from app.services.credentials import CredentialVault, OAuthTokenAuthority
from app.services.extraction import ExtractionService, LLMExtractor, OCRClient
from app.services.gateway import IngestionGateway
from app.services.ingestion import DocumentIngestor
from app.services.registry import InMemoryRegistry, SyncRegistry
from app.services.search import InMemoryDocumentIndex, QdrantDocumentIndex
from app.services.sync import (
    DramatiqDispatcher,
    InProcessDispatcher,
    SyncCoordinator,
    SyncDispatcher,
    SyncRunner,
)
from app.services.sync.providers import build_fetchers

logger = logging.getLogger(__name__)

# ============================================================================
# GLOBAL CLIENTS (initialized once, reused across requests)
# ============================================================================

_supabase_client: Optional[Client] = None
_qdrant_client: Optional[QdrantClient] = None
_openai_client: Optional[AsyncOpenAI] = None
_http_client: Optional[httpx.AsyncClient] = None
_services: Optional["Services"] = None


@dataclass
class Services:
    registry: SyncRegistry
    vault: CredentialVault
    ingestor: DocumentIngestor
    runner: SyncRunner
    coordinator: SyncCoordinator
    gateway: IngestionGateway
    index: object


# ============================================================================
# SERVICE WIRING (shared by API process and worker)
# ============================================================================

def build_registry(supabase: Optional[Client]) -> SyncRegistry:
    if settings.registry_backend == "supabase":
        if supabase is None:
            raise RuntimeError("REGISTRY_BACKEND=supabase requires a Supabase client")
        from app.services.registry.supabase_registry import SupabaseRegistry
        return SupabaseRegistry(supabase)
    return InMemoryRegistry()


def build_index(qdrant: Optional[QdrantClient], openai_client: Optional[AsyncOpenAI]):
    if qdrant is not None and openai_client is not None:
        return QdrantDocumentIndex(qdrant, openai_client)
    logger.warning("⚠️  Qdrant/OpenAI not configured - using in-memory keyword index")
    return InMemoryDocumentIndex()


def build_services(
    registry: SyncRegistry,
    http_client: httpx.AsyncClient,
    index,
    openai_client: Optional[AsyncOpenAI] = None,
    dispatch_mode: Optional[str] = "inline"
) -> Services:
    """
    Wire the core services.

    Args:
        dispatch_mode: "inline", "dramatiq", or None (worker: record outcomes only)
    """
    vault = CredentialVault(registry, OAuthTokenAuthority(http_client))
    extraction = ExtractionService(OCRClient(http_client), LLMExtractor(openai_client))
    ingestor = DocumentIngestor(registry, extraction, index)
    runner = SyncRunner(vault, build_fetchers(http_client), ingestor)

    dispatcher: Optional[SyncDispatcher] = None
    if dispatch_mode == "inline":
        dispatcher = InProcessDispatcher(runner)
    elif dispatch_mode == "dramatiq":
        dispatcher = DramatiqDispatcher()
    elif dispatch_mode is not None:
        raise ValueError(f"Unknown dispatch mode: {dispatch_mode}")

    coordinator = SyncCoordinator(registry, dispatcher)
    gateway = IngestionGateway(registry, vault, coordinator, ingestor, index)
    return Services(
        registry=registry,
        vault=vault,
        ingestor=ingestor,
        runner=runner,
        coordinator=coordinator,
        gateway=gateway,
        index=index,
    )


# ============================================================================
# INITIALIZATION (called on app startup)
# ============================================================================

async def initialize_clients():
    """
    Initialize all global clients on app startup.

    Called from main.py lifespan event.
    """
    global _supabase_client, _qdrant_client, _openai_client, _http_client, _services

    logger.info("Initializing global clients...")

    _http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.upstream_timeout_seconds),
        limits=httpx.Limits(max_keepalive_connections=20, max_connections=50)
    )

    # Supabase (registry backend and JWT validation)
    if settings.supabase_url and settings.supabase_service_key:
        try:
            _supabase_client = create_client(
                settings.supabase_url,
                settings.supabase_service_key  # Backend uses service role
            )
            logger.info("✅ Supabase client initialized")
        except Exception as e:
            logger.error(f"❌ Failed to initialize Supabase: {e}")
            raise
    else:
        logger.warning("⚠️  Supabase not configured - JWT authentication disabled")

    # Qdrant
    if settings.qdrant_url:
        try:
            _qdrant_client = QdrantClient(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                timeout=30.0
            )
            # Test connection
            _qdrant_client.get_collections()
            logger.info("✅ Qdrant client initialized")
        except Exception as e:
            logger.error(f"❌ Failed to initialize Qdrant: {e}")
            raise

    # OpenAI
    if settings.openai_api_key:
        _openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
        logger.info("✅ OpenAI client initialized")

    _services = build_services(
        registry=build_registry(_supabase_client),
        http_client=_http_client,
        index=build_index(_qdrant_client, _openai_client),
        openai_client=_openai_client,
        dispatch_mode=settings.sync_dispatch_mode,
    )

    logger.info(
        f"✅ All clients initialized (registry={settings.registry_backend}, "
        f"dispatch={settings.sync_dispatch_mode})"
    )


async def shutdown_clients():
    """
    Shutdown all global clients on app shutdown.

    Called from main.py lifespan event.
    """
    global _supabase_client, _qdrant_client, _openai_client, _http_client, _services

    logger.info("Shutting down global clients...")

    if _services:
        await _services.coordinator.shutdown()
        _services = None

    if _http_client:
        await _http_client.aclose()
        _http_client = None

    if _openai_client:
        await _openai_client.close()
        _openai_client = None

    if _qdrant_client:
        try:
            _qdrant_client.close()
            logger.info("✅ Qdrant client closed")
        except Exception as e:
            logger.error(f"Error closing Qdrant: {e}")
        _qdrant_client = None

    # Supabase doesn't need explicit cleanup
    _supabase_client = None

    logger.info("✅ All clients shutdown complete")


# ============================================================================
# DEPENDENCY FUNCTIONS (injected into routes)
# ============================================================================

def get_supabase() -> Optional[Client]:
    """Supabase client, or None when Supabase is not configured."""
    return _supabase_client


def get_services() -> Services:
    if _services is None:
        logger.error("Services not initialized")
        raise RuntimeError("Services not initialized. Call initialize_clients() first.")
    return _services


def get_gateway() -> IngestionGateway:
    """
    Usage:
        @router.get("/documents")
        async def list_documents(gateway: IngestionGateway = Depends(get_gateway)):
            ...
    """
    return get_services().gateway
