"""
Sync Registry
Owner-scoped persistence for credentials, sync jobs and documents
"""
from app.services.registry.base import SyncRegistry, require_owner
from app.services.registry.memory import InMemoryRegistry

__all__ = ["SyncRegistry", "InMemoryRegistry", "require_owner"]
