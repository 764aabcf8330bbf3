"""
Data Sync System
Per-file sync orchestration for external connectors
"""
from app.services.sync.canonical import get_canonical_document_id, get_canonical_key
from app.services.sync.coordinator import SyncCoordinator
from app.services.sync.dispatch import DramatiqDispatcher, InProcessDispatcher, SyncDispatcher
from app.services.sync.runner import SyncRunner

__all__ = [
    "get_canonical_document_id",
    "get_canonical_key",
    "SyncCoordinator",
    "SyncDispatcher",
    "InProcessDispatcher",
    "DramatiqDispatcher",
    "SyncRunner",
]
