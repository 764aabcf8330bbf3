"""
Canonical ID Generation for Connector Deduplication

Every connector-synced file maps to one canonical document:
- Drive: one document per file id (not per revision)
- Notion: one document per page
- GitHub: one document per repo path (branch included in the ref)
- Web: one document per URL

Re-syncing the same external ref overwrites the same document via UPSERT.
"""
import uuid

from app.models.records import ConnectorType


def get_canonical_key(owner_id: str, connector_type: ConnectorType, external_ref: str) -> str:
    """
    Stable string key for a connector file.

    Examples:
        >>> get_canonical_key('u1', ConnectorType.NOTION, 'abc123')
        'u1:notion:abc123'

        >>> get_canonical_key('u1', ConnectorType.GITHUB, 'acme/api@main:README.md')
        'u1:github:acme/api@main:README.md'
    """
    return f"{owner_id}:{ConnectorType(connector_type).value}:{external_ref.strip()}"


def get_canonical_document_id(owner_id: str, connector_type: ConnectorType, external_ref: str) -> str:
    """
    Deterministic document id (UUIDv5 of the canonical key).

    The owner is part of the key, so two users syncing the same public page
    get distinct documents.
    """
    return str(uuid.uuid5(uuid.NAMESPACE_URL, get_canonical_key(owner_id, connector_type, external_ref)))
