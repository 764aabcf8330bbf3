"""
Error Taxonomy
Domain errors shared by the vault, coordinator and gateway

Each error carries a stable `kind` (surfaced as `error_type` in API responses)
and the HTTP status the API layer maps it to. Errors propagate unwrapped from
CredentialVault and SyncCoordinator; only IngestionGateway substitutes
NotFound for cross-owner access.
"""
from typing import Optional


class KnowledgeError(Exception):
    """Base class for every domain error."""

    kind = "Error"
    status_code = 500

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class Unauthenticated(KnowledgeError):
    """No resolved identity."""

    kind = "Unauthenticated"
    status_code = 401


class NotFound(KnowledgeError):
    """Record missing, or owned by someone else."""

    kind = "NotFound"
    status_code = 404


class AuthExpired(KnowledgeError):
    """Connector credential needs re-authorization (user-actionable)."""

    kind = "AuthExpired"
    status_code = 409

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "Connector authorization expired. Please re-authenticate.")


class TransientUnavailable(KnowledgeError):
    """Upstream temporarily unavailable. Retry later with backoff."""

    kind = "TransientUnavailable"
    status_code = 503
    retry_after_seconds = 30


class ExtractionFailure(KnowledgeError):
    kind = "ExtractionFailure"
    status_code = 422


class Timeout(KnowledgeError):
    kind = "Timeout"
    status_code = 504


class ValidationFailure(KnowledgeError):
    """Malformed request, rejected before any state mutation."""

    kind = "ValidationFailure"
    status_code = 400
