"""
Registry Records
Domain models for credentials, sync jobs and documents

Every persisted record carries an owner_id. Token values are SecretStr so
they never show up in repr() or logs.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, SecretStr


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# ENUMS
# ============================================================================

class ConnectorType(str, Enum):
    """Closed set of content sources."""
    NOTION = "notion"
    GOOGLE_DRIVE = "google-drive"
    GITHUB = "github"
    WEB_CRAWLER = "web-crawler"
    DIRECT_UPLOAD = "upload"


def requires_credentials(connector_type: ConnectorType) -> bool:
    """Whether syncing from this connector needs an OAuth access token."""
    if connector_type == ConnectorType.NOTION:
        return True
    elif connector_type == ConnectorType.GOOGLE_DRIVE:
        return True
    elif connector_type == ConnectorType.GITHUB:
        return True
    elif connector_type == ConnectorType.WEB_CRAWLER:
        return False
    elif connector_type == ConnectorType.DIRECT_UPLOAD:
        return False
    raise ValueError(f"Unknown connector type: {connector_type}")


class TokenValidity(str, Enum):
    VALID = "valid"
    INVALID = "invalid"
    UNKNOWN = "unknown"


class SyncState(str, Enum):
    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"


LIVE_SYNC_STATES = (SyncState.PENDING, SyncState.SYNCING)


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class ExtractionMethod(str, Enum):
    OCR = "ocr"
    LLM = "llm"


# ============================================================================
# IDENTITY
# ============================================================================

class Identity(BaseModel):
    """Resolved caller. owner_id is the isolation boundary for every query."""
    user_id: str
    email: Optional[str] = None
    via: str = "jwt"

    @property
    def owner_id(self) -> str:
        return self.user_id


# ============================================================================
# CREDENTIALS
# ============================================================================

class Credential(BaseModel):
    owner_id: str
    connector_type: ConnectorType
    access_token: SecretStr
    refresh_token: Optional[SecretStr] = None
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_expired(self, now: datetime, skew_seconds: float = 30.0) -> bool:
        if self.expires_at is None:
            return False
        return (self.expires_at - now).total_seconds() <= skew_seconds


class CredentialHandle(BaseModel):
    """What crosses a trust boundary instead of the token itself."""
    owner_id: str
    connector_type: ConnectorType
    status: TokenValidity
    connected: bool = True
    expires_at: Optional[datetime] = None
    scope: Optional[str] = None
    has_refresh_token: bool = False
    refreshed: bool = False


class TokenGrant(BaseModel):
    """Token endpoint response (authorization or refresh)."""
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    scope: Optional[str] = None
    token_type: str = "Bearer"


# ============================================================================
# SYNC JOBS
# ============================================================================

class SyncJob(BaseModel):
    """
    Single mutable record per (owner, connector, external_ref).

    job_id is stable across attempts; attempt increments on every
    transition into SYNCING.
    """
    job_id: str = Field(default_factory=new_id)
    owner_id: str
    connector_type: ConnectorType
    external_ref: str
    title: Optional[str] = None
    state: SyncState = SyncState.PENDING
    attempt: int = 0
    last_error: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    deadline_at: Optional[datetime] = None
    document_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_live(self) -> bool:
        return self.state in LIVE_SYNC_STATES


class SyncOutcome(BaseModel):
    """Result of one sync attempt, delivered to SyncCoordinator.on_sync_outcome."""
    owner_id: str
    attempt: Optional[int] = None
    succeeded: bool
    error: Optional[str] = None
    document_id: Optional[str] = None

    @classmethod
    def success(cls, owner_id: str, attempt: Optional[int], document_id: Optional[str] = None) -> "SyncOutcome":
        return cls(owner_id=owner_id, attempt=attempt, succeeded=True, document_id=document_id)

    @classmethod
    def failure(cls, owner_id: str, attempt: Optional[int], error: str) -> "SyncOutcome":
        return cls(owner_id=owner_id, attempt=attempt, succeeded=False, error=error)


# ============================================================================
# DOCUMENTS
# ============================================================================

class ExtractionResult(BaseModel):
    """Ephemeral output of one extraction method. Never persisted."""
    method: ExtractionMethod
    text: str = ""
    confidence: Optional[float] = None
    error: Optional[str] = None

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())


class ExtractionMeta(BaseModel):
    ocr: bool = False
    llm: bool = False
    merged: bool = False
    multi_method_extraction: bool = False
    native_text: bool = False
    error: Optional[str] = None
    methods: List[str] = Field(default_factory=list)
    sources: Dict[str, str] = Field(default_factory=dict)


class Document(BaseModel):
    document_id: str = Field(default_factory=new_id)
    owner_id: str
    title: str
    kind: str = "text"
    source: ConnectorType = ConnectorType.DIRECT_UPLOAD
    source_ref: Optional[str] = None
    mime_type: Optional[str] = None
    size_bytes: int = 0
    status: DocumentStatus = DocumentStatus.PENDING
    chunk_count: int = 0
    content: str = ""
    extraction_meta: ExtractionMeta = Field(default_factory=ExtractionMeta)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
