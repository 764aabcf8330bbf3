"""
Shared test fixtures for the knowledge sync test suite.
"""
import asyncio
from typing import Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.models.records import ExtractionMethod, ExtractionResult, Identity, TokenGrant, TokenValidity
from app.services.extraction import ExtractionService
from app.services.registry import InMemoryRegistry
from app.services.search import InMemoryDocumentIndex

OWNER_A = "owner-a"
OWNER_B = "owner-b"


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry()


@pytest.fixture
def index() -> InMemoryDocumentIndex:
    return InMemoryDocumentIndex()


@pytest.fixture
def identity_a() -> Identity:
    return Identity(user_id=OWNER_A, email="a@example.com")


@pytest.fixture
def identity_b() -> Identity:
    return Identity(user_id=OWNER_B, email="b@example.com")


def mock_http_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by handler."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_extraction(
    ocr_text: Optional[str] = None,
    llm_text: Optional[str] = None,
    ocr_error: Optional[Exception] = None,
    llm_error: Optional[Exception] = None
) -> ExtractionService:
    """ExtractionService with mocked OCR and LLM collaborators."""
    ocr = MagicMock()
    llm = MagicMock()

    if ocr_error is not None:
        ocr.extract = AsyncMock(side_effect=ocr_error)
    else:
        ocr.extract = AsyncMock(return_value=ExtractionResult(method=ExtractionMethod.OCR, text=ocr_text or ""))

    if llm_error is not None:
        llm.extract = AsyncMock(side_effect=llm_error)
    else:
        llm.extract = AsyncMock(return_value=ExtractionResult(method=ExtractionMethod.LLM, text=llm_text or ""))

    return ExtractionService(ocr, llm)


class RecordingIndex(InMemoryDocumentIndex):
    """In-memory index that records calls and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.indexed: List[str] = []
        self.deleted: List[str] = []
        self.fail_index: Optional[Exception] = None
        self.fail_delete: Optional[Exception] = None

    async def index_document(self, document, chunks):
        if self.fail_index is not None:
            raise self.fail_index
        self.indexed.append(document.document_id)
        return await super().index_document(document, chunks)

    async def delete_document(self, owner_id, document_id):
        if self.fail_delete is not None:
            raise self.fail_delete
        self.deleted.append(document_id)
        await super().delete_document(owner_id, document_id)


@pytest.fixture
def recording_index() -> RecordingIndex:
    return RecordingIndex()


class FakeAuthority:
    """Token authority double: validity per token, counted refreshes."""

    def __init__(
        self,
        validity: Optional[Dict[str, TokenValidity]] = None,
        grant: Optional[TokenGrant] = None,
        refresh_error: Optional[Exception] = None
    ):
        self.validity = validity or {}
        self.grant = grant or TokenGrant(access_token="new-token", expires_in=3600)
        self.refresh_error = refresh_error
        self.validated: List[str] = []
        self.refresh_calls = 0

    async def validate(self, connector_type, access_token):
        self.validated.append(access_token)
        return self.validity.get(access_token, TokenValidity.VALID)

    async def refresh(self, connector_type, refresh_token):
        self.refresh_calls += 1
        await asyncio.sleep(0.01)
        if self.refresh_error is not None:
            raise self.refresh_error
        return self.grant
