"""
Retry Policies
Bounded tenacity retries for calls to OpenAI, Qdrant and connector APIs

Only transport-level failures are retried. Anything the caller can classify
(HTTP status, validation) surfaces immediately.
"""
import logging
from functools import wraps

import httpx
from openai import RateLimitError, APIConnectionError, APITimeoutError
from qdrant_client.http.exceptions import ResponseHandlingException
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
)

logger = logging.getLogger(__name__)


# ============================================================================
# OPENAI
# ============================================================================

def with_openai_retry(func):
    """
    Retry LLM extraction and embedding calls on 429s, connection errors and
    timeouts. 3 attempts, backoff 2s → 10s.
    """
    @retry(
        retry=retry_if_exception_type((RateLimitError, APIConnectionError, APITimeoutError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=2, min=2, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        return await func(*args, **kwargs)

    return async_wrapper


# ============================================================================
# QDRANT
# ============================================================================

def with_qdrant_retry(func):
    """Retry index reads/writes when Qdrant cannot be reached. 3 attempts, 1s → 5s."""
    @retry(
        retry=retry_if_exception_type((ResponseHandlingException, httpx.TransportError)),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True
    )
    @wraps(func)
    async def async_wrapper(*args, **kwargs):
        return await func(*args, **kwargs)

    return async_wrapper


# ============================================================================
# CONNECTOR APIS
# ============================================================================

def with_upstream_retry(max_attempts=3, min_wait=1, max_wait=8):
    """
    Retry decorator for connector content fetches (Drive, Notion, GitHub, web).

    Retries only on transport-level failures (connect/read errors, timeouts).
    HTTP status errors are classified by the caller and never retried here.

    Usage:
        @with_upstream_retry(max_attempts=3)
        async def fetch(...):
            ...
    """
    def decorator(func):
        @retry(
            retry=retry_if_exception_type(httpx.TransportError),
            stop=stop_after_attempt(max_attempts),
            wait=wait_exponential(multiplier=1, min=min_wait, max=max_wait),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            return await func(*args, **kwargs)

        return async_wrapper

    return decorator
