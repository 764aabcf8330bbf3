"""
Error Handling
Maps domain errors to JSON responses and catches everything else

Response body: {"detail": str, "error_type": str}
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.errors import KnowledgeError, TransientUnavailable

logger = logging.getLogger(__name__)


async def knowledge_error_handler(request: Request, exc: KnowledgeError) -> JSONResponse:
    """Domain error → HTTP status from its class (see app.core.errors)."""
    headers = {}
    if isinstance(exc, TransientUnavailable):
        headers["Retry-After"] = str(exc.retry_after_seconds)

    log = logger.warning if exc.status_code >= 500 else logger.info
    log(f"{request.method} {request.url.path} → {exc.status_code} {exc.kind}: {exc.message}")

    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_type": exc.kind},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(KnowledgeError, knowledge_error_handler)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """
    Global error handler middleware.
    Catches all unhandled exceptions and returns JSON error responses.
    """

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            logger.error(
                f"Unhandled exception during {request.method} {request.url.path}",
                exc_info=True,
                extra={
                    "path": request.url.path,
                    "method": request.method,
                    "client_host": request.client.host if request.client else None
                }
            )
            return JSONResponse(
                status_code=500,
                content={
                    "detail": "Internal server error",
                    "error_type": type(exc).__name__,
                }
            )
