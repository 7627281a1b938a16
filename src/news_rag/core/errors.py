"""
Error Taxonomy and Global Error Handling

This module defines the exceptions raised by the chat core and the
application-wide FastAPI handlers that translate them into HTTP responses.

Design Goals
------------
- Never leak internal exception details to clients
- Surface NotReady distinctly so callers can retry
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("newsrag.errors")

GENERIC_DETAIL = "Internal server error"


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class NewsRagError(Exception):
    """Base class for every failure raised by the chat core."""

    status_code: int = 500
    error_code: str = "internal_server_error"
    public: bool = False


class InvalidRequestError(NewsRagError):
    """A required field is missing or empty."""

    status_code = 400
    error_code = "invalid_request"
    public = True


class NotReadyError(NewsRagError):
    """The corpus index or an external capability is still warming up."""

    status_code = 503
    error_code = "not_ready"
    public = True


class NotFoundError(NewsRagError):
    """The requested session has no stored record."""

    status_code = 404
    error_code = "not_found"
    public = True


class RetrievalFailure(NewsRagError):
    """Embedding or similarity computation failed."""


class GenerationFailure(NewsRagError):
    """The generation capability failed or returned an unusable reply."""


class StoreFailure(NewsRagError):
    """A backing-store operation failed."""


class InternalError(NewsRagError):
    """Generic failure surfaced to callers in place of internal errors."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

def _error_payload(error: str, detail: str) -> Dict[str, Any]:
    return {"error": error, "detail": detail}


async def news_rag_error_handler(
    request: Request,
    exc: NewsRagError,
) -> JSONResponse:
    """
    Render a core error as a JSON response.

    Client-facing errors (400, 404, 503) carry their message. Everything else
    is logged with its traceback and returned as a generic 500.
    """
    if not exc.public:
        logger.error(
            "Internal failure during request: %s %s",
            request.method,
            request.url.path,
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=_error_payload("internal_server_error", GENERIC_DETAIL),
        )

    headers = {"Retry-After": "5"} if isinstance(exc, NotReadyError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_payload(exc.error_code, str(exc) or exc.error_code),
        headers=headers,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Report malformed request bodies as 400 invalid_request.
    """
    missing = sorted(
        {str(err["loc"][-1]) for err in exc.errors() if err.get("loc")}
    )
    detail = "Invalid or missing fields: " + ", ".join(missing) if missing else "Invalid request"
    return JSONResponse(
        status_code=400,
        content=_error_payload("invalid_request", detail),
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Logs the full exception stack trace for internal diagnostics and returns
    a generic 500 error to the client with no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    return JSONResponse(
        status_code=500,
        content=_error_payload("internal_server_error", GENERIC_DETAIL),
    )
