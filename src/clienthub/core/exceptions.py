"""Domain exception hierarchy and its FastAPI handler.

Services raise these; the API boundary turns them into JSON responses of
the form ``{"detail": ..., "code": ...}``.
"""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

logger = structlog.get_logger(__name__)


class ClientHubError(Exception):
    """Base exception for all ClientHub domain errors."""

    status_code: int = 500
    code: str = "internal_error"

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}


class NotFoundError(ClientHubError):
    """Resource does not exist or is not owned by the caller."""

    status_code = 404
    code = "not_found"


class AuthorizationError(ClientHubError):
    """Caller may not perform this operation."""

    status_code = 403
    code = "forbidden"


class ValidationError(ClientHubError):
    """Input failed a business rule."""

    status_code = 422
    code = "validation_error"


class ConflictError(ClientHubError):
    """Operation conflicts with existing state (duplicate slug, email, code)."""

    status_code = 409
    code = "conflict"


class CreditLimitError(ClientHubError):
    """Subscription has no remaining credits."""

    status_code = 402
    code = "credit_limit_reached"


class ExternalServiceError(ClientHubError):
    """A third-party dependency (AI provider) failed or is not configured."""

    status_code = 502
    code = "external_service_error"


async def clienthub_exception_handler(request: Request, exc: ClientHubError) -> JSONResponse:
    """Map a ClientHubError to its JSON response."""
    if exc.status_code >= 500:
        logger.error("domain_error", path=request.url.path, code=exc.code, error=exc.message)
    else:
        logger.info("domain_error", path=request.url.path, code=exc.code, error=exc.message)

    body: dict[str, Any] = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=exc.status_code, content=body)


def register_exception_handlers(app: FastAPI) -> None:
    """Install the domain exception handler on ``app``."""
    app.add_exception_handler(ClientHubError, clienthub_exception_handler)  # type: ignore[arg-type]
