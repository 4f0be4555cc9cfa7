from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

logger = logging.getLogger("errors")


class PortalError(Exception):
    """Base error for the portal core."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {key: value for key, value in details.items() if value is not None}

    def to_detail(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class Unauthorized(PortalError):
    """No session, or the session cannot be tied to a principal."""

    status_code = 401
    code = "UNAUTHORIZED"


class Forbidden(PortalError):
    """Identity resolved but lacks scope (includes disabled accounts)."""

    status_code = 403
    code = "FORBIDDEN"


class NotFound(PortalError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransitionPayload(PortalError):
    """Missing side data or an illegal from -> to transition."""

    status_code = 422
    code = "INVALID_TRANSITION"


class ResourceConflict(PortalError):
    status_code = 409
    code = "RESOURCE_CONFLICT"

    def __init__(self, message: str, *, blocking_id: Optional[str] = None, **details: Any) -> None:
        super().__init__(message, blocking_id=blocking_id, **details)
        self.blocking_id = blocking_id


class UpstreamTimeout(PortalError):
    """Backing store, blob store or email sender slow or unavailable."""

    status_code = 503
    code = "UPSTREAM_TIMEOUT"


class IdentityUnresolvable(UpstreamTimeout):
    """Identity store raised while resolving a principal."""

    code = "IDENTITY_UNRESOLVABLE"


async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(content={"detail": exc.to_detail()}, status_code=exc.status_code, headers=headers)


async def store_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "store_unavailable",
        extra={"path": request.url.path, "method": request.method},
        exc_info=exc,
    )
    error = UpstreamTimeout("Backing store unavailable, retry later")
    return JSONResponse(content={"detail": error.to_detail()}, status_code=error.status_code)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PortalError, portal_error_handler)
    app.add_exception_handler(OperationalError, store_unavailable_handler)
    app.add_exception_handler(PoolTimeoutError, store_unavailable_handler)
