from __future__ import annotations

import json
import logging
import sys
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Request, Response
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from partnerhub.core.security import decode_token


_EXTRA_KEYS = (
    "request_id",
    "principal_id",
    "role",
    "identity_source",
    "path",
    "method",
    "status_code",
    "latency_ms",
    "partner_id",
    "deliverable_id",
    "submission_id",
    "nomination_id",
    "event_id",
    "topic",
)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in _EXTRA_KEYS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, default=str)


def configure_logging(level: str = "INFO") -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logging.basicConfig(
        level=level,
        handlers=[handler],
        force=True,
    )


def _resolve_principal_id(request: Request) -> Optional[str]:
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    if not token:
        return None
    try:
        payload = decode_token(token)
    except JWTError:
        return None
    raw_id = payload.get("sub")
    return str(raw_id) if raw_id is not None else None


def _request_context(request: Request) -> dict[str, Any]:
    """Who made the request, as resolved by the identity dependency when it ran."""
    identity = getattr(request.state, "identity", None)
    if identity is None:
        return {"principal_id": _resolve_principal_id(request)}
    return {
        "principal_id": identity.principal_id,
        "role": identity.role.value,
        "identity_source": identity.source,
        "partner_id": identity.partner_id,
    }


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, logger_name: str = "request") -> None:
        super().__init__(app)
        self.logger = logging.getLogger(logger_name)

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            latency_ms = (time.perf_counter() - start) * 1000
            self.logger.exception(
                "unhandled_exception",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "method": request.method,
                    "latency_ms": round(latency_ms, 2),
                    **_request_context(request),
                },
            )
            raise

        latency_ms = (time.perf_counter() - start) * 1000
        context = _request_context(request)
        self.logger.info(
            "request",
            extra={
                "request_id": request_id,
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "latency_ms": round(latency_ms, 2),
                **context,
            },
        )

        if response.status_code == 403 and context.get("principal_id"):
            security_logger = logging.getLogger("security")
            security_logger.info(
                "forbidden",
                extra={
                    "request_id": request_id,
                    "path": request.url.path,
                    "method": request.method,
                    "status_code": response.status_code,
                    **context,
                },
            )

        response.headers["X-Request-Id"] = request_id
        return response
