from __future__ import annotations

import logging
import os
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, text
from sqlalchemy.orm import Session

from partnerhub.core.errors import UpstreamTimeout, register_exception_handlers
from partnerhub.core.logging import RequestLoggingMiddleware, configure_logging
from partnerhub.core.observability import PrometheusMiddleware, metrics_endpoint
from partnerhub.core.settings import settings
from partnerhub.db.session import get_db
from partnerhub.models.enums import NotificationChannel, NotificationDeliveryStatus
from partnerhub.models.notification_delivery import NotificationDelivery
from partnerhub.router_registry import include_all_routers

configure_logging(level=settings.log_level)
logger = logging.getLogger("partnerhub")

app = FastAPI(title=settings.project_name, version=settings.project_version)

build_time = os.getenv("BUILD_TIME") or datetime.now(timezone.utc).isoformat()

# Always allow localhost during development (Vite often changes ports).
allow_origin_regex = None
if not settings.is_production:
    allow_origin_regex = r"^http://(localhost|127\.0\.0\.1)(:\d+)?$"
else:
    if any(origin.strip() == "*" for origin in settings.allow_origins):
        raise RuntimeError("ALLOW_ORIGINS cannot include '*' in production")
    if settings.jwt_secret.startswith("change_me"):
        raise RuntimeError("JWT_SECRET must be set in production")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allow_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-Id", "Accept", "Last-Event-ID"],
)

app.add_middleware(PrometheusMiddleware)
app.add_middleware(RequestLoggingMiddleware)

app.add_api_route("/metrics", metrics_endpoint, methods=["GET"], tags=["observability"], include_in_schema=False)

register_exception_handlers(app)
include_all_routers(app)


@app.get("/healthz", tags=["health"])
def healthcheck(db: Session = Depends(get_db)) -> dict[str, str | int]:
    """Database connectivity plus outbound email backlog."""
    try:
        db.execute(text("SELECT 1"))
        pending = (
            db.query(func.count(NotificationDelivery.id))
            .filter(
                NotificationDelivery.channel == NotificationChannel.EMAIL,
                NotificationDelivery.status == NotificationDeliveryStatus.PENDING,
            )
            .scalar()
            or 0
        )
    except Exception as exc:
        logger.error("healthcheck_failed", exc_info=exc)
        raise UpstreamTimeout("Service unavailable") from exc

    return {
        "status": "degraded" if pending > 100 else "ok",
        "database": "ok",
        "email_queue_pending": pending,
    }


@app.get("/version", tags=["health"])
def version() -> dict[str, str | None]:
    return {
        "app": "partnerhub-api",
        "version": settings.build_version or settings.project_version,
        "git_sha": settings.git_sha,
        "build_time": build_time,
        "env": "prod" if settings.is_production else "dev",
    }
