"""Central router registry."""
from __future__ import annotations

from fastapi import FastAPI

from partnerhub.routers.admin import router as admin_router
from partnerhub.routers.auth import router as auth_router
from partnerhub.routers.deliverables import router as deliverables_router
from partnerhub.routers.nominations import router as nominations_router
from partnerhub.routers.notifications import router as notifications_router
from partnerhub.routers.partners import router as partners_router
from partnerhub.routers.realtime import router as realtime_router
from partnerhub.routers.submissions import router as submissions_router
from partnerhub.routers.uploads import router as uploads_router

ALL_ROUTERS = (
    auth_router,
    partners_router,
    deliverables_router,
    submissions_router,
    uploads_router,
    nominations_router,
    notifications_router,
    realtime_router,
    admin_router,
)


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
