from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from partnerhub.core.deps import get_current_identity
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.schemas.notification import CountRead, NotificationMarkRead, NotificationRead
from partnerhub.services import notifications as notification_service

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=List[NotificationRead])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> List[NotificationRead]:
    rows = notification_service.list_notifications(db, identity, unread_only=unread_only, limit=limit)
    return [NotificationRead.model_validate(n) for n in rows]


@router.get("/unread-count", response_model=CountRead)
def unread_count(
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> CountRead:
    return CountRead(count=notification_service.unread_notification_count(db, identity))


@router.post("/read", response_model=CountRead)
def mark_read(
    payload: NotificationMarkRead,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> CountRead:
    return CountRead(count=notification_service.mark_notifications_read(db, identity, payload.notification_ids))


@router.post("/read-all", response_model=CountRead)
def mark_all_read(
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> CountRead:
    return CountRead(count=notification_service.mark_all_notifications_read(db, identity))
