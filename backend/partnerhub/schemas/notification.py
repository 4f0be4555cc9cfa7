from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from partnerhub.models.enums import NotificationType
from partnerhub.schemas.base import ORMModel


class NotificationRead(ORMModel):
    id: str
    event_id: str
    recipient_id: str
    recipient_role: str
    recipient_partner_id: Optional[str] = None
    type: NotificationType
    title: str
    message: str
    metadata_json: Optional[dict] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


class NotificationMarkRead(ORMModel):
    notification_ids: list[str] = Field(default_factory=list)


class CountRead(ORMModel):
    count: int
