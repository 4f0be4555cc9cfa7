from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from partnerhub.models.enums import SenderRole
from partnerhub.schemas.base import ORMModel


class MessageCreate(ORMModel):
    body: str = Field(max_length=10000)
    deliverable_id: Optional[str] = None


class MessageMarkRead(ORMModel):
    deliverable_id: Optional[str] = None


class MessageRead(ORMModel):
    id: str
    partner_id: str
    deliverable_id: Optional[str] = None
    sender_id: str
    sender_role: SenderRole
    body: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime
