from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import Field

from partnerhub.models.enums import SubmissionStatus
from partnerhub.schemas.base import ORMModel


class DeliverableCreate(ORMModel):
    partner_id: str
    name: str = Field(min_length=1, max_length=255)
    type: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    is_required: bool = True


class DeliverableRead(ORMModel):
    id: str
    partner_id: str
    name: str
    type: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    is_required: bool
    display_status: Optional[SubmissionStatus] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
