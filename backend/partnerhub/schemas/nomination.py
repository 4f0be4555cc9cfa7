from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from partnerhub.models.enums import NominationStatus
from partnerhub.schemas.base import ORMModel


class NominationCreate(ORMModel):
    partner_id: Optional[str] = None
    nominee_name: str = Field(min_length=1, max_length=255)
    nominee_email: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    nominee_bio: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=50)


class NominationUpdate(ORMModel):
    nominee_name: Optional[str] = Field(default=None, max_length=255)
    nominee_email: Optional[str] = Field(default=None, max_length=255)
    category: Optional[str] = Field(default=None, max_length=100)
    nominee_bio: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[str] = Field(default=None, max_length=255)
    contact_phone: Optional[str] = Field(default=None, max_length=50)


class NominationTransition(ORMModel):
    target_status: NominationStatus
    reason: Optional[str] = None


class NominationRead(ORMModel):
    id: str
    partner_id: str
    nominee_name: str
    nominee_email: Optional[str] = None
    category: Optional[str] = None
    nominee_bio: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None
    status: NominationStatus
    status_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    submitted_by: str
    created_at: datetime
    updated_at: datetime
