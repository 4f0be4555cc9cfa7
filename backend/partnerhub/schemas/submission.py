from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from partnerhub.models.enums import SubmissionStatus
from partnerhub.schemas.base import ORMModel


class SubmissionCreate(ORMModel):
    file_ref: Optional[str] = None
    link_ref: Optional[str] = None
    file_name: Optional[str] = None
    notes: Optional[str] = None


class SubmissionTransition(ORMModel):
    target_status: SubmissionStatus
    reason: Optional[str] = None
    review_notes: Optional[str] = None
    # Only used when resubmitting (target_status=pending_review).
    file_ref: Optional[str] = None
    link_ref: Optional[str] = None
    file_name: Optional[str] = None
    notes: Optional[str] = None


class SubmissionRead(ORMModel):
    id: str
    deliverable_id: str
    partner_id: str
    file_ref: Optional[str] = None
    link_ref: Optional[str] = None
    file_name: Optional[str] = None
    notes: Optional[str] = None
    status: SubmissionStatus
    review_notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    submitted_by: str
    created_at: datetime
    updated_at: datetime


class UploadRead(ORMModel):
    file_ref: str
    file_name: str
    size: int = Field(ge=0)
    content_type: Optional[str] = None
