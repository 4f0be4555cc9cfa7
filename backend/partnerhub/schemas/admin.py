from __future__ import annotations

from typing import Optional

from pydantic import Field

from partnerhub.schemas.base import ORMModel


class AdminAssignmentsRead(ORMModel):
    admin_id: str
    partner_ids: list[str]


class AdminAssignmentsUpdate(ORMModel):
    partner_ids: list[str] = Field(default_factory=list)


class MemberUpdate(ORMModel):
    role: Optional[str] = None
    is_disabled: Optional[bool] = None
    partner_id: Optional[str] = None


class MemberRead(ORMModel):
    id: str
    principal_id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    role: str
    partner_id: Optional[str] = None
    is_disabled: bool


class MemberCreate(ORMModel):
    principal_id: str
    role: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    partner_id: Optional[str] = None
