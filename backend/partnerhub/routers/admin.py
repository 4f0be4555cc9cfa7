from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from partnerhub.core.deps import get_current_identity
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.schemas.admin import (
    AdminAssignmentsRead,
    AdminAssignmentsUpdate,
    MemberCreate,
    MemberRead,
    MemberUpdate,
)
from partnerhub.services import partners as partner_service

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.get("/admins/{admin_id}/partners", response_model=AdminAssignmentsRead)
def read_admin_partners(
    admin_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> AdminAssignmentsRead:
    partner_ids = partner_service.list_admin_assignments(db, identity, admin_id)
    return AdminAssignmentsRead(admin_id=admin_id, partner_ids=partner_ids)


@router.put("/admins/{admin_id}/partners", response_model=AdminAssignmentsRead)
def replace_admin_partners(
    admin_id: str,
    payload: AdminAssignmentsUpdate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> AdminAssignmentsRead:
    partner_ids = partner_service.set_admin_assignments(db, identity, admin_id, payload.partner_ids)
    return AdminAssignmentsRead(admin_id=admin_id, partner_ids=partner_ids)


@router.patch("/members/{principal_id}", response_model=MemberRead)
def update_member(
    principal_id: str,
    payload: MemberUpdate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> MemberRead:
    member = partner_service.update_member(db, identity, principal_id, **payload.model_dump(exclude_unset=True))
    return MemberRead.model_validate(member)


@router.post("/members", response_model=MemberRead, status_code=status.HTTP_201_CREATED)
def create_member(
    payload: MemberCreate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> MemberRead:
    member = partner_service.create_member(db, identity, **payload.model_dump())
    return MemberRead.model_validate(member)
