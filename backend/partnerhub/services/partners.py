from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.errors import InvalidTransitionPayload, NotFound, ResourceConflict
from partnerhub.core.identity import ResolvedIdentity, identity_resolver, normalize_role_token
from partnerhub.models.enums import AppRole
from partnerhub.models.partner import AdminPartnerAssignment, Partner, PartnerMember
from partnerhub.services.activity import log_activity

logger = logging.getLogger("partners")


def list_visible_partners(db: Session, identity: ResolvedIdentity) -> List[Partner]:
    scope = rbac.visible_partner_ids(db, identity)
    query = rbac.apply_partner_scope(db.query(Partner), Partner.id, scope)
    return query.order_by(Partner.name.asc()).all()


def get_visible_partner(db: Session, identity: ResolvedIdentity, partner_id: str) -> Partner:
    rbac.ensure_partner_access(db, identity, partner_id)
    partner = db.get(Partner, partner_id)
    if not partner:
        raise NotFound("Partner not found", partner_id=partner_id)
    return partner


def list_admin_assignments(db: Session, identity: ResolvedIdentity, admin_id: str) -> List[str]:
    rbac.require_superadmin(identity)
    rows = (
        db.query(AdminPartnerAssignment.partner_id)
        .filter(AdminPartnerAssignment.admin_id == admin_id)
        .order_by(AdminPartnerAssignment.partner_id.asc())
        .all()
    )
    return [row[0] for row in rows]


def set_admin_assignments(
    db: Session,
    identity: ResolvedIdentity,
    admin_id: str,
    partner_ids: Sequence[str],
) -> List[str]:
    """Replace an admin's assignment set. Takes effect on their next request."""
    rbac.require_superadmin(identity)
    wanted = sorted(set(partner_ids))
    if wanted:
        found = {row[0] for row in db.query(Partner.id).filter(Partner.id.in_(wanted)).all()}
        missing = [partner_id for partner_id in wanted if partner_id not in found]
        if missing:
            raise NotFound("Partner not found", partner_ids=missing)

    existing = db.query(AdminPartnerAssignment).filter(AdminPartnerAssignment.admin_id == admin_id).all()
    current = {row.partner_id: row for row in existing}
    for partner_id, row in current.items():
        if partner_id not in wanted:
            db.delete(row)
    for partner_id in wanted:
        if partner_id not in current:
            db.add(
                AdminPartnerAssignment(
                    admin_id=admin_id,
                    partner_id=partner_id,
                    assigned_by=identity.principal_id,
                )
            )
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type="admin_assignments_updated",
        payload={"admin_id": admin_id, "partner_ids": wanted},
    )
    db.commit()
    return wanted


def update_member(
    db: Session,
    identity: ResolvedIdentity,
    principal_id: str,
    *,
    role: Optional[str] = None,
    is_disabled: Optional[bool] = None,
    partner_id: Optional[str] = None,
) -> PartnerMember:
    """Mutate a member's role/disabled flag, then evict their cached identity."""
    rbac.require_superadmin(identity)
    member = db.query(PartnerMember).filter(PartnerMember.principal_id == principal_id).first()
    if not member:
        raise NotFound("Member not found", principal_id=principal_id)

    changes: dict = {}
    if role is not None:
        if normalize_role_token(role) is None:
            raise InvalidTransitionPayload(f"Unrecognized role: {role}", field="role")
        member.role = role.strip().lower()
        changes["role"] = member.role
    if partner_id is not None:
        if not db.get(Partner, partner_id):
            raise NotFound("Partner not found", partner_id=partner_id)
        member.partner_id = partner_id
        changes["partner_id"] = partner_id
    if is_disabled is not None:
        member.is_disabled = is_disabled
        changes["is_disabled"] = is_disabled

    db.add(member)
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type="member_updated",
        partner_id=member.partner_id,
        payload={"principal_id": principal_id, **changes},
    )
    db.commit()
    # Evict only after the commit is visible.
    identity_resolver.invalidate(principal_id)
    logger.info("member_updated", extra={"principal_id": principal_id})
    return member


def create_member(
    db: Session,
    identity: ResolvedIdentity,
    *,
    principal_id: str,
    role: str,
    email: Optional[str] = None,
    full_name: Optional[str] = None,
    partner_id: Optional[str] = None,
) -> PartnerMember:
    """Provision a membership row for a principal that has none yet."""
    rbac.require_superadmin(identity)
    principal_id = (principal_id or "").strip()
    if not principal_id:
        raise InvalidTransitionPayload("principal_id is required", field="principal_id")
    normalized = normalize_role_token(role)
    if normalized is None:
        raise InvalidTransitionPayload(f"Unrecognized role: {role}", field="role")
    if normalized == AppRole.PARTNER and not partner_id:
        raise InvalidTransitionPayload("Partner members need a partner_id", field="partner_id")
    if partner_id is not None and not db.get(Partner, partner_id):
        raise NotFound("Partner not found", partner_id=partner_id)

    existing = db.query(PartnerMember).filter(PartnerMember.principal_id == principal_id).first()
    if existing:
        raise ResourceConflict("Member already exists", blocking_id=existing.id, principal_id=principal_id)

    member = PartnerMember(
        principal_id=principal_id,
        email=email,
        full_name=full_name,
        role=role.strip().lower(),
        partner_id=partner_id,
    )
    db.add(member)
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type="member_created",
        partner_id=partner_id,
        payload={"principal_id": principal_id, "role": member.role},
    )
    db.commit()
    db.refresh(member)
    # A cached "unknown" or token-derived identity must not outlive the new row.
    identity_resolver.invalidate(principal_id)
    logger.info("member_created", extra={"principal_id": principal_id})
    return member
