from __future__ import annotations

from typing import Dict, FrozenSet, Optional, Set, Tuple, Union

from sqlalchemy import false
from sqlalchemy.orm import Query, Session

from partnerhub.core.errors import Forbidden
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.models.enums import AppRole, NominationStatus, SubmissionStatus
from partnerhub.models.partner import AdminPartnerAssignment

ALL_PARTNERS = "ALL"

PartnerScope = Union[Set[str], str]

_STAFF = frozenset({AppRole.ADMIN, AppRole.SUPERADMIN})
_SUPERADMIN_ONLY = frozenset({AppRole.SUPERADMIN})
_PARTNER = frozenset({AppRole.PARTNER})

# (from, to) -> roles allowed to take the edge. ``None`` is "no submission yet".
TRANSITIONS: Dict[Tuple[Optional[SubmissionStatus], SubmissionStatus], FrozenSet[AppRole]] = {
    (None, SubmissionStatus.PENDING_REVIEW): _PARTNER,
    (SubmissionStatus.REJECTED, SubmissionStatus.PENDING_REVIEW): _PARTNER,
    (SubmissionStatus.CHANGES_REQUESTED, SubmissionStatus.PENDING_REVIEW): _PARTNER,
    (SubmissionStatus.PENDING_REVIEW, SubmissionStatus.APPROVED): _STAFF,
    (SubmissionStatus.PENDING_REVIEW, SubmissionStatus.REJECTED): _STAFF,
    (SubmissionStatus.PENDING_REVIEW, SubmissionStatus.CHANGES_REQUESTED): _STAFF,
    (SubmissionStatus.PENDING_REVIEW, SubmissionStatus.LOCKED_FOR_PRINTING): _STAFF,
    (SubmissionStatus.APPROVED, SubmissionStatus.LOCKED_FOR_PRINTING): _SUPERADMIN_ONLY,
}

# Nomination review edges. Partners only ever create; review is staff work.
NOMINATION_TRANSITIONS: Dict[Tuple[NominationStatus, NominationStatus], FrozenSet[AppRole]] = {
    (NominationStatus.SUBMITTED, NominationStatus.UNDER_REVIEW): _STAFF,
    (NominationStatus.SUBMITTED, NominationStatus.APPROVED): _STAFF,
    (NominationStatus.SUBMITTED, NominationStatus.REJECTED): _STAFF,
    (NominationStatus.SUBMITTED, NominationStatus.HIDDEN): _STAFF,
    (NominationStatus.UNDER_REVIEW, NominationStatus.APPROVED): _STAFF,
    (NominationStatus.UNDER_REVIEW, NominationStatus.REJECTED): _STAFF,
    (NominationStatus.UNDER_REVIEW, NominationStatus.HIDDEN): _STAFF,
    (NominationStatus.APPROVED, NominationStatus.HIDDEN): _STAFF,
    (NominationStatus.REJECTED, NominationStatus.HIDDEN): _STAFF,
}

ROLE_TARGETS: Dict[AppRole, FrozenSet[SubmissionStatus]] = {
    AppRole.PARTNER: frozenset({SubmissionStatus.PENDING_REVIEW}),
    AppRole.ADMIN: frozenset(
        {
            SubmissionStatus.APPROVED,
            SubmissionStatus.REJECTED,
            SubmissionStatus.CHANGES_REQUESTED,
            SubmissionStatus.LOCKED_FOR_PRINTING,
        }
    ),
    AppRole.SUPERADMIN: frozenset(
        {
            SubmissionStatus.APPROVED,
            SubmissionStatus.REJECTED,
            SubmissionStatus.CHANGES_REQUESTED,
            SubmissionStatus.LOCKED_FOR_PRINTING,
        }
    ),
    AppRole.UNKNOWN: frozenset(),
}


def visible_partner_ids(db: Session, identity: ResolvedIdentity) -> PartnerScope:
    """Partners the identity may see. Assignment rows are read on every call."""
    if not identity.is_active:
        return set()
    if identity.role == AppRole.SUPERADMIN:
        return ALL_PARTNERS
    if identity.role == AppRole.ADMIN:
        rows = (
            db.query(AdminPartnerAssignment.partner_id)
            .filter(AdminPartnerAssignment.admin_id == identity.principal_id)
            .all()
        )
        return {row[0] for row in rows}
    if identity.role == AppRole.PARTNER and identity.partner_id:
        return {identity.partner_id}
    return set()


def can_view_partner(scope: PartnerScope, partner_id: Optional[str]) -> bool:
    if partner_id is None:
        return False
    if scope == ALL_PARTNERS:
        return True
    return partner_id in scope


def apply_partner_scope(query: Query, column, scope: PartnerScope) -> Query:
    if scope == ALL_PARTNERS:
        return query
    if not scope:
        return query.filter(false())
    return query.filter(column.in_(sorted(scope)))


def ensure_partner_access(db: Session, identity: ResolvedIdentity, partner_id: str) -> PartnerScope:
    if identity.is_disabled:
        raise Forbidden("account_disabled")
    scope = visible_partner_ids(db, identity)
    if not can_view_partner(scope, partner_id):
        raise Forbidden("Partner is outside your access scope", partner_id=partner_id)
    return scope


def role_may_target(role: AppRole, target: SubmissionStatus) -> bool:
    return target in ROLE_TARGETS.get(role, frozenset())


def edge_roles(
    current: Optional[SubmissionStatus],
    target: SubmissionStatus,
) -> Optional[FrozenSet[AppRole]]:
    return TRANSITIONS.get((current, target))


def nomination_edge_roles(
    current: NominationStatus,
    target: NominationStatus,
) -> Optional[FrozenSet[AppRole]]:
    return NOMINATION_TRANSITIONS.get((current, target))


def can_transition(
    db: Session,
    identity: ResolvedIdentity,
    *,
    partner_id: str,
    current: Optional[SubmissionStatus],
    target: SubmissionStatus,
) -> bool:
    if not identity.is_active:
        return False
    if not can_view_partner(visible_partner_ids(db, identity), partner_id):
        return False
    roles = edge_roles(current, target)
    return roles is not None and identity.role in roles


def require_staff(identity: ResolvedIdentity) -> None:
    if identity.is_disabled:
        raise Forbidden("account_disabled")
    if not identity.is_staff:
        raise Forbidden("Admin role required")


def require_superadmin(identity: ResolvedIdentity) -> None:
    if identity.is_disabled:
        raise Forbidden("account_disabled")
    if not identity.is_superadmin:
        raise Forbidden("Superadmin role required")
