"""Partner nominations and their staff review.

A partner puts a nominee forward; staff move it through review. Rejecting
or hiding a nomination needs a reason, which is shown back to the partner.
Accepted changes fan out, write an activity row, commit, and then publish a
live-update signal, the same as submissions.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.errors import Forbidden, InvalidTransitionPayload, NotFound
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.models.enums import AppRole, NominationStatus, NotificationType
from partnerhub.models.nomination import Nomination
from partnerhub.models.partner import Partner
from partnerhub.services.activity import log_activity
from partnerhub.services.events import DomainEvent
from partnerhub.services.notifications import dispatch_event
from partnerhub.services.realtime import publish_change

logger = logging.getLogger("nominations")

REASON_REQUIRED = {NominationStatus.REJECTED, NominationStatus.HIDDEN}

_TITLES = {
    NominationStatus.UNDER_REVIEW: "Nomination under review",
    NominationStatus.APPROVED: "Nomination approved",
    NominationStatus.REJECTED: "Nomination rejected",
    NominationStatus.HIDDEN: "Nomination hidden",
}


@dataclass
class NominationFields:
    nominee_name: Optional[str] = None
    nominee_email: Optional[str] = None
    category: Optional[str] = None
    nominee_bio: Optional[str] = None
    description: Optional[str] = None
    contact_email: Optional[str] = None
    contact_phone: Optional[str] = None


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text or None


def _active_role_check(identity: ResolvedIdentity) -> None:
    if identity.is_disabled:
        raise Forbidden("account_disabled")
    if identity.role == AppRole.UNKNOWN:
        raise Forbidden("Role could not be resolved")


def _load(db: Session, nomination_id: str) -> Nomination:
    nomination = db.get(Nomination, nomination_id)
    if not nomination:
        raise NotFound("Nomination not found", nomination_id=nomination_id)
    return nomination


def _require_partner_owner(db: Session, identity: ResolvedIdentity, nomination: Nomination) -> None:
    if identity.role != AppRole.PARTNER:
        raise Forbidden("Only the nominating partner may change a nomination")
    rbac.ensure_partner_access(db, identity, nomination.partner_id)
    if nomination.status != NominationStatus.SUBMITTED:
        raise InvalidTransitionPayload(
            f"A {nomination.status.value} nomination can no longer be changed",
            field="status",
            from_status=nomination.status.value,
        )


def _finish(
    db: Session,
    identity: ResolvedIdentity,
    nomination: Nomination,
    *,
    activity_type: str,
    event: Optional[DomainEvent] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    if event is not None:
        dispatch_event(db, event)
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type=activity_type,
        partner_id=nomination.partner_id,
        message=nomination.nominee_name,
        payload={
            "nomination_id": nomination.id,
            **({"event_id": event.event_id} if event is not None else {}),
            **(payload or {}),
        },
    )
    db.commit()
    logger.info(
        activity_type,
        extra={
            "nomination_id": nomination.id,
            "partner_id": nomination.partner_id,
            "event_id": event.event_id if event is not None else None,
        },
    )


def get_visible_nomination(db: Session, identity: ResolvedIdentity, nomination_id: str) -> Nomination:
    nomination = _load(db, nomination_id)
    rbac.ensure_partner_access(db, identity, nomination.partner_id)
    return nomination


def list_visible_nominations(
    db: Session,
    identity: ResolvedIdentity,
    *,
    partner_id: Optional[str] = None,
    status: Optional[NominationStatus] = None,
    limit: int = 100,
) -> List[Nomination]:
    """Newest first, limited to the caller's partner scope."""
    scope = rbac.visible_partner_ids(db, identity)
    query = rbac.apply_partner_scope(db.query(Nomination), Nomination.partner_id, scope)
    if partner_id:
        query = query.filter(Nomination.partner_id == partner_id)
    if status:
        query = query.filter(Nomination.status == status)
    return query.order_by(Nomination.created_at.desc(), Nomination.id.desc()).limit(limit).all()


def create_nomination(
    db: Session,
    identity: ResolvedIdentity,
    partner_id: str,
    fields: NominationFields,
) -> Nomination:
    _active_role_check(identity)
    rbac.ensure_partner_access(db, identity, partner_id)
    if identity.role != AppRole.PARTNER:
        raise Forbidden("Only partners submit nominations")
    partner = db.get(Partner, partner_id)
    if not partner:
        raise NotFound("Partner not found", partner_id=partner_id)
    nominee_name = _clean(fields.nominee_name)
    if not nominee_name:
        raise InvalidTransitionPayload("nominee_name is required", field="nominee_name")

    values = {key: _clean(value) for key, value in asdict(fields).items()}
    values["nominee_name"] = nominee_name
    nomination = Nomination(
        partner_id=partner_id,
        status=NominationStatus.SUBMITTED,
        submitted_by=identity.principal_id,
        **values,
    )
    db.add(nomination)
    db.flush()

    event = DomainEvent(
        type=NotificationType.NOMINATION_RECEIVED,
        actor_id=identity.principal_id,
        actor_role=identity.role,
        partner_id=partner_id,
        nomination_id=nomination.id,
        to_status=NominationStatus.SUBMITTED.value,
        title="New nomination",
        message=f"{partner.name} nominated {nominee_name}.",
    )
    _finish(db, identity, nomination, activity_type="nomination_created", event=event)
    db.refresh(nomination)
    publish_change(partner_id, entity="nomination")
    return nomination


def update_nomination(
    db: Session,
    identity: ResolvedIdentity,
    nomination_id: str,
    changes: Dict[str, Optional[str]],
) -> Nomination:
    """Partners may edit their nomination until review starts."""
    _active_role_check(identity)
    nomination = _load(db, nomination_id)
    _require_partner_owner(db, identity, nomination)

    allowed = set(NominationFields.__dataclass_fields__)
    applied = {key: _clean(value) for key, value in changes.items() if key in allowed}
    if "nominee_name" in applied and not applied["nominee_name"]:
        raise InvalidTransitionPayload("nominee_name is required", field="nominee_name")

    for key, value in applied.items():
        setattr(nomination, key, value)
    db.add(nomination)
    _finish(db, identity, nomination, activity_type="nomination_updated", payload={"fields": sorted(applied)})
    db.refresh(nomination)
    publish_change(nomination.partner_id, entity="nomination")
    return nomination


def transition_nomination(
    db: Session,
    identity: ResolvedIdentity,
    nomination_id: str,
    target_status: NominationStatus,
    reason: Optional[str] = None,
) -> Nomination:
    """Apply a staff review decision. All checks run before any write."""
    _active_role_check(identity)
    nomination = _load(db, nomination_id)
    rbac.ensure_partner_access(db, identity, nomination.partner_id)

    current = nomination.status
    allowed_roles = rbac.nomination_edge_roles(current, target_status)
    if allowed_roles is None:
        raise InvalidTransitionPayload(
            f"Illegal transition {current.value} -> {target_status.value}",
            from_status=current.value,
            to_status=target_status.value,
        )
    if identity.role not in allowed_roles:
        raise Forbidden("Admin role required")
    reason = _clean(reason)
    if target_status in REASON_REQUIRED and not reason:
        raise InvalidTransitionPayload(f"A reason is required to mark {target_status.value}", field="reason")

    nomination.status = target_status
    nomination.reviewed_by = identity.principal_id
    nomination.reviewed_at = datetime.now(timezone.utc)
    if target_status in REASON_REQUIRED:
        nomination.status_reason = reason
    db.add(nomination)
    db.flush()

    message = f"{nomination.nominee_name} is now {target_status.value.replace('_', ' ')}."
    if reason and target_status in REASON_REQUIRED:
        message = f"{message} Reason: {reason}"
    event = DomainEvent(
        type=NotificationType.NOMINATION_REVIEWED,
        actor_id=identity.principal_id,
        actor_role=identity.role,
        partner_id=nomination.partner_id,
        nomination_id=nomination.id,
        from_status=current.value,
        to_status=target_status.value,
        title=_TITLES[target_status],
        message=message,
    )
    _finish(
        db,
        identity,
        nomination,
        activity_type=f"nomination_{target_status.value}",
        event=event,
        payload={"from_status": current.value, "to_status": target_status.value},
    )
    db.refresh(nomination)
    publish_change(nomination.partner_id, entity="nomination")
    return nomination


def delete_nomination(db: Session, identity: ResolvedIdentity, nomination_id: str) -> None:
    """Staff may delete any visible nomination; partners only their unreviewed ones."""
    _active_role_check(identity)
    nomination = _load(db, nomination_id)
    if identity.is_staff:
        rbac.ensure_partner_access(db, identity, nomination.partner_id)
    else:
        _require_partner_owner(db, identity, nomination)

    partner_id = nomination.partner_id
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type="nomination_deleted",
        partner_id=partner_id,
        message=nomination.nominee_name,
        payload={"nomination_id": nomination_id, "status": nomination.status.value},
    )
    db.delete(nomination)
    db.commit()
    logger.info("nomination_deleted", extra={"nomination_id": nomination_id, "partner_id": partner_id})
    publish_change(partner_id, entity="nomination")
