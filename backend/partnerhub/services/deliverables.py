from __future__ import annotations

import logging
from datetime import date
from typing import List, Optional

from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.errors import NotFound, ResourceConflict
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.models.deliverable import Deliverable
from partnerhub.models.enums import SubmissionStatus
from partnerhub.models.partner import Partner
from partnerhub.services.activity import log_activity
from partnerhub.services.realtime import publish_change
from partnerhub.services.submissions import latest_submission

logger = logging.getLogger("deliverables")

# Latest-submission states that keep a deliverable from being deleted.
DELETE_BLOCKING_STATUSES = {
    SubmissionStatus.PENDING_REVIEW,
    SubmissionStatus.APPROVED,
    SubmissionStatus.LOCKED_FOR_PRINTING,
}


def get_visible_deliverable(db: Session, identity: ResolvedIdentity, deliverable_id: str) -> Deliverable:
    deliverable = db.get(Deliverable, deliverable_id)
    if not deliverable:
        raise NotFound("Deliverable not found", deliverable_id=deliverable_id)
    rbac.ensure_partner_access(db, identity, deliverable.partner_id)
    return deliverable


def list_visible_deliverables(
    db: Session,
    identity: ResolvedIdentity,
    *,
    partner_id: Optional[str] = None,
    status: Optional[SubmissionStatus] = None,
) -> List[Deliverable]:
    scope = rbac.visible_partner_ids(db, identity)
    query = rbac.apply_partner_scope(db.query(Deliverable), Deliverable.partner_id, scope)
    if partner_id:
        query = query.filter(Deliverable.partner_id == partner_id)
    if status:
        query = query.filter(Deliverable.display_status == status)
    return query.order_by(Deliverable.due_date.asc(), Deliverable.name.asc()).all()


def create_deliverable(
    db: Session,
    identity: ResolvedIdentity,
    *,
    partner_id: str,
    name: str,
    type: Optional[str] = None,
    description: Optional[str] = None,
    due_date: Optional[date] = None,
    is_required: bool = True,
) -> Deliverable:
    rbac.require_staff(identity)
    rbac.ensure_partner_access(db, identity, partner_id)
    if not db.get(Partner, partner_id):
        raise NotFound("Partner not found", partner_id=partner_id)

    deliverable = Deliverable(
        partner_id=partner_id,
        name=name.strip(),
        type=type,
        description=description,
        due_date=due_date,
        is_required=is_required,
        created_by=identity.principal_id,
    )
    db.add(deliverable)
    db.flush()
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type="deliverable_created",
        partner_id=partner_id,
        message=deliverable.name,
        payload={"deliverable_id": deliverable.id},
    )
    db.commit()
    db.refresh(deliverable)
    publish_change(partner_id, entity="deliverable", deliverable_id=deliverable.id)
    return deliverable


def delete_deliverable(db: Session, identity: ResolvedIdentity, deliverable_id: str) -> None:
    rbac.require_staff(identity)
    deliverable = get_visible_deliverable(db, identity, deliverable_id)

    latest = latest_submission(db, deliverable.id)
    if latest is not None and latest.status in DELETE_BLOCKING_STATUSES:
        raise ResourceConflict(
            f"Deliverable has a {latest.status.value} submission",
            blocking_id=latest.id,
        )

    partner_id = deliverable.partner_id
    log_activity(
        db,
        actor_id=identity.principal_id,
        activity_type="deliverable_deleted",
        partner_id=partner_id,
        message=deliverable.name,
        payload={"deliverable_id": deliverable.id},
    )
    db.delete(deliverable)
    db.commit()
    logger.info("deliverable_deleted", extra={"partner_id": partner_id})
    publish_change(partner_id, entity="deliverable", deliverable_id=deliverable_id)
