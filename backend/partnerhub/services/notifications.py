"""Notification fan-out.

``on_domain_event`` turns one accepted mutation into at most one
Notification per recipient. Partner-authored events go to the admins
assigned to that partner plus every superadmin; admin-authored events go to
the partner's own members. The actor never hears about their own event.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from partnerhub.core.errors import Forbidden
from partnerhub.core.identity import (
    ADMIN_TOKENS,
    SUPERADMIN_TOKENS,
    ResolvedIdentity,
)
from partnerhub.core.observability import notifications_created_total
from partnerhub.core.settings import settings
from partnerhub.models.enums import AppRole
from partnerhub.models.notification import Notification
from partnerhub.models.partner import AdminPartnerAssignment, PartnerMember
from partnerhub.services.events import DomainEvent
from partnerhub.services.notification_deliveries import enqueue_notification_deliveries

logger = logging.getLogger("notifications")


@dataclass(frozen=True)
class Recipient:
    principal_id: str
    role: AppRole
    email: Optional[str] = None


def _members_by_principal(db: Session, principal_ids: Iterable[str]) -> Dict[str, PartnerMember]:
    ids = sorted(set(principal_ids))
    if not ids:
        return {}
    rows = db.query(PartnerMember).filter(PartnerMember.principal_id.in_(ids)).all()
    return {row.principal_id: row for row in rows}


def _staff_recipients(db: Session, partner_id: str) -> List[Recipient]:
    recipients: Dict[str, Recipient] = {}

    superadmin_rows = (
        db.query(PartnerMember)
        .filter(
            func.lower(PartnerMember.role).in_(sorted(SUPERADMIN_TOKENS)),
            PartnerMember.is_disabled.is_(False),
        )
        .all()
    )
    for row in superadmin_rows:
        recipients[row.principal_id] = Recipient(row.principal_id, AppRole.SUPERADMIN, row.email)

    allowlisted = _members_by_principal(db, settings.superadmin_ids)
    for principal_id in settings.superadmin_ids:
        row = allowlisted.get(principal_id)
        if row is not None and row.is_disabled:
            continue
        recipients[principal_id] = Recipient(principal_id, AppRole.SUPERADMIN, row.email if row else None)

    assigned_ids = [
        admin_id
        for (admin_id,) in db.query(AdminPartnerAssignment.admin_id)
        .filter(AdminPartnerAssignment.partner_id == partner_id)
        .all()
    ]
    assigned_members = _members_by_principal(db, assigned_ids)
    for admin_id in assigned_ids:
        if admin_id in recipients:
            continue
        row = assigned_members.get(admin_id)
        if row is not None and (row.is_disabled or (row.role or "").lower() not in ADMIN_TOKENS):
            continue
        recipients[admin_id] = Recipient(admin_id, AppRole.ADMIN, row.email if row else None)

    return list(recipients.values())


def _partner_recipients(db: Session, partner_id: str) -> List[Recipient]:
    staff_tokens = sorted(SUPERADMIN_TOKENS | ADMIN_TOKENS)
    rows = (
        db.query(PartnerMember)
        .filter(
            PartnerMember.partner_id == partner_id,
            PartnerMember.is_disabled.is_(False),
            func.lower(PartnerMember.role).not_in(staff_tokens),
        )
        .order_by(PartnerMember.principal_id.asc())
        .all()
    )
    return [Recipient(row.principal_id, AppRole.PARTNER, row.email) for row in rows]


def recipients_for_event(db: Session, event: DomainEvent) -> List[Recipient]:
    if event.authored_by_partner:
        recipients = _staff_recipients(db, event.partner_id)
    else:
        recipients = _partner_recipients(db, event.partner_id)
    return [recipient for recipient in recipients if recipient.principal_id != event.actor_id]


def on_domain_event(db: Session, event: DomainEvent) -> List[Notification]:
    """Materialize notifications for an event. Replaying an event adds nothing."""
    recipients = recipients_for_event(db, event)
    if not recipients:
        return []

    already_notified = {
        recipient_id
        for (recipient_id,) in db.query(Notification.recipient_id)
        .filter(Notification.event_id == event.event_id)
        .all()
    }

    created: List[Notification] = []
    for recipient in recipients:
        if recipient.principal_id in already_notified:
            continue
        notification = Notification(
            event_id=event.event_id,
            recipient_id=recipient.principal_id,
            recipient_role=recipient.role.value,
            recipient_partner_id=event.partner_id,
            type=event.type,
            title=event.title,
            message=event.message,
            metadata_json=event.payload(),
        )
        db.add(notification)
        db.flush()
        enqueue_notification_deliveries(db, notification=notification, email=recipient.email)
        already_notified.add(recipient.principal_id)
        created.append(notification)

    if created:
        notifications_created_total.labels(type=event.type.value).inc(len(created))
        logger.info(
            "notifications_created",
            extra={"event_id": event.event_id, "partner_id": event.partner_id},
        )
    return created


def dispatch_event(db: Session, event: DomainEvent) -> List[Notification]:
    """Run the fan-out inside a savepoint; failures are logged, never raised."""
    try:
        with db.begin_nested():
            return on_domain_event(db, event)
    except Exception:
        logger.exception(
            "notification_fanout_failed",
            extra={"event_id": event.event_id, "partner_id": event.partner_id},
        )
        return []


def list_notifications(
    db: Session,
    identity: ResolvedIdentity,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> List[Notification]:
    query = db.query(Notification).filter(Notification.recipient_id == identity.principal_id)
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()


def unread_notification_count(db: Session, identity: ResolvedIdentity) -> int:
    return (
        db.query(func.count(Notification.id))
        .filter(
            Notification.recipient_id == identity.principal_id,
            Notification.is_read.is_(False),
        )
        .scalar()
        or 0
    )


def mark_notifications_read(
    db: Session,
    identity: ResolvedIdentity,
    notification_ids: Sequence[str],
) -> int:
    """Mark the caller's own notifications read.

    Ids that do not exist are ignored; ids owned by someone else fail the
    whole call with ``Forbidden`` before anything is written.
    """
    ids = sorted(set(notification_ids))
    if not ids:
        return 0
    rows = db.query(Notification.id, Notification.recipient_id).filter(Notification.id.in_(ids)).all()
    foreign = [row_id for row_id, recipient_id in rows if recipient_id != identity.principal_id]
    if foreign:
        raise Forbidden("Cannot mark notifications addressed to someone else", notification_ids=foreign)

    updated = (
        db.query(Notification)
        .filter(
            Notification.id.in_([row_id for row_id, _ in rows]),
            Notification.is_read.is_(False),
        )
        .update(
            {Notification.is_read: True, Notification.read_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    return updated


def mark_all_notifications_read(db: Session, identity: ResolvedIdentity) -> int:
    updated = (
        db.query(Notification)
        .filter(
            Notification.recipient_id == identity.principal_id,
            Notification.is_read.is_(False),
        )
        .update(
            {Notification.is_read: True, Notification.read_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    return updated
