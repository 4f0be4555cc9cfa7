from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.errors import InvalidTransitionPayload, NotFound
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.models.deliverable import Deliverable
from partnerhub.models.enums import NotificationType, SenderRole
from partnerhub.models.message import Message
from partnerhub.services.events import DomainEvent
from partnerhub.services.notifications import dispatch_event
from partnerhub.services.realtime import publish_change

logger = logging.getLogger("messages")

_PREVIEW_LENGTH = 140


def sender_role_for(identity: ResolvedIdentity) -> SenderRole:
    return SenderRole.ADMIN if identity.is_staff else SenderRole.PARTNER


def _opposite(role: SenderRole) -> SenderRole:
    return SenderRole.PARTNER if role == SenderRole.ADMIN else SenderRole.ADMIN


def _check_deliverable(db: Session, partner_id: str, deliverable_id: Optional[str]) -> Optional[Deliverable]:
    if deliverable_id is None:
        return None
    deliverable = db.get(Deliverable, deliverable_id)
    if not deliverable:
        raise NotFound("Deliverable not found", deliverable_id=deliverable_id)
    if deliverable.partner_id != partner_id:
        raise InvalidTransitionPayload(
            "Deliverable does not belong to this partner",
            field="deliverable_id",
        )
    return deliverable


def _thread_query(db: Session, partner_id: str, deliverable_id: Optional[str]):
    query = db.query(Message).filter(Message.partner_id == partner_id)
    if deliverable_id is not None:
        query = query.filter(Message.deliverable_id == deliverable_id)
    return query


def send_message(
    db: Session,
    identity: ResolvedIdentity,
    partner_id: str,
    deliverable_id: Optional[str],
    body: str,
) -> Message:
    rbac.ensure_partner_access(db, identity, partner_id)
    text = (body or "").strip()
    if not text:
        raise InvalidTransitionPayload("Message body must not be empty", field="body")
    deliverable = _check_deliverable(db, partner_id, deliverable_id)

    sender_role = sender_role_for(identity)
    message = Message(
        partner_id=partner_id,
        deliverable_id=deliverable_id,
        sender_id=identity.principal_id,
        sender_role=sender_role,
        body=text,
    )
    db.add(message)
    db.flush()

    preview = text if len(text) <= _PREVIEW_LENGTH else f"{text[:_PREVIEW_LENGTH - 3]}..."
    title = f"New message on {deliverable.name}" if deliverable else "New message"
    dispatch_event(
        db,
        DomainEvent(
            type=NotificationType.MESSAGE_RECEIVED,
            actor_id=identity.principal_id,
            actor_role=identity.role,
            partner_id=partner_id,
            deliverable_id=deliverable_id,
            message_id=message.id,
            title=title,
            message=preview,
            metadata={"sender_role": sender_role.value},
        ),
    )
    db.commit()
    db.refresh(message)
    logger.info("message_sent", extra={"partner_id": partner_id})
    publish_change(partner_id, entity="message", deliverable_id=deliverable_id)
    return message


def list_messages(
    db: Session,
    identity: ResolvedIdentity,
    partner_id: str,
    deliverable_id: Optional[str] = None,
) -> List[Message]:
    rbac.ensure_partner_access(db, identity, partner_id)
    return (
        _thread_query(db, partner_id, deliverable_id)
        .order_by(Message.created_at.asc(), Message.id.asc())
        .all()
    )


def mark_messages_read(
    db: Session,
    identity: ResolvedIdentity,
    partner_id: str,
    deliverable_id: Optional[str] = None,
) -> int:
    """Mark every unread message from the other side of the thread, in one UPDATE."""
    rbac.ensure_partner_access(db, identity, partner_id)
    from_role = _opposite(sender_role_for(identity))
    updated = (
        _thread_query(db, partner_id, deliverable_id)
        .filter(Message.sender_role == from_role, Message.is_read.is_(False))
        .update(
            {Message.is_read: True, Message.read_at: datetime.now(timezone.utc)},
            synchronize_session=False,
        )
    )
    db.commit()
    if updated:
        publish_change(partner_id, entity="message", deliverable_id=deliverable_id)
    return updated


def unread_message_count(
    db: Session,
    identity: ResolvedIdentity,
    partner_id: str,
    deliverable_id: Optional[str] = None,
) -> int:
    rbac.ensure_partner_access(db, identity, partner_id)
    from_role = _opposite(sender_role_for(identity))
    return (
        _thread_query(db, partner_id, deliverable_id)
        .with_entities(func.count(Message.id))
        .filter(Message.sender_role == from_role, Message.is_read.is_(False))
        .scalar()
        or 0
    )
