from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from partnerhub.core.deps import get_current_identity
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.schemas.message import MessageCreate, MessageMarkRead, MessageRead
from partnerhub.schemas.notification import CountRead
from partnerhub.schemas.partner import PartnerRead
from partnerhub.services import messages as message_service
from partnerhub.services import partners as partner_service

router = APIRouter(prefix="/api/partners", tags=["partners"])


@router.get("", response_model=List[PartnerRead])
def list_partners(
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> List[PartnerRead]:
    return [PartnerRead.model_validate(p) for p in partner_service.list_visible_partners(db, identity)]


@router.get("/{partner_id}", response_model=PartnerRead)
def get_partner(
    partner_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> PartnerRead:
    return PartnerRead.model_validate(partner_service.get_visible_partner(db, identity, partner_id))


@router.get("/{partner_id}/messages", response_model=List[MessageRead])
def list_messages(
    partner_id: str,
    deliverable_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> List[MessageRead]:
    rows = message_service.list_messages(db, identity, partner_id, deliverable_id)
    return [MessageRead.model_validate(row) for row in rows]


@router.post("/{partner_id}/messages", response_model=MessageRead, status_code=status.HTTP_201_CREATED)
def send_message(
    partner_id: str,
    payload: MessageCreate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> MessageRead:
    message = message_service.send_message(db, identity, partner_id, payload.deliverable_id, payload.body)
    return MessageRead.model_validate(message)


@router.post("/{partner_id}/messages/read", response_model=CountRead)
def mark_messages_read(
    partner_id: str,
    payload: Optional[MessageMarkRead] = None,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> CountRead:
    deliverable_id = payload.deliverable_id if payload else None
    count = message_service.mark_messages_read(db, identity, partner_id, deliverable_id)
    return CountRead(count=count)


@router.get("/{partner_id}/messages/unread-count", response_model=CountRead)
def unread_messages(
    partner_id: str,
    deliverable_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> CountRead:
    return CountRead(count=message_service.unread_message_count(db, identity, partner_id, deliverable_id))
