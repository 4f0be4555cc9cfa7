from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from partnerhub.core.deps import get_current_identity
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.models.enums import SubmissionStatus
from partnerhub.schemas.deliverable import DeliverableCreate, DeliverableRead
from partnerhub.services import deliverables as deliverable_service

router = APIRouter(prefix="/api/deliverables", tags=["deliverables"])


@router.get("", response_model=List[DeliverableRead])
def list_deliverables(
    partner_id: Optional[str] = Query(None),
    status_filter: Optional[SubmissionStatus] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> List[DeliverableRead]:
    rows = deliverable_service.list_visible_deliverables(db, identity, partner_id=partner_id, status=status_filter)
    return [DeliverableRead.model_validate(row) for row in rows]


@router.post("", response_model=DeliverableRead, status_code=status.HTTP_201_CREATED)
def create_deliverable(
    payload: DeliverableCreate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> DeliverableRead:
    deliverable = deliverable_service.create_deliverable(db, identity, **payload.model_dump())
    return DeliverableRead.model_validate(deliverable)


@router.get("/{deliverable_id}", response_model=DeliverableRead)
def get_deliverable(
    deliverable_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> DeliverableRead:
    deliverable = deliverable_service.get_visible_deliverable(db, identity, deliverable_id)
    return DeliverableRead.model_validate(deliverable)


@router.delete("/{deliverable_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_deliverable(
    deliverable_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> Response:
    deliverable_service.delete_deliverable(db, identity, deliverable_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
