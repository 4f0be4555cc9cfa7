from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from partnerhub.core.deps import get_current_identity
from partnerhub.core.errors import InvalidTransitionPayload
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.models.enums import NominationStatus
from partnerhub.schemas.nomination import (
    NominationCreate,
    NominationRead,
    NominationTransition,
    NominationUpdate,
)
from partnerhub.services import nominations as nomination_service

router = APIRouter(prefix="/api/nominations", tags=["nominations"])


@router.get("", response_model=List[NominationRead])
def list_nominations(
    partner_id: Optional[str] = Query(None),
    status_filter: Optional[NominationStatus] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=500),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> List[NominationRead]:
    rows = nomination_service.list_visible_nominations(
        db, identity, partner_id=partner_id, status=status_filter, limit=limit
    )
    return [NominationRead.model_validate(row) for row in rows]


@router.post("", response_model=NominationRead, status_code=status.HTTP_201_CREATED)
def create_nomination(
    payload: NominationCreate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> NominationRead:
    values = payload.model_dump()
    partner_id = values.pop("partner_id") or identity.partner_id
    if not partner_id:
        raise InvalidTransitionPayload("partner_id is required", field="partner_id")
    nomination = nomination_service.create_nomination(
        db, identity, partner_id, nomination_service.NominationFields(**values)
    )
    return NominationRead.model_validate(nomination)


@router.get("/{nomination_id}", response_model=NominationRead)
def get_nomination(
    nomination_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> NominationRead:
    nomination = nomination_service.get_visible_nomination(db, identity, nomination_id)
    return NominationRead.model_validate(nomination)


@router.patch("/{nomination_id}", response_model=NominationRead)
def update_nomination(
    nomination_id: str,
    payload: NominationUpdate,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> NominationRead:
    nomination = nomination_service.update_nomination(
        db, identity, nomination_id, payload.model_dump(exclude_unset=True)
    )
    return NominationRead.model_validate(nomination)


@router.post("/{nomination_id}/transition", response_model=NominationRead)
def transition_nomination(
    nomination_id: str,
    payload: NominationTransition,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> NominationRead:
    nomination = nomination_service.transition_nomination(
        db, identity, nomination_id, payload.target_status, reason=payload.reason
    )
    return NominationRead.model_validate(nomination)


@router.delete("/{nomination_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_nomination(
    nomination_id: str,
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> Response:
    nomination_service.delete_nomination(db, identity, nomination_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
