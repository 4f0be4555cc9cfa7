from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.deps import get_current_identity
from partnerhub.core.errors import InvalidTransitionPayload, NotFound
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.models.partner import Partner
from partnerhub.schemas.submission import UploadRead
from partnerhub.services.storage import save_upload

router = APIRouter(prefix="/api/uploads", tags=["uploads"])


@router.post("", response_model=UploadRead, status_code=status.HTTP_201_CREATED)
def upload_file(
    file: UploadFile = File(...),
    partner_id: Optional[str] = Form(default=None),
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> UploadRead:
    target_partner = partner_id or identity.partner_id
    if not target_partner:
        raise InvalidTransitionPayload("partner_id is required", field="partner_id")
    rbac.ensure_partner_access(db, identity, target_partner)
    if db.get(Partner, target_partner) is None:
        raise NotFound("Partner not found", partner_id=target_partner)
    blob = save_upload(
        partner_id=target_partner,
        filename=file.filename,
        stream=file.file,
        content_type=file.content_type,
    )
    return UploadRead(
        file_ref=blob.file_ref,
        file_name=blob.file_name,
        size=blob.size,
        content_type=blob.content_type,
    )
