from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from partnerhub.core import rbac
from partnerhub.core.deps import get_current_identity
from partnerhub.core.identity import ResolvedIdentity
from partnerhub.db.session import get_db
from partnerhub.schemas.identity import IdentityRead

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.get("/me", response_model=IdentityRead)
def read_me(
    db: Session = Depends(get_db),
    identity: ResolvedIdentity = Depends(get_current_identity),
) -> IdentityRead:
    scope = rbac.visible_partner_ids(db, identity)
    return IdentityRead(
        principal_id=identity.principal_id,
        email=identity.email,
        role=identity.role,
        partner_id=identity.partner_id,
        is_disabled=identity.is_disabled,
        source=identity.source,
        visible_partner_ids=scope if scope == rbac.ALL_PARTNERS else sorted(scope),
    )
