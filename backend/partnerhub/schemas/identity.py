from __future__ import annotations

from typing import List, Optional

from partnerhub.models.enums import AppRole
from partnerhub.schemas.base import ORMModel


class IdentityRead(ORMModel):
    principal_id: str
    email: Optional[str] = None
    role: AppRole
    partner_id: Optional[str] = None
    is_disabled: bool
    source: str
    visible_partner_ids: List[str] | str
