from __future__ import annotations

from datetime import datetime
from typing import Optional

from partnerhub.schemas.base import ORMModel


class PartnerRead(ORMModel):
    id: str
    name: str
    tier: Optional[str] = None
    contract_status: Optional[str] = None
    is_active: bool
    created_at: datetime
    updated_at: datetime
