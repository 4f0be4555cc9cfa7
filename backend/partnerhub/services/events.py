from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from partnerhub.db.base import new_id
from partnerhub.models.enums import AppRole, NotificationType


@dataclass(frozen=True)
class DomainEvent:
    """One accepted mutation. Replays must reuse the same ``event_id``."""

    type: NotificationType
    actor_id: str
    actor_role: AppRole
    partner_id: str
    title: str
    message: str
    deliverable_id: Optional[str] = None
    submission_id: Optional[str] = None
    message_id: Optional[str] = None
    nomination_id: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=new_id)

    @property
    def authored_by_partner(self) -> bool:
        return self.actor_role not in (AppRole.ADMIN, AppRole.SUPERADMIN)

    def payload(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "event_id": self.event_id,
            "partner_id": self.partner_id,
            "actor_id": self.actor_id,
        }
        for key in ("deliverable_id", "submission_id", "message_id", "nomination_id", "from_status", "to_status"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        data.update(self.metadata)
        return data
