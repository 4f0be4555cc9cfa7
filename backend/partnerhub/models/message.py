from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from partnerhub.db.base import Base, IDMixin, TimestampMixin
from partnerhub.models.enums import SenderRole, enum_values


class Message(IDMixin, TimestampMixin, Base):
    __tablename__ = "messages"

    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True)
    deliverable_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    sender_role: Mapped[SenderRole] = mapped_column(Enum(SenderRole, name="sender_role", values_callable=enum_values), nullable=False, index=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
