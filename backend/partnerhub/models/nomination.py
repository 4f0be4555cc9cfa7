from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from partnerhub.db.base import Base, IDMixin, TimestampMixin
from partnerhub.models.enums import NominationStatus, enum_values


class Nomination(IDMixin, TimestampMixin, Base):
    """A nominee put forward by a partner, reviewed by staff."""

    __tablename__ = "nominations"
    __table_args__ = (
        Index("ix_nominations_partner_created", "partner_id", "created_at"),
    )

    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True)

    nominee_name: Mapped[str] = mapped_column(String(255), nullable=False)
    nominee_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    nominee_bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    contact_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[NominationStatus] = mapped_column(
        Enum(NominationStatus, name="nomination_status", values_callable=enum_values),
        default=NominationStatus.SUBMITTED,
        nullable=False,
        index=True,
    )
    # Set when the nomination is rejected or hidden.
    status_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    partner: Mapped["Partner"] = relationship(back_populates="nominations")
