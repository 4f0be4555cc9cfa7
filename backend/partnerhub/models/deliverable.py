from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from partnerhub.db.base import Base, IDMixin, TimestampMixin
from partnerhub.models.enums import SubmissionStatus, enum_values


class Deliverable(IDMixin, TimestampMixin, Base):
    __tablename__ = "deliverables"

    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True, index=True)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    # Display cache of the latest submission's status; never used for authorization.
    display_status: Mapped[Optional[SubmissionStatus]] = mapped_column(
        Enum(SubmissionStatus, name="submission_status", values_callable=enum_values),
        nullable=True,
        index=True,
    )

    partner: Mapped["Partner"] = relationship(back_populates="deliverables")
    submissions: Mapped[List["Submission"]] = relationship(
        back_populates="deliverable",
        cascade="all, delete-orphan",
    )


class Submission(IDMixin, TimestampMixin, Base):
    __tablename__ = "submissions"
    __table_args__ = (
        Index("ix_submissions_deliverable_latest", "deliverable_id", "created_at", "id"),
    )

    deliverable_id: Mapped[str] = mapped_column(
        ForeignKey("deliverables.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    partner_id: Mapped[str] = mapped_column(ForeignKey("partners.id", ondelete="CASCADE"), nullable=False, index=True)

    file_ref: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    link_ref: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    status: Mapped[SubmissionStatus] = mapped_column(
        Enum(SubmissionStatus, name="submission_status", values_callable=enum_values),
        default=SubmissionStatus.PENDING_REVIEW,
        nullable=False,
        index=True,
    )
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    deliverable: Mapped["Deliverable"] = relationship(back_populates="submissions")
