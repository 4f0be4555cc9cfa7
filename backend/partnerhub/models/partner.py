from __future__ import annotations

from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from partnerhub.db.base import Base, IDMixin, TimestampMixin


class Partner(IDMixin, TimestampMixin, Base):
    __tablename__ = "partners"

    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    tier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    contract_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

    members: Mapped[List["PartnerMember"]] = relationship(back_populates="partner")
    deliverables: Mapped[List["Deliverable"]] = relationship(
        back_populates="partner", cascade="all, delete-orphan"
    )
    nominations: Mapped[List["Nomination"]] = relationship(
        back_populates="partner", cascade="all, delete-orphan"
    )
    admin_assignments: Mapped[List["AdminPartnerAssignment"]] = relationship(
        back_populates="partner", cascade="all, delete-orphan"
    )


class PartnerMember(IDMixin, TimestampMixin, Base):
    """Durable membership record for a principal (partner user or staff)."""

    __tablename__ = "partner_members"

    principal_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Raw token as provisioned ("partner", "admin", "sef_admin", ...); normalized on read.
    role: Mapped[str] = mapped_column(String(50), nullable=False, default="partner", index=True)
    partner_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("partners.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    is_disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    partner: Mapped[Optional["Partner"]] = relationship(back_populates="members")


class AdminPartnerAssignment(IDMixin, TimestampMixin, Base):
    __tablename__ = "admin_partner_assignments"
    __table_args__ = (
        UniqueConstraint("admin_id", "partner_id", name="uq_admin_partner_assignment"),
    )

    admin_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    partner_id: Mapped[str] = mapped_column(
        ForeignKey("partners.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_by: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    partner: Mapped["Partner"] = relationship(back_populates="admin_assignments")
