"""Partner nominations.

Revision ID: 0002_nominations
Revises: 0001_initial_portal
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0002_nominations"
down_revision = "0001_initial_portal"
branch_labels = None
depends_on = None

NOMINATION_STATUSES = ("submitted", "under_review", "approved", "rejected", "hidden")
NEW_NOTIFICATION_TYPES = ("NOMINATION_RECEIVED", "NOMINATION_REVIEWED")


def _is_sqlite() -> bool:
    return op.get_bind().dialect.name == "sqlite"


def upgrade() -> None:
    bind = op.get_bind()
    postgresql.ENUM(*NOMINATION_STATUSES, name="nomination_status").create(bind, checkfirst=True)

    op.create_table(
        "nominations",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=64), nullable=False),
        sa.Column("nominee_name", sa.String(length=255), nullable=False),
        sa.Column("nominee_email", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("nominee_bio", sa.Text(), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("contact_email", sa.String(length=255), nullable=True),
        sa.Column("contact_phone", sa.String(length=50), nullable=True),
        sa.Column(
            "status",
            postgresql.ENUM(*NOMINATION_STATUSES, name="nomination_status", create_type=False),
            nullable=False,
        ),
        sa.Column("status_reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_by", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_nominations_partner_id", "nominations", ["partner_id"])
    op.create_index("ix_nominations_category", "nominations", ["category"])
    op.create_index("ix_nominations_status", "nominations", ["status"])
    op.create_index("ix_nominations_submitted_by", "nominations", ["submitted_by"])
    op.create_index("ix_nominations_partner_created", "nominations", ["partner_id", "created_at"])

    if _is_sqlite():
        return
    for value in NEW_NOTIFICATION_TYPES:
        op.execute(f"ALTER TYPE notification_type ADD VALUE IF NOT EXISTS '{value}'")


def downgrade() -> None:
    op.drop_table("nominations")
    postgresql.ENUM(*NOMINATION_STATUSES, name="nomination_status").drop(op.get_bind(), checkfirst=True)
    # Postgres cannot drop enum values; NOMINATION_* notification types stay.
