"""Initial partner portal schema.

Revision ID: 0001_initial_portal
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_initial_portal"
down_revision = None
branch_labels = None
depends_on = None

SUBMISSION_STATUSES = ("pending_review", "approved", "rejected", "changes_requested", "locked_for_printing")
NOTIFICATION_TYPES = (
    "SUBMISSION_RECEIVED",
    "SUBMISSION_APPROVED",
    "SUBMISSION_REJECTED",
    "SUBMISSION_CHANGES_REQUESTED",
    "SUBMISSION_LOCKED",
    "MESSAGE_RECEIVED",
)
_ENUMS = (
    ("submission_status", SUBMISSION_STATUSES),
    ("notification_type", NOTIFICATION_TYPES),
    ("notification_channel", ("IN_APP", "EMAIL")),
    ("notification_delivery_status", ("PENDING", "SENT", "FAILED")),
    ("sender_role", ("admin", "partner")),
)


def _enum(name: str) -> postgresql.ENUM:
    values = dict(_ENUMS)[name]
    return postgresql.ENUM(*values, name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in _ENUMS:
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "partners",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("tier", sa.String(length=50), nullable=True),
        sa.Column("contract_status", sa.String(length=50), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_partners_name", "partners", ["name"])
    op.create_index("ix_partners_tier", "partners", ["tier"])
    op.create_index("ix_partners_is_active", "partners", ["is_active"])

    op.create_table(
        "partner_members",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("principal_id", sa.String(length=64), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=50), nullable=False, server_default="partner"),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column("is_disabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_partner_members_principal_id", "partner_members", ["principal_id"], unique=True)
    op.create_index("ix_partner_members_email", "partner_members", ["email"])
    op.create_index("ix_partner_members_role", "partner_members", ["role"])
    op.create_index("ix_partner_members_partner_id", "partner_members", ["partner_id"])
    op.create_index("ix_partner_members_is_disabled", "partner_members", ["is_disabled"])

    op.create_table(
        "admin_partner_assignments",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("admin_id", sa.String(length=64), nullable=False),
        sa.Column("partner_id", sa.String(length=64), nullable=False),
        sa.Column("assigned_by", sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("admin_id", "partner_id", name="uq_admin_partner_assignment"),
    )
    op.create_index("ix_admin_partner_assignments_admin_id", "admin_partner_assignments", ["admin_id"])
    op.create_index("ix_admin_partner_assignments_partner_id", "admin_partner_assignments", ["partner_id"])

    op.create_table(
        "deliverables",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_by", sa.String(length=64), nullable=True),
        sa.Column("display_status", _enum("submission_status"), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_deliverables_partner_id", "deliverables", ["partner_id"])
    op.create_index("ix_deliverables_type", "deliverables", ["type"])
    op.create_index("ix_deliverables_due_date", "deliverables", ["due_date"])
    op.create_index("ix_deliverables_display_status", "deliverables", ["display_status"])

    op.create_table(
        "submissions",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("deliverable_id", sa.String(length=64), nullable=False),
        sa.Column("partner_id", sa.String(length=64), nullable=False),
        sa.Column("file_ref", sa.String(length=1000), nullable=True),
        sa.Column("link_ref", sa.String(length=1000), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", _enum("submission_status"), nullable=False),
        sa.Column("review_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=64), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submitted_by", sa.String(length=64), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["deliverable_id"], ["deliverables.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_submissions_deliverable_id", "submissions", ["deliverable_id"])
    op.create_index("ix_submissions_partner_id", "submissions", ["partner_id"])
    op.create_index("ix_submissions_status", "submissions", ["status"])
    op.create_index("ix_submissions_submitted_by", "submissions", ["submitted_by"])
    op.create_index(
        "ix_submissions_deliverable_latest",
        "submissions",
        ["deliverable_id", "created_at", "id"],
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=64), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("recipient_role", sa.String(length=20), nullable=False),
        sa.Column("recipient_partner_id", sa.String(length=64), nullable=True),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "recipient_id", name="uq_notification_event_recipient"),
    )
    op.create_index("ix_notifications_event_id", "notifications", ["event_id"])
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
    op.create_index("ix_notifications_recipient_partner_id", "notifications", ["recipient_partner_id"])
    op.create_index("ix_notifications_type", "notifications", ["type"])
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"])

    op.create_table(
        "notification_deliveries",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("notification_id", sa.String(length=64), nullable=False),
        sa.Column("recipient_id", sa.String(length=64), nullable=False),
        sa.Column("channel", _enum("notification_channel"), nullable=False),
        sa.Column("status", _enum("notification_delivery_status"), nullable=False),
        sa.Column("to_address", sa.String(length=320), nullable=True),
        sa.Column("provider_message_id", sa.String(length=255), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["notification_id"], ["notifications.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_notification_deliveries_notification_id", "notification_deliveries", ["notification_id"])
    op.create_index("ix_notification_deliveries_recipient_id", "notification_deliveries", ["recipient_id"])
    op.create_index("ix_notification_deliveries_channel", "notification_deliveries", ["channel"])
    op.create_index("ix_notification_deliveries_status", "notification_deliveries", ["status"])

    op.create_table(
        "messages",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=64), nullable=False),
        sa.Column("deliverable_id", sa.String(length=64), nullable=True),
        sa.Column("sender_id", sa.String(length=64), nullable=False),
        sa.Column("sender_role", _enum("sender_role"), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["partner_id"], ["partners.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["deliverable_id"], ["deliverables.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_messages_partner_id", "messages", ["partner_id"])
    op.create_index("ix_messages_deliverable_id", "messages", ["deliverable_id"])
    op.create_index("ix_messages_sender_id", "messages", ["sender_id"])
    op.create_index("ix_messages_sender_role", "messages", ["sender_role"])
    op.create_index("ix_messages_is_read", "messages", ["is_read"])

    op.create_table(
        "activity_logs",
        sa.Column("id", sa.String(length=64), primary_key=True, nullable=False),
        sa.Column("partner_id", sa.String(length=64), nullable=True),
        sa.Column("actor_id", sa.String(length=64), nullable=True),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_activity_logs_partner_id", "activity_logs", ["partner_id"])
    op.create_index("ix_activity_logs_actor_id", "activity_logs", ["actor_id"])
    op.create_index("ix_activity_logs_type", "activity_logs", ["type"])


def downgrade() -> None:
    for table in (
        "activity_logs",
        "messages",
        "notification_deliveries",
        "notifications",
        "submissions",
        "deliverables",
        "admin_partner_assignments",
        "partner_members",
        "partners",
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for name, values in reversed(_ENUMS):
        postgresql.ENUM(*values, name=name).drop(bind, checkfirst=True)
