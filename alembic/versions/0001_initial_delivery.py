"""initial delivery schema

Revision ID: 0001_initial_delivery
Revises:
Create Date: 2026-10-18

Projects plus their change requests, feedback, messages and payment
confirmations.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID


revision = "0001_initial_delivery"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- projects ---
    op.create_table(
        "projects",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", sa.String, nullable=False),
        sa.Column("business_name", sa.String, nullable=False),
        sa.Column("contact_name", sa.String, nullable=True),
        sa.Column("contact_email", sa.String, nullable=True),
        sa.Column("contact_phone", sa.String, nullable=True),
        sa.Column("package", sa.String, nullable=False),
        sa.Column(
            "service_type", sa.String, nullable=False, server_default="website"
        ),
        sa.Column("phase", sa.String, nullable=False),
        sa.Column(
            "payment_status", sa.String, nullable=False, server_default="pending"
        ),
        sa.Column("payment_url", sa.String, nullable=True),
        sa.Column("payment_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payment_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revisions_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "changes_this_month", sa.Integer, nullable=False, server_default="0"
        ),
        sa.Column("changes_reset_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("domain_info", sa.JSON, nullable=True),
        sa.Column("email_info", sa.JSON, nullable=True),
        sa.Column("legal_info", sa.JSON, nullable=True),
        sa.Column("business_info", sa.JSON, nullable=True),
        sa.Column("prelive_checklist", sa.JSON, nullable=True),
        sa.Column("intake_data", sa.JSON, nullable=True),
        sa.Column("phase_history", sa.JSON, nullable=True),
        sa.Column("referral_code", sa.String, nullable=True),
        sa.Column("referred_by", sa.String, nullable=True),
        sa.Column("live_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_developer_response_at", sa.DateTime(timezone=True), nullable=True
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.CheckConstraint("revisions_used >= 0", name="ck_projects_revisions_used"),
        sa.CheckConstraint(
            "changes_this_month >= 0", name="ck_projects_changes_this_month"
        ),
    )
    op.create_index("ix_projects_id", "projects", ["id"], unique=True)
    op.create_index("ix_projects_project_id", "projects", ["project_id"], unique=True)
    op.create_index("ix_projects_phase", "projects", ["phase"])
    op.create_index(
        "ix_projects_referral_code", "projects", ["referral_code"], unique=True
    )

    # --- change_requests ---
    op.create_table(
        "change_requests",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            sa.String,
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String, nullable=True),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("category", sa.String, nullable=False, server_default="other"),
        sa.Column("priority", sa.String, nullable=False, server_default="normal"),
        sa.Column("status", sa.String, nullable=False, server_default="pending"),
        sa.Column("response", sa.Text, nullable=True),
        sa.Column("history", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_change_requests_project_id", "change_requests", ["project_id"]
    )
    op.create_index("ix_change_requests_status", "change_requests", ["status"])
    op.create_index("ix_change_requests_priority", "change_requests", ["priority"])
    op.create_index(
        "ix_change_requests_created_at", "change_requests", ["created_at"]
    )

    # --- feedback_entries ---
    op.create_table(
        "feedback_entries",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            sa.String,
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("type", sa.String, nullable=False, server_default="design"),
        sa.Column("items", sa.JSON, nullable=False),
        sa.Column("status", sa.String, nullable=False, server_default="pending"),
        sa.Column("developer_response", sa.Text, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_feedback_entries_project_id", "feedback_entries", ["project_id"]
    )

    # --- project_messages ---
    op.create_table(
        "project_messages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            sa.String,
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender", sa.String, nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_project_messages_project_id", "project_messages", ["project_id"]
    )
    op.create_index("ix_project_messages_sent_at", "project_messages", ["sent_at"])

    # --- payment_confirmations ---
    op.create_table(
        "payment_confirmations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "project_id",
            sa.String,
            sa.ForeignKey("projects.project_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reference", sa.String, nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_payment_confirmations_project_id", "payment_confirmations", ["project_id"]
    )
    op.create_index(
        "ix_payment_confirmations_reference",
        "payment_confirmations",
        ["reference"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_table("payment_confirmations")
    op.drop_table("project_messages")
    op.drop_table("feedback_entries")
    op.drop_table("change_requests")
    op.drop_table("projects")
