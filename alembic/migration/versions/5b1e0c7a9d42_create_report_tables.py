"""create report, escalation history and blocked reporter tables

Revision ID: 5b1e0c7a9d42
Revises:
Create Date: 2026-10-18 10:12:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "5b1e0c7a9d42"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

VERIFIED_OPEN_STATUSES = "status IN ('submitted', 'escalated')"


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "reports",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("event_id", sa.String(length=255), nullable=False),
        sa.Column("calendar_id", sa.String(length=255), nullable=True),
        sa.Column("event_series_id", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("reporter_type", sa.String(length=32), nullable=False),
        sa.Column("reporter_account_id", sa.String(length=255), nullable=True),
        sa.Column("reporter_email_hash", sa.String(length=64), nullable=True),
        sa.Column("reporter_fingerprint", sa.String(length=255), nullable=False),
        sa.Column("verification_token_hash", sa.String(length=64), nullable=True),
        sa.Column("verification_expiration", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.String(length=16), nullable=True),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("admin_id", sa.String(length=255), nullable=True),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("owner_notes", sa.Text(), nullable=True),
        sa.Column("reviewer_id", sa.String(length=255), nullable=True),
        sa.Column("reviewer_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("escalation_type", sa.String(length=16), nullable=True),
        sa.Column("reminder_sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("forward_status", sa.String(length=16), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending_verification', 'submitted', 'escalated', "
            "'resolved', 'dismissed')",
            name="ck_reports_status",
        ),
        sa.CheckConstraint(
            "reporter_type IN ('anonymous', 'authenticated', 'admin')",
            name="ck_reports_reporter_type",
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("verification_token_hash"),
    )
    op.create_index("ix_reports_event_id", "reports", ["event_id"])
    op.create_index("ix_reports_status_created_at", "reports", ["status", "created_at"])
    op.create_index("ix_reports_calendar_id_status", "reports", ["calendar_id", "status"])
    op.create_index(
        "ix_reports_fingerprint_created_at",
        "reports",
        ["reporter_fingerprint", "created_at"],
    )
    op.create_index(
        "uq_reports_open_fingerprint_event",
        "reports",
        ["reporter_fingerprint", "event_id"],
        unique=True,
        postgresql_where=sa.text(VERIFIED_OPEN_STATUSES),
        sqlite_where=sa.text(VERIFIED_OPEN_STATUSES),
    )

    op.create_table(
        "report_escalations",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("report_id", sa.Uuid(), nullable=False),
        sa.Column("from_status", sa.String(length=32), nullable=False),
        sa.Column("to_status", sa.String(length=32), nullable=False),
        sa.Column("reviewer_id", sa.String(length=255), nullable=True),
        sa.Column("reviewer_role", sa.String(length=16), nullable=False),
        sa.Column("decision", sa.String(length=64), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "reviewer_role IN ('owner', 'editor', 'admin', 'system')",
            name="ck_report_escalations_reviewer_role",
        ),
        sa.ForeignKeyConstraint(["report_id"], ["reports.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_report_escalations_report_id", "report_escalations", ["report_id"]
    )
    op.create_index(
        "ix_report_escalations_report_created",
        "report_escalations",
        ["report_id", "created_at"],
    )

    op.create_table(
        "blocked_reporters",
        sa.Column("email_hash", sa.String(length=64), nullable=False),
        sa.Column("blocked_by", sa.String(length=255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("email_hash"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("blocked_reporters")
    op.drop_index("ix_report_escalations_report_created", table_name="report_escalations")
    op.drop_index("ix_report_escalations_report_id", table_name="report_escalations")
    op.drop_table("report_escalations")
    op.drop_index("uq_reports_open_fingerprint_event", table_name="reports")
    op.drop_index("ix_reports_fingerprint_created_at", table_name="reports")
    op.drop_index("ix_reports_calendar_id_status", table_name="reports")
    op.drop_index("ix_reports_status_created_at", table_name="reports")
    op.drop_index("ix_reports_event_id", table_name="reports")
    op.drop_table("reports")
