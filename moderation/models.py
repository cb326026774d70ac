from datetime import datetime
import uuid

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .database import Base, UTCDateTime

_VERIFIED_OPEN_CLAUSE = text(
    "status IN ('submitted', 'escalated')"
)


class ReportRow(Base):
    __tablename__ = "reports"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    calendar_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    event_series_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    # reporter identity
    reporter_type: Mapped[str] = mapped_column(String(32), nullable=False)
    reporter_account_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reporter_email_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    reporter_fingerprint: Mapped[str] = mapped_column(String(255), nullable=False)
    verification_token_hash: Mapped[str | None] = mapped_column(
        String(64), nullable=True, unique=True
    )
    verification_expiration: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )

    # admin-initiated reports
    priority: Mapped[str | None] = mapped_column(String(16), nullable=True)
    deadline: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    admin_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # review
    owner_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewer_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    escalation_type: Mapped[str | None] = mapped_column(String(16), nullable=True)
    reminder_sent_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, nullable=True
    )
    forward_status: Mapped[str | None] = mapped_column(String(16), nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending_verification', 'submitted', 'escalated', "
            "'resolved', 'dismissed')",
            name="ck_reports_status",
        ),
        CheckConstraint(
            "reporter_type IN ('anonymous', 'authenticated', 'admin')",
            name="ck_reports_reporter_type",
        ),
        # one verified open report per reporter and event
        Index(
            "uq_reports_open_fingerprint_event",
            "reporter_fingerprint",
            "event_id",
            unique=True,
            postgresql_where=_VERIFIED_OPEN_CLAUSE,
            sqlite_where=_VERIFIED_OPEN_CLAUSE,
        ),
        Index("ix_reports_status_created_at", "status", "created_at"),
        Index("ix_reports_calendar_id_status", "calendar_id", "status"),
        Index("ix_reports_fingerprint_created_at", "reporter_fingerprint", "created_at"),
    )


class EscalationHistoryRow(Base):
    __tablename__ = "report_escalations"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("reports.id", ondelete="CASCADE"), nullable=False, index=True
    )
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    reviewer_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    reviewer_role: Mapped[str] = mapped_column(String(16), nullable=False)
    decision: Mapped[str] = mapped_column(String(64), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "reviewer_role IN ('owner', 'editor', 'admin', 'system')",
            name="ck_report_escalations_reviewer_role",
        ),
        Index("ix_report_escalations_report_created", "report_id", "created_at"),
    )


class BlockedReporter(Base):
    __tablename__ = "blocked_reporters"
    email_hash: Mapped[str] = mapped_column(String(64), primary_key=True)
    blocked_by: Mapped[str] = mapped_column(String(255), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
