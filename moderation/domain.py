"""
Plain value types for the report lifecycle.

Services and the scheduler only ever see these models; storage rows live in
moderation.models and are converted at the repository boundary.
"""
import math
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, ValidationInfo


class ReportStatus(str, Enum):
    PENDING_VERIFICATION = "pending_verification"
    SUBMITTED = "submitted"
    ESCALATED = "escalated"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


TERMINAL_STATUSES = frozenset({ReportStatus.RESOLVED, ReportStatus.DISMISSED})
OPEN_STATUSES = frozenset(
    {
        ReportStatus.PENDING_VERIFICATION,
        ReportStatus.SUBMITTED,
        ReportStatus.ESCALATED,
    }
)


class ReportCategory(str, Enum):
    SPAM = "spam"
    INAPPROPRIATE = "inappropriate"
    MISLEADING = "misleading"
    HARASSMENT = "harassment"
    OTHER = "other"


class ReporterType(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    ADMIN = "admin"


class ReviewerRole(str, Enum):
    OWNER = "owner"
    EDITOR = "editor"
    ADMIN = "admin"
    SYSTEM = "system"


class Decision(str, Enum):
    RESOLVE = "resolve"
    DISMISS = "dismiss"
    OVERRIDE = "override"
    AUTO_ESCALATED = "auto_escalated"
    VERIFIED = "verified"
    FORWARDED_TO_REMOTE_ADMIN = "forwarded_to_remote_admin"


class EscalationType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class AdminPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ForwardStatus(str, Enum):
    PENDING = "pending"
    FORWARDED = "forwarded"
    FAILED = "failed"


class Authority(str, Enum):
    """Who is asking for a transition. Owners and editors share one authority."""

    CALENDAR = "calendar"
    ADMIN = "admin"
    SYSTEM = "system"


@dataclass(frozen=True)
class Transition:
    sources: frozenset
    target: ReportStatus
    notes_required: bool
    escalation_type: EscalationType | None = None


TRANSITIONS: dict[tuple[Authority, Decision], Transition] = {
    (Authority.CALENDAR, Decision.RESOLVE): Transition(
        sources=frozenset({ReportStatus.SUBMITTED}),
        target=ReportStatus.RESOLVED,
        notes_required=True,
    ),
    (Authority.CALENDAR, Decision.DISMISS): Transition(
        sources=frozenset({ReportStatus.SUBMITTED}),
        target=ReportStatus.ESCALATED,
        notes_required=True,
        escalation_type=EscalationType.MANUAL,
    ),
    (Authority.ADMIN, Decision.RESOLVE): Transition(
        sources=frozenset({ReportStatus.SUBMITTED, ReportStatus.ESCALATED}),
        target=ReportStatus.RESOLVED,
        notes_required=True,
    ),
    (Authority.ADMIN, Decision.DISMISS): Transition(
        sources=frozenset({ReportStatus.ESCALATED}),
        target=ReportStatus.DISMISSED,
        notes_required=True,
    ),
    # override may re-decide a report that is already resolved
    (Authority.ADMIN, Decision.OVERRIDE): Transition(
        sources=frozenset(
            {ReportStatus.SUBMITTED, ReportStatus.ESCALATED, ReportStatus.RESOLVED}
        ),
        target=ReportStatus.RESOLVED,
        notes_required=True,
    ),
    (Authority.SYSTEM, Decision.AUTO_ESCALATED): Transition(
        sources=frozenset({ReportStatus.SUBMITTED}),
        target=ReportStatus.ESCALATED,
        notes_required=False,
        escalation_type=EscalationType.AUTOMATIC,
    ),
    (Authority.SYSTEM, Decision.VERIFIED): Transition(
        sources=frozenset({ReportStatus.PENDING_VERIFICATION}),
        target=ReportStatus.SUBMITTED,
        notes_required=False,
    ),
}


def get_transition(authority: Authority, decision: Decision) -> Transition | None:
    return TRANSITIONS.get((authority, decision))


class Report(BaseModel):
    """A filed complaint against a calendar event."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    event_id: str
    calendar_id: str | None = None
    event_series_id: str | None = None
    category: ReportCategory
    description: str
    status: ReportStatus

    reporter_type: ReporterType
    reporter_account_id: str | None = None
    reporter_email_hash: str | None = None
    reporter_fingerprint: str
    verification_token_hash: str | None = None
    verification_expiration: datetime | None = None

    priority: AdminPriority | None = None
    deadline: datetime | None = None
    admin_id: str | None = None
    admin_notes: str | None = None

    owner_notes: str | None = None
    reviewer_id: str | None = None
    reviewer_notes: str | None = None
    reviewed_at: datetime | None = None
    escalation_type: EscalationType | None = None
    reminder_sent_at: datetime | None = None
    forward_status: ForwardStatus | None = None

    created_at: datetime
    updated_at: datetime

    # read-time signals, filled in by the pattern detector
    has_source_flooding_pattern: bool = False
    has_event_targeting_pattern: bool = False
    has_instance_pattern: bool = False

    @property
    def is_admin_report(self) -> bool:
        return self.reporter_type == ReporterType.ADMIN

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class EscalationEntry(BaseModel):
    """One append-only audit row for a status change or forward."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: uuid.UUID
    report_id: uuid.UUID
    from_status: ReportStatus
    to_status: ReportStatus
    reviewer_id: str | None = None
    reviewer_role: ReviewerRole
    decision: Decision
    notes: str | None = None
    created_at: datetime


class Actor(BaseModel):
    """The authenticated caller of an operation."""

    model_config = ConfigDict(frozen=True)

    account_id: str
    is_admin: bool = False


class ReporterIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: ReporterType
    email: str | None = None
    account_id: str | None = None


class EventInfo(BaseModel):
    """What the event service tells us about a reported event."""

    model_config = ConfigDict(frozen=True)

    event_id: str
    calendar_id: str | None = None
    source_url: str | None = None
    series_id: str | None = None

    @property
    def is_remote(self) -> bool:
        return self.calendar_id is None


class EscalationSettings(BaseModel):
    """Instance-wide escalation deadlines, in hours."""

    model_config = ConfigDict(frozen=True)

    auto_escalation_hours: float = Field(default=72)
    admin_report_escalation_hours: float = Field(default=24)
    reminder_before_escalation_hours: float = Field(default=12)

    @field_validator(
        "auto_escalation_hours",
        "admin_report_escalation_hours",
        "reminder_before_escalation_hours",
    )
    @classmethod
    def positive_finite(cls, v: float, info: ValidationInfo) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError(f"{info.field_name} must be a positive number")
        return v

    def escalation_due_at(self, report: Report) -> datetime:
        """
        When a submitted report stops being the owner's to decide.

        An admin report's ``deadline`` is shown to the owner but does not move
        this; admin reports always use the admin escalation window.
        """
        if report.is_admin_report:
            return report.created_at + timedelta(
                hours=self.admin_report_escalation_hours
            )
        return report.created_at + timedelta(hours=self.auto_escalation_hours)

    def reminder_due_at(self, report: Report) -> datetime:
        return self.escalation_due_at(report) - timedelta(
            hours=self.reminder_before_escalation_hours
        )
