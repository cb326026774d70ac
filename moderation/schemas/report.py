"""
Pydantic schemas for the report endpoints.

Request fields are loosely typed on purpose: the submission gateway collects
every field problem into one ValidationError response.
"""
from datetime import datetime
import uuid
from pydantic import BaseModel, ConfigDict, Field

from moderation.domain import (
    AdminPriority,
    Decision,
    EscalationType,
    ForwardStatus,
    ReportCategory,
    ReporterType,
    ReportStatus,
    ReviewerRole,
)


class ReportSubmitRequest(BaseModel):
    """Report on an event. Anonymous visitors must supply an email."""

    category: str | None = None
    description: str | None = None
    email: str | None = Field(None, description="Required when not signed in")


class ReportSubmitResponse(BaseModel):
    id: uuid.UUID
    status: ReportStatus
    message: str


class VerifyReportRequest(BaseModel):
    token: str = ""


class ReviewRequest(BaseModel):
    notes: str | None = None


class OwnerNotesRequest(BaseModel):
    owner_notes: str = Field(..., max_length=2000)


class AdminActionRequest(BaseModel):
    """Admin decision on a report."""

    action: str = Field(..., description="override, resolve or dismiss")
    notes: str | None = None


class AdminReportRequest(BaseModel):
    event_id: str
    category: str | None = None
    description: str | None = None
    priority: str | None = None
    deadline: str | None = None
    admin_notes: str | None = None


class ReportView(BaseModel):
    """What a calendar owner or editor sees."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    event_id: str
    calendar_id: str | None = None
    category: ReportCategory
    description: str
    status: ReportStatus
    reporter_type: ReporterType
    owner_notes: str | None = None
    reviewer_id: str | None = None
    reviewer_notes: str | None = None
    reviewed_at: datetime | None = None
    escalation_type: EscalationType | None = None
    priority: AdminPriority | None = None
    deadline: datetime | None = None
    created_at: datetime
    updated_at: datetime


class AdminReportView(ReportView):
    """Owner view plus reporter identity, admin fields and abuse signals."""

    event_series_id: str | None = None
    reporter_account_id: str | None = None
    reporter_email_hash: str | None = None
    admin_id: str | None = None
    admin_notes: str | None = None
    forward_status: ForwardStatus | None = None
    has_source_flooding_pattern: bool = False
    has_event_targeting_pattern: bool = False
    has_instance_pattern: bool = False


class EscalationEntryView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    from_status: ReportStatus
    to_status: ReportStatus
    reviewer_id: str | None = None
    reviewer_role: ReviewerRole
    decision: Decision
    notes: str | None = None
    created_at: datetime


class PatternView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    type: str
    severity: str
    count: int
    threshold: int


class AdminReportDetail(BaseModel):
    report: AdminReportView
    escalation_history: list[EscalationEntryView]
    patterns: list[PatternView]


class ReportListResponse(BaseModel):
    """Paginated list of reports."""

    items: list[ReportView]
    total: int
    limit: int
    offset: int


class AdminReportListResponse(BaseModel):
    items: list[AdminReportView]
    total: int
    limit: int
    offset: int


class MessageResponse(BaseModel):
    message: str
