"""
Pydantic schemas for moderation administration endpoints.
"""
from datetime import datetime
from pydantic import BaseModel, ConfigDict


class ModerationSettingsView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    auto_escalation_hours: float
    admin_report_escalation_hours: float
    reminder_before_escalation_hours: float


class ModerationSettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their current value."""

    auto_escalation_hours: float | None = None
    admin_report_escalation_hours: float | None = None
    reminder_before_escalation_hours: float | None = None


class BlockReporterRequest(BaseModel):
    email: str | None = None
    reason: str | None = None


class BlockedReporterView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    email_hash: str
    blocked_by: str
    reason: str
    created_at: datetime
