"""
Error taxonomy for the moderation service.

Every failure raised by the services is a ModerationError tagged with an
ErrorKind. The HTTP layer maps kinds to status codes through ERROR_STATUS.
"""
from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    DUPLICATE = "duplicate"
    CONFLICT = "conflict"
    INVALID_TOKEN = "invalid_token"
    BLOCKED = "blocked"
    RATE_LIMITED = "rate_limited"
    UPSTREAM = "upstream"


ERROR_STATUS: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.INVALID_TOKEN: 400,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.BLOCKED: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.DUPLICATE: 409,
    ErrorKind.CONFLICT: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.UPSTREAM: 502,
}


class ModerationError(Exception):
    kind: ErrorKind = ErrorKind.VALIDATION
    error_name: str = "ModerationError"
    default_message: str = "Moderation request failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return ERROR_STATUS[self.kind]

    def to_payload(self) -> dict:
        return {"error": self.message, "errorName": self.error_name}


class ReportValidationError(ModerationError):
    kind = ErrorKind.VALIDATION
    error_name = "ValidationError"
    default_message = "Invalid request"

    def __init__(self, errors: str | list[str] | None = None):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors or [])
        super().__init__("; ".join(self.errors) or None)


class DuplicateReportError(ModerationError):
    kind = ErrorKind.DUPLICATE
    error_name = "DuplicateReportError"
    default_message = "You have already reported this event"


class EventNotFoundError(ModerationError):
    kind = ErrorKind.NOT_FOUND
    error_name = "EventNotFoundError"
    default_message = "Event not found"


class ReportNotFoundError(ModerationError):
    kind = ErrorKind.NOT_FOUND
    error_name = "ReportNotFoundError"
    default_message = "Report not found"


class InvalidVerificationTokenError(ModerationError):
    kind = ErrorKind.INVALID_TOKEN
    error_name = "InvalidVerificationTokenError"
    default_message = "Invalid or expired verification token"


class ReporterBlockedError(ModerationError):
    kind = ErrorKind.BLOCKED
    error_name = "ReporterBlockedError"
    default_message = "This email address has been blocked from submitting reports"


class ReportAlreadyResolvedError(ModerationError):
    kind = ErrorKind.CONFLICT
    error_name = "ReportAlreadyResolvedError"
    default_message = "Report has already been resolved"


class ForbiddenError(ModerationError):
    kind = ErrorKind.FORBIDDEN
    error_name = "ForbiddenError"
    default_message = "You do not have permission to perform this action"


class EmailRateLimitError(ModerationError):
    kind = ErrorKind.RATE_LIMITED
    error_name = "EmailRateLimitError"
    default_message = "Too many reports from this email address, try again later"


class RateLimitedError(ModerationError):
    kind = ErrorKind.RATE_LIMITED
    error_name = "RateLimitedError"
    default_message = "Too many requests"


class FederationDeliveryError(ModerationError):
    kind = ErrorKind.UPSTREAM
    error_name = "FederationDeliveryError"
    default_message = "Remote instance rejected the forwarded report"


class UpstreamServiceError(ModerationError):
    """A collaborating service could not be reached or answered badly."""

    kind = ErrorKind.UPSTREAM
    error_name = "UpstreamServiceError"
    default_message = "A dependent service is unavailable"
