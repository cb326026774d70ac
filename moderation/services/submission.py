"""
Submission gateway: validates and files new reports.
"""
import hashlib
import hmac
import logging
import re
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from moderation.domain import (
    Actor,
    AdminPriority,
    EventInfo,
    Report,
    ReportCategory,
    ReporterIdentity,
    ReporterType,
    ReportStatus,
)
from moderation.errors import (
    DuplicateReportError,
    EmailRateLimitError,
    EventNotFoundError,
    ReporterBlockedError,
    ReportValidationError,
)
from moderation.interfaces import EventLookup, Notifier, RateLimiter
from moderation.rbac import AuthorizationResolver
from moderation.repository import ReportRepository

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 254
MAX_DESCRIPTION_LENGTH = 2000
VERIFICATION_TOKEN_BYTES = 32


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_email(email: str, secret: str) -> str:
    """Keyed hash of a normalized email; the raw address is never stored."""
    return hmac.new(
        secret.encode("utf-8"),
        normalize_email(email).encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def calendar_recipient(calendar_id: str) -> str:
    return f"calendar:{calendar_id}"


def _validate_common(category, description, errors: list[str]):
    try:
        parsed_category = ReportCategory(category)
    except ValueError:
        parsed_category = None
        names = ", ".join(c.value for c in ReportCategory)
        errors.append(f"Invalid category. Must be one of: {names}")

    cleaned = (description or "").strip()
    if not cleaned:
        errors.append("Description is required")
    elif len(cleaned) > MAX_DESCRIPTION_LENGTH:
        errors.append(
            f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
    return parsed_category, cleaned


def _parse_deadline(value, now: datetime, errors: list[str]) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            errors.append("Invalid deadline")
            return None
    if not isinstance(value, datetime):
        errors.append("Invalid deadline")
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    if value <= now:
        errors.append("Deadline must be in the future")
        return None
    return value


class SubmissionGateway:
    def __init__(
        self,
        repo: ReportRepository,
        events: EventLookup,
        notifier: Notifier,
        rate_limiter: RateLimiter,
        authz: AuthorizationResolver,
        *,
        email_hash_secret: str,
        token_ttl: timedelta = timedelta(hours=24),
        email_rate_limit: int = 5,
        email_rate_window_seconds: int = 3600,
        verify_url_base: str = "",
        admin_recipient: str = "admins",
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.repo = repo
        self.events = events
        self.notifier = notifier
        self.rate_limiter = rate_limiter
        self.authz = authz
        self.email_hash_secret = email_hash_secret
        self.token_ttl = token_ttl
        self.email_rate_limit = email_rate_limit
        self.email_rate_window_seconds = email_rate_window_seconds
        self.verify_url_base = verify_url_base
        self.admin_recipient = admin_recipient
        self.clock = clock

    async def submit_report(
        self,
        event_id: str,
        category: ReportCategory | str,
        description: str,
        reporter: ReporterIdentity,
    ) -> Report:
        """
        File a report from a visitor or an account holder.

        Anonymous reports wait for email verification; authenticated reports
        go straight to the calendar's review queue.

        Only submissions that pass every other check count against the
        per-email limit.

        Raises:
            ReportValidationError: all field problems, collected together.
            ReporterBlockedError: the email address is blocked.
            EventNotFoundError: the event does not exist.
            DuplicateReportError: an open report for this event already exists.
            EmailRateLimitError: too many reports from this email address.
        """
        errors: list[str] = []
        parsed_category, cleaned = _validate_common(category, description, errors)

        email = None
        if reporter.type == ReporterType.ANONYMOUS:
            email = normalize_email(reporter.email or "")
            if not email:
                errors.append("Email is required")
            elif len(email) > MAX_EMAIL_LENGTH:
                errors.append(f"Email must be at most {MAX_EMAIL_LENGTH} characters")
            elif not EMAIL_PATTERN.match(email):
                errors.append("Invalid email address")
        elif reporter.type == ReporterType.AUTHENTICATED:
            if not reporter.account_id:
                errors.append("Account is required for authenticated reports")
        else:
            errors.append("Admin reports must be filed through the admin endpoint")

        if errors:
            raise ReportValidationError(errors)

        if email is not None:
            email_hash = hash_email(email, self.email_hash_secret)
            if await self.repo.is_blocked(email_hash):
                logger.info(f"Blocked reporter attempted a report on event {event_id}")
                raise ReporterBlockedError()
            fingerprint = email_hash
        else:
            fingerprint = reporter.account_id

        now = self.clock()
        event = await self._require_event(event_id)
        await self._reject_duplicate(fingerprint, event_id, now)

        if email is not None:
            allowed = await self.rate_limiter.check_and_increment(
                f"report:email:{email_hash}",
                self.email_rate_limit,
                self.email_rate_window_seconds,
            )
            if not allowed:
                raise EmailRateLimitError()

        token = None
        if email is not None:
            token = secrets.token_hex(VERIFICATION_TOKEN_BYTES)
            fields = {
                "status": ReportStatus.PENDING_VERIFICATION,
                "reporter_type": ReporterType.ANONYMOUS,
                "reporter_email_hash": email_hash,
                "verification_token_hash": hash_token(token),
                "verification_expiration": now + self.token_ttl,
            }
        else:
            fields = {
                "status": ReportStatus.SUBMITTED,
                "reporter_type": ReporterType.AUTHENTICATED,
                "reporter_account_id": reporter.account_id,
            }

        report = await self.repo.add(
            self._new_report(event, parsed_category, cleaned, fingerprint, now, **fields)
        )
        logger.info(
            f"Report {report.id} filed on event {event_id} "
            f"({report.reporter_type.value}, status {report.status.value})"
        )

        if token is not None:
            await self._notify(
                "report_verification",
                email,
                {
                    "report_id": str(report.id),
                    "event_id": event_id,
                    "token": token,
                    "verify_url": f"{self.verify_url_base}{token}",
                    "expires_at": report.verification_expiration.isoformat(),
                },
            )
        else:
            await self._notify(
                "new_report",
                self._review_recipient(report),
                {
                    "report_id": str(report.id),
                    "event_id": event_id,
                    "category": report.category.value,
                },
            )
        return report

    async def submit_admin_report(
        self,
        actor: Actor | None,
        event_id: str,
        category: ReportCategory | str,
        description: str,
        priority: AdminPriority | str,
        deadline: datetime | str | None = None,
        admin_notes: str | None = None,
    ) -> Report:
        """
        File a report on behalf of the platform administrators.

        Admin reports skip verification and escalate after the admin
        escalation window. ``deadline`` is passed on to the calendar owner.
        """
        self.authz.require_admin(actor, "create_admin_report")

        errors: list[str] = []
        parsed_category, cleaned = _validate_common(category, description, errors)
        try:
            parsed_priority = AdminPriority(priority)
        except ValueError:
            parsed_priority = None
            errors.append("Invalid priority. Must be one of: low, medium, high")
        now = self.clock()
        parsed_deadline = _parse_deadline(deadline, now, errors)
        if errors:
            raise ReportValidationError(errors)

        event = await self._require_event(event_id)
        await self._reject_duplicate(actor.account_id, event_id, now)

        report = await self.repo.add(
            self._new_report(
                event,
                parsed_category,
                cleaned,
                actor.account_id,
                now,
                status=ReportStatus.SUBMITTED,
                reporter_type=ReporterType.ADMIN,
                reporter_account_id=actor.account_id,
                admin_id=actor.account_id,
                priority=parsed_priority,
                deadline=parsed_deadline,
                admin_notes=(admin_notes or "").strip() or None,
            )
        )
        logger.info(
            f"Admin report {report.id} filed on event {event_id} "
            f"(priority {parsed_priority.value})"
        )
        await self._notify(
            "admin_report",
            self._review_recipient(report),
            {
                "report_id": str(report.id),
                "event_id": event_id,
                "priority": parsed_priority.value,
                "deadline": parsed_deadline.isoformat() if parsed_deadline else None,
            },
        )
        return report

    def _new_report(
        self,
        event: EventInfo,
        category: ReportCategory,
        description: str,
        fingerprint: str,
        now: datetime,
        **fields,
    ) -> Report:
        return Report(
            id=uuid.uuid4(),
            event_id=event.event_id,
            calendar_id=event.calendar_id,
            event_series_id=event.series_id,
            category=category,
            description=description,
            reporter_fingerprint=fingerprint,
            created_at=now,
            updated_at=now,
            **fields,
        )

    def _review_recipient(self, report: Report) -> str:
        if report.calendar_id is None:
            return self.admin_recipient
        return calendar_recipient(report.calendar_id)

    async def _require_event(self, event_id: str) -> EventInfo:
        event = await self.events.get_event(event_id)
        if event is None:
            raise EventNotFoundError()
        return event

    async def _reject_duplicate(
        self, fingerprint: str, event_id: str, now: datetime
    ) -> None:
        if await self.repo.find_open_for_fingerprint(fingerprint, event_id, now):
            raise DuplicateReportError()

    async def _notify(self, kind: str, recipient: str, data: dict) -> None:
        try:
            await self.notifier.send(kind, recipient, data)
        except Exception:
            logger.exception(f"Failed to send {kind} notification")
