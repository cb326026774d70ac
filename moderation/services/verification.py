"""
Verification of anonymous reports.
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from moderation.domain import Report, ReportStatus
from moderation.errors import InvalidVerificationTokenError
from moderation.interfaces import Notifier
from moderation.repository import ReportRepository
from moderation.services.lifecycle import LifecycleEngine
from moderation.services.submission import calendar_recipient, hash_token

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class VerificationService:
    def __init__(
        self,
        repo: ReportRepository,
        engine: LifecycleEngine,
        notifier: Notifier,
        *,
        admin_recipient: str = "admins",
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.repo = repo
        self.engine = engine
        self.notifier = notifier
        self.admin_recipient = admin_recipient
        self.clock = clock

    async def verify_report(self, token: str) -> Report:
        """
        Confirm an anonymous report with the token emailed to its reporter.

        Unknown, expired and already-used tokens all fail the same way.

        Raises:
            InvalidVerificationTokenError
            DuplicateReportError: the reporter already has a live report on
                this event.
        """
        token_hash = hash_token(token or "")
        report = await self.repo.find_by_token_hash(token_hash)
        if (
            report is None
            or report.status != ReportStatus.PENDING_VERIFICATION
            or report.verification_expiration is None
            or report.verification_expiration <= self.clock()
        ):
            raise InvalidVerificationTokenError()

        verified = await self.engine.confirm_verification(report, token_hash)
        if verified is None:
            raise InvalidVerificationTokenError()

        logger.info(f"Report {verified.id} verified")
        recipient = (
            calendar_recipient(verified.calendar_id)
            if verified.calendar_id
            else self.admin_recipient
        )
        try:
            await self.notifier.send(
                "new_report",
                recipient,
                {
                    "report_id": str(verified.id),
                    "event_id": verified.event_id,
                    "category": verified.category.value,
                },
            )
        except Exception:
            logger.exception(f"Failed to send new_report notification for {verified.id}")
        return verified
