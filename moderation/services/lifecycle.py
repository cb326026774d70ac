"""
Report lifecycle engine.

Every status change of a report goes through LifecycleEngine: it checks who
is asking, validates notes, and writes the new status together with one
escalation history row through a conditional repository save.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlparse

from moderation.domain import (
    Actor,
    Authority,
    Decision,
    EscalationEntry,
    ForwardStatus,
    Report,
    ReportStatus,
    ReviewerRole,
    get_transition,
)
from moderation.errors import (
    DuplicateReportError,
    EventNotFoundError,
    FederationDeliveryError,
    ReportAlreadyResolvedError,
    ReportNotFoundError,
    ReportValidationError,
)
from moderation.interfaces import EventLookup, FederationTransport, Notifier
from moderation.rbac import AuthorizationResolver
from moderation.repository import ReportRepository

logger = logging.getLogger(__name__)

OWNER_ACTIONS = frozenset({Decision.RESOLVE, Decision.DISMISS})
ADMIN_ACTIONS = frozenset({Decision.RESOLVE, Decision.DISMISS, Decision.OVERRIDE})

NOT_REMOTE_MESSAGE = "Cannot forward report: event is not from a remote instance"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def _parse_action(action: Decision | str, allowed: frozenset) -> Decision:
    try:
        decision = Decision(action)
    except ValueError:
        decision = None
    if decision not in allowed:
        names = ", ".join(sorted(d.value for d in allowed))
        raise ReportValidationError(f"Invalid action. Must be one of: {names}")
    return decision


def remote_admin_uri(source_url: str) -> str:
    """Actor URI of the administrator on the instance that published an event."""
    host = urlparse(source_url).hostname
    if not host:
        raise ReportValidationError(NOT_REMOTE_MESSAGE)
    return f"https://{host}/admin"


class LifecycleEngine:
    def __init__(
        self,
        repo: ReportRepository,
        authz: AuthorizationResolver,
        events: EventLookup,
        notifier: Notifier,
        federation: FederationTransport,
        *,
        admin_recipient: str = "admins",
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.repo = repo
        self.authz = authz
        self.events = events
        self.notifier = notifier
        self.federation = federation
        self.admin_recipient = admin_recipient
        self.clock = clock

    async def owner_action(
        self,
        actor: Actor | None,
        calendar_id: str,
        report_id: uuid.UUID,
        action: Decision | str,
        notes: str | None,
    ) -> Report:
        """
        Resolve or dismiss a submitted report as the calendar owner or an editor.

        Dismissing hands the report to administrators (submitted -> escalated).

        Raises:
            ForbiddenError: actor cannot review this calendar (checked first,
                so a missing report is indistinguishable from a forbidden one).
            ReportNotFoundError: no such report on this calendar.
            ReportValidationError: unknown action or blank notes.
            ReportAlreadyResolvedError: report is no longer submitted.
        """
        role = await self.authz.require_calendar_role(actor, calendar_id)
        decision = _parse_action(action, OWNER_ACTIONS)

        report = await self.repo.find(report_id)
        if report is None or report.calendar_id != calendar_id:
            raise ReportNotFoundError()

        updated = await self._apply(
            report, Authority.CALENDAR, decision, actor.account_id, role, notes
        )
        if updated.status == ReportStatus.ESCALATED:
            await self._notify(
                "report_escalated",
                self.admin_recipient,
                {
                    "report_id": str(updated.id),
                    "event_id": updated.event_id,
                    "escalation_type": "manual",
                    "reason": updated.reviewer_notes,
                },
            )
        else:
            await self._notify_closed(updated)
        return updated

    async def admin_action(
        self,
        actor: Actor | None,
        report_id: uuid.UUID,
        action: Decision | str,
        notes: str | None,
    ) -> Report:
        """
        Apply an administrator decision: resolve, dismiss or override.

        Raises:
            ForbiddenError: actor is not an administrator.
            ReportNotFoundError: no such report.
            ReportValidationError: unknown action or blank notes.
            ReportAlreadyResolvedError: the decision is not valid from the
                report's current status, or it changed underneath us.
        """
        self.authz.require_admin(actor, "act_on_escalated")
        decision = _parse_action(action, ADMIN_ACTIONS)

        report = await self.repo.find(report_id)
        if report is None:
            raise ReportNotFoundError()

        updated = await self._apply(
            report, Authority.ADMIN, decision, actor.account_id, ReviewerRole.ADMIN, notes
        )
        await self._notify_closed(updated)
        return updated

    async def auto_escalate(self, report_id: uuid.UUID) -> Report | None:
        """
        Hand an overdue submitted report to administrators.

        Returns:
            The escalated report, or None if it left submitted in the meantime.
        """
        report = await self.repo.find(report_id)
        if report is None or report.status != ReportStatus.SUBMITTED:
            return None
        try:
            updated = await self._apply(
                report,
                Authority.SYSTEM,
                Decision.AUTO_ESCALATED,
                None,
                ReviewerRole.SYSTEM,
                None,
            )
        except ReportAlreadyResolvedError:
            logger.info(f"Skipped auto-escalation of report {report_id}: status changed")
            return None

        await self._notify(
            "report_escalated",
            self.admin_recipient,
            {
                "report_id": str(updated.id),
                "event_id": updated.event_id,
                "escalation_type": "automatic",
            },
        )
        return updated

    async def confirm_verification(self, report: Report, token_hash: str) -> Report | None:
        """
        Move a pending report to submitted and burn its verification token.

        Returns:
            The submitted report, or None if the token was already consumed.

        Raises:
            DuplicateReportError: the reporter already has another live
                report on the same event.
        """
        other = await self.repo.find_open_for_fingerprint(
            report.reporter_fingerprint, report.event_id, self.clock(), exclude_id=report.id
        )
        if other is not None:
            raise DuplicateReportError()
        try:
            return await self._apply(
                report,
                Authority.SYSTEM,
                Decision.VERIFIED,
                None,
                ReviewerRole.SYSTEM,
                None,
                expected_token_hash=token_hash,
            )
        except ReportAlreadyResolvedError:
            return None

    async def forward_report(self, actor: Actor | None, report_id: uuid.UUID) -> Report:
        """
        Ask the remote instance's administrator to review a reposted event.

        Raises:
            ForbiddenError: actor is not an administrator.
            ReportNotFoundError / EventNotFoundError: missing report or event.
            ReportValidationError: the event is local or has no source URL;
                nothing is delivered in that case.
            FederationDeliveryError: the transport rejected the flag.
        """
        self.authz.require_admin(actor, "forward_report")
        report = await self.repo.find(report_id)
        if report is None:
            raise ReportNotFoundError()

        event = await self.events.get_event(report.event_id)
        if event is None:
            raise EventNotFoundError()
        if not event.is_remote or not event.source_url:
            raise ReportValidationError(NOT_REMOTE_MESSAGE)

        target = remote_admin_uri(event.source_url)
        payload = {
            "type": "Flag",
            "report_id": str(report.id),
            "object": event.source_url,
            "category": report.category.value,
            "content": report.description,
        }
        accepted = await self.federation.deliver_flag(target, payload)
        now = self.clock()

        if not accepted:
            failed = report.model_copy(
                update={"forward_status": ForwardStatus.FAILED, "updated_at": now}
            )
            await self.repo.save(failed, expected_status=report.status)
            logger.warning(f"Forward of report {report.id} to {target} was rejected")
            raise FederationDeliveryError()

        forwarded = report.model_copy(
            update={"forward_status": ForwardStatus.PENDING, "updated_at": now}
        )
        entry = EscalationEntry(
            id=uuid.uuid4(),
            report_id=report.id,
            from_status=report.status,
            to_status=report.status,
            reviewer_id=actor.account_id,
            reviewer_role=ReviewerRole.ADMIN,
            decision=Decision.FORWARDED_TO_REMOTE_ADMIN,
            notes=None,
            created_at=now,
        )
        saved = await self.repo.save(forwarded, expected_status=report.status, entry=entry)
        if saved is None:
            raise ReportAlreadyResolvedError()
        logger.info(f"Forwarded report {report.id} to {target}")
        return saved

    async def get_calendar_report(
        self, actor: Actor | None, calendar_id: str, report_id: uuid.UUID
    ) -> Report:
        await self.authz.require_calendar_role(actor, calendar_id)
        report = await self.repo.find(report_id)
        if (
            report is None
            or report.calendar_id != calendar_id
            or report.status == ReportStatus.PENDING_VERIFICATION
        ):
            raise ReportNotFoundError()
        return report

    async def update_owner_notes(
        self,
        actor: Actor | None,
        calendar_id: str,
        report_id: uuid.UUID,
        owner_notes: str,
    ) -> Report:
        """
        Replace the owner's private notes without changing status.

        Notes can only be edited while the report is still the owner's to
        decide.

        Raises:
            ReportAlreadyResolvedError: the report is no longer submitted, or
                changed status concurrently.
        """
        report = await self.get_calendar_report(actor, calendar_id, report_id)
        if report.status != ReportStatus.SUBMITTED:
            raise ReportAlreadyResolvedError(
                None
                if report.is_terminal
                else f"Cannot edit notes on a report with status {report.status.value}"
            )
        updated = report.model_copy(
            update={"owner_notes": owner_notes.strip() or None, "updated_at": self.clock()}
        )
        saved = await self.repo.save(updated, expected_status=report.status)
        if saved is None:
            raise ReportAlreadyResolvedError("Report changed while saving notes")
        return saved

    async def get_escalation_history(self, report_id: uuid.UUID) -> list[EscalationEntry]:
        return await self.repo.history(report_id)

    async def _apply(
        self,
        report: Report,
        authority: Authority,
        decision: Decision,
        reviewer_id: str | None,
        role: ReviewerRole,
        notes: str | None,
        *,
        expected_token_hash: str | None = None,
    ) -> Report:
        transition = get_transition(authority, decision)
        if transition is None:
            raise ReportValidationError(f"Unsupported action: {decision.value}")

        cleaned = (notes or "").strip()
        if transition.notes_required and not cleaned:
            raise ReportValidationError("Notes are required")
        if report.status not in transition.sources:
            raise ReportAlreadyResolvedError(
                None
                if report.is_terminal
                else f"Cannot {decision.value} a report with status {report.status.value}"
            )

        now = self.clock()
        updates = {"status": transition.target, "updated_at": now}
        if transition.escalation_type is not None:
            updates["escalation_type"] = transition.escalation_type
        if role != ReviewerRole.SYSTEM:
            updates.update(
                reviewer_id=reviewer_id, reviewer_notes=cleaned, reviewed_at=now
            )
        if decision == Decision.VERIFIED:
            updates.update(verification_token_hash=None, verification_expiration=None)

        entry = EscalationEntry(
            id=uuid.uuid4(),
            report_id=report.id,
            from_status=report.status,
            to_status=transition.target,
            reviewer_id=reviewer_id,
            reviewer_role=role,
            decision=decision,
            notes=cleaned or None,
            created_at=now,
        )
        saved = await self.repo.save(
            report.model_copy(update=updates),
            expected_status=report.status,
            entry=entry,
            expected_token_hash=expected_token_hash,
        )
        if saved is None:
            raise ReportAlreadyResolvedError()

        logger.info(
            f"Report {report.id}: {report.status.value} -> {transition.target.value} "
            f"({decision.value} by {role.value})"
        )
        return saved

    async def _notify_closed(self, report: Report) -> None:
        if report.status not in (ReportStatus.RESOLVED, ReportStatus.DISMISSED):
            return
        if not report.reporter_account_id:
            return
        await self._notify(
            "report_closed",
            report.reporter_account_id,
            {
                "report_id": str(report.id),
                "event_id": report.event_id,
                "status": report.status.value,
            },
        )

    async def _notify(self, kind: str, recipient: str, data: dict) -> None:
        try:
            await self.notifier.send(kind, recipient, data)
        except Exception:
            logger.exception(f"Failed to send {kind} notification to {recipient}")
