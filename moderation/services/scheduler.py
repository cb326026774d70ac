"""
Auto-escalation scheduler.

Each pass asks the repository for due work instead of keeping per-report
timers, so a missed or late pass catches up on the next one.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable

from moderation.domain import Report
from moderation.interfaces import Notifier, SettingsStore
from moderation.repository import ReportRepository
from moderation.services.lifecycle import LifecycleEngine
from moderation.services.submission import calendar_recipient

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SchedulerPassResult:
    escalated: int = 0
    reminded: int = 0
    skipped: int = 0
    failed: int = 0


class EscalationLoop:
    """
    Runs escalation passes every ``interval_seconds`` until stopped.

    ``run_pass`` is called once per pass; the in-process runner gives each
    call its own database session.
    """

    def __init__(
        self,
        run_pass: Callable[[], Awaitable[SchedulerPassResult]],
        interval_seconds: float = 900,
    ):
        self.run_pass = run_pass
        self.interval_seconds = interval_seconds
        self._stop = asyncio.Event()
        self._task: asyncio.Task | None = None

    async def run_forever(self) -> None:
        """Run passes until stop() is called. An in-flight pass always finishes."""
        while not self._stop.is_set():
            try:
                await self.run_pass()
            except Exception:
                logger.exception("Escalation pass failed")
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue

    def start(self) -> asyncio.Task:
        self._stop.clear()
        self._task = asyncio.create_task(self.run_forever())
        return self._task

    async def stop(self) -> None:
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None


class EscalationScheduler:
    def __init__(
        self,
        repo: ReportRepository,
        engine: LifecycleEngine,
        settings_store: SettingsStore,
        notifier: Notifier,
        *,
        interval_seconds: float = 900,
        admin_recipient: str = "admins",
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.repo = repo
        self.engine = engine
        self.settings_store = settings_store
        self.notifier = notifier
        self.interval_seconds = interval_seconds
        self.admin_recipient = admin_recipient
        self.clock = clock
        self._loop = EscalationLoop(self.run_pass, interval_seconds)

    async def run_pass(self) -> SchedulerPassResult:
        """
        Escalate overdue submitted reports, then send due reminders.

        A report that a person moved out of submitted after the query is
        skipped; a failure on one report does not stop the others.
        """
        escalation = await self.settings_store.get()
        now = self.clock()
        result = SchedulerPassResult()

        for report in await self.repo.list_due(now, escalation):
            try:
                escalated = await self.engine.auto_escalate(report.id)
            except Exception:
                logger.exception(f"Auto-escalation failed for report {report.id}")
                result.failed += 1
                continue
            if escalated is None:
                result.skipped += 1
            else:
                result.escalated += 1

        for report in await self.repo.list_reminder_due(now, escalation):
            try:
                claimed = await self.repo.mark_reminded(report.id, now)
            except Exception:
                logger.exception(f"Could not mark reminder for report {report.id}")
                result.failed += 1
                continue
            if not claimed:
                result.skipped += 1
                continue
            await self._send_reminder(report, escalation.escalation_due_at(report))
            result.reminded += 1

        logger.info(
            f"Escalation pass: {result.escalated} escalated, {result.reminded} reminded, "
            f"{result.skipped} skipped, {result.failed} failed"
        )
        return result

    async def run_forever(self) -> None:
        await self._loop.run_forever()

    def start(self) -> asyncio.Task:
        return self._loop.start()

    async def stop(self) -> None:
        await self._loop.stop()

    async def _send_reminder(self, report: Report, due_at: datetime) -> None:
        recipient = (
            calendar_recipient(report.calendar_id)
            if report.calendar_id
            else self.admin_recipient
        )
        try:
            await self.notifier.send(
                "escalation_reminder",
                recipient,
                {
                    "report_id": str(report.id),
                    "event_id": report.event_id,
                    "escalates_at": due_at.isoformat(),
                },
            )
        except Exception:
            logger.exception(f"Failed to send reminder for report {report.id}")
