"""
Escalation scheduler tests.
"""
import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from moderation.domain import (
    Decision,
    EscalationType,
    ReporterIdentity,
    ReporterType,
    ReportStatus,
    ReviewerRole,
)
from moderation.dependencies import services
from moderation.services.scheduler import EscalationLoop, SchedulerPassResult
from conftest import ADMIN, CALENDAR_ID, LOCAL_EVENT, OWNER, REPORTER, SECOND_EVENT, T0, FakeRedis


async def file_report(moderation, event_id=LOCAL_EVENT):
    return await moderation.gateway.submit_report(
        event_id,
        "spam",
        "Ticket scam",
        ReporterIdentity(type=ReporterType.AUTHENTICATED, account_id=REPORTER.account_id),
    )


@pytest.mark.asyncio
async def test_untouched_report_escalates_after_window(moderation, clock):
    report = await file_report(moderation)

    clock.advance(hours=71)
    result = await moderation.scheduler.run_pass()
    assert result.escalated == 0
    assert (await moderation.repo.find(report.id)).status == ReportStatus.SUBMITTED

    clock.advance(hours=1, seconds=1)
    result = await moderation.scheduler.run_pass()
    assert result.escalated == 1

    escalated = await moderation.repo.find(report.id)
    assert escalated.status == ReportStatus.ESCALATED
    assert escalated.escalation_type == EscalationType.AUTOMATIC
    assert escalated.reviewer_id is None

    history = await moderation.engine.get_escalation_history(report.id)
    assert [(e.decision, e.reviewer_role, e.reviewer_id) for e in history] == [
        (Decision.AUTO_ESCALATED, ReviewerRole.SYSTEM, None)
    ]
    kind, recipient, data = moderation.notifier.sent[-1]
    assert (kind, recipient, data["escalation_type"]) == (
        "report_escalated", "admins", "automatic"
    )


@pytest.mark.asyncio
async def test_reminder_is_sent_once(moderation, clock):
    report = await file_report(moderation)

    clock.advance(hours=61)
    first = await moderation.scheduler.run_pass()
    clock.advance(hours=1)
    second = await moderation.scheduler.run_pass()

    assert first.reminded == 1
    assert second.reminded == 0
    reminders = moderation.notifier.of_kind("escalation_reminder")
    assert len(reminders) == 1
    _, recipient, data = reminders[0]
    assert recipient == f"calendar:{CALENDAR_ID}"
    assert data["report_id"] == str(report.id)
    assert data["escalates_at"] == (T0 + timedelta(hours=72)).isoformat()
    # reminders are not status changes
    assert await moderation.engine.get_escalation_history(report.id) == []


@pytest.mark.asyncio
async def test_decided_reports_are_left_alone(moderation, clock):
    report = await file_report(moderation)
    await moderation.engine.owner_action(OWNER, CALENDAR_ID, report.id, "resolve", "done")

    clock.advance(hours=100)
    result = await moderation.scheduler.run_pass()

    assert result.escalated == 0
    assert (await moderation.repo.find(report.id)).status == ReportStatus.RESOLVED


@pytest.mark.asyncio
async def test_report_decided_after_the_query_is_skipped(moderation, clock):
    report = await file_report(moderation)
    clock.advance(hours=80)
    due = await moderation.repo.list_due(clock(), moderation.escalation)
    await moderation.engine.owner_action(OWNER, CALENDAR_ID, report.id, "resolve", "just in time")

    async def stale_list_due(now, escalation):
        return due

    moderation.repo.list_due = stale_list_due
    result = await moderation.scheduler.run_pass()

    assert result.escalated == 0
    assert result.skipped == 1
    stored = await moderation.repo.find(report.id)
    assert stored.status == ReportStatus.RESOLVED
    assert len(await moderation.engine.get_escalation_history(report.id)) == 1


@pytest.mark.asyncio
async def test_failure_on_one_report_does_not_stop_the_pass(moderation, clock):
    broken = await file_report(moderation)
    healthy = await file_report(moderation, event_id=SECOND_EVENT)
    clock.advance(hours=73)

    real_auto_escalate = moderation.engine.auto_escalate

    async def flaky(report_id):
        if report_id == broken.id:
            raise RuntimeError("boom")
        return await real_auto_escalate(report_id)

    moderation.engine.auto_escalate = flaky
    result = await moderation.scheduler.run_pass()

    assert result.failed == 1
    assert result.escalated == 1
    assert (await moderation.repo.find(healthy.id)).status == ReportStatus.ESCALATED


@pytest.mark.asyncio
async def test_admin_report_escalates_after_admin_window(moderation, clock):
    report = await moderation.gateway.submit_admin_report(
        ADMIN, LOCAL_EVENT, "misleading", "Wrong date", "high",
        deadline=T0 + timedelta(hours=72),
    )

    clock.advance(hours=23)
    assert (await moderation.scheduler.run_pass()).escalated == 0

    # the later deadline does not hold the report back
    clock.advance(hours=2)
    result = await moderation.scheduler.run_pass()

    assert result.escalated == 1
    assert (await moderation.repo.find(report.id)).status == ReportStatus.ESCALATED


@pytest.mark.asyncio
async def test_pending_reports_never_escalate(moderation, clock):
    await moderation.gateway.submit_report(
        LOCAL_EVENT,
        "spam",
        "unverified",
        ReporterIdentity(type=ReporterType.ANONYMOUS, email="visitor@example.com"),
    )
    clock.advance(hours=500)

    result = await moderation.scheduler.run_pass()

    assert result.escalated == 0
    assert result.reminded == 0


@pytest.mark.asyncio
async def test_loop_runs_until_stopped(moderation, clock):
    report = await file_report(moderation)
    clock.advance(hours=73)

    moderation.scheduler.start()
    # let the first pass begin; stop() waits for it to finish
    await asyncio.sleep(0)
    await moderation.scheduler.stop()

    assert (await moderation.repo.find(report.id)).status == ReportStatus.ESCALATED


@pytest.mark.asyncio
async def test_loop_keeps_going_after_a_failed_pass():
    calls = []

    async def run_pass():
        calls.append(len(calls))
        if len(calls) == 1:
            raise RuntimeError("database unavailable")
        return SchedulerPassResult()

    loop = EscalationLoop(run_pass, interval_seconds=0.001)
    loop.start()
    for _ in range(200):
        if len(calls) >= 3:
            break
        await asyncio.sleep(0.005)
    await loop.stop()

    assert len(calls) >= 3


class RecordingSessionFactory:
    def __init__(self):
        self.opened = []
        self.closed = []

    @asynccontextmanager
    async def __call__(self):
        session = object()
        self.opened.append(session)
        yield session
        self.closed.append(session)


@pytest.mark.asyncio
async def test_in_process_loop_uses_a_fresh_session_per_pass(monkeypatch):
    factory = RecordingSessionFactory()
    seen = []

    class RecordingScheduler:
        def __init__(self, session):
            self.session = session

        async def run_pass(self):
            seen.append(self.session)
            return SchedulerPassResult()

    monkeypatch.setattr(
        services, "build_scheduler", lambda session, redis: RecordingScheduler(session)
    )
    loop = services.build_escalation_loop(FakeRedis(), session_factory=factory)

    await loop.run_pass()
    await loop.run_pass()

    assert len(seen) == 2
    assert seen[0] is not seen[1]
    assert factory.closed == factory.opened == seen
