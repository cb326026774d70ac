"""
Moderation analytics tests.
"""
import pytest

from moderation.domain import ReporterIdentity, ReporterType
from moderation.errors import ReportValidationError
from moderation.services.analytics import AnalyticsService
from conftest import ADMIN, CALENDAR_ID, LOCAL_EVENT, OWNER, REMOTE_EVENT, SECOND_EVENT, T0


class ExplodingSession:
    """Any query is a test failure."""

    async def execute(self, *args, **kwargs):
        raise AssertionError("no query expected")


def signed_in(account_id):
    return ReporterIdentity(type=ReporterType.AUTHENTICATED, account_id=account_id)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "start,end",
    [("2026-03-02", "2026-03-02"), ("2026-03-03", "2026-03-02")],
)
async def test_end_must_be_after_start(start, end):
    service = AnalyticsService(ExplodingSession())
    with pytest.raises(ReportValidationError, match="End date must be after start date"):
        await service.get_analytics(start, end)


@pytest.mark.asyncio
async def test_unparsable_bound():
    service = AnalyticsService(ExplodingSession())
    with pytest.raises(ReportValidationError, match="Invalid start date"):
        await service.get_analytics("yesterday", "2026-03-02")


@pytest.mark.asyncio
async def test_metrics(moderation, db_session, clock):
    a = await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "a", signed_in("r1"))
    await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "b", signed_in("r2"))
    c = await moderation.gateway.submit_report(SECOND_EVENT, "spam", "c", signed_in("r1"))
    await moderation.gateway.submit_report(REMOTE_EVENT, "other", "d", signed_in("r1"))
    await moderation.gateway.submit_report(
        LOCAL_EVENT,
        "spam",
        "pending",
        ReporterIdentity(type=ReporterType.ANONYMOUS, email="visitor@example.com"),
    )

    clock.advance(hours=2)
    await moderation.engine.owner_action(OWNER, CALENDAR_ID, a.id, "resolve", "done")
    clock.advance(hours=2)
    await moderation.engine.owner_action(OWNER, CALENDAR_ID, c.id, "dismiss", "fine")
    await moderation.engine.admin_action(ADMIN, c.id, "dismiss", "agreed")

    report = await AnalyticsService(db_session).get_analytics("2026-03-01", "2026-03-03")

    assert report.total_reports == 5
    assert report.counts_by_status == {
        "pending_verification": 1,
        "submitted": 2,
        "escalated": 0,
        "resolved": 1,
        "dismissed": 1,
    }
    assert report.resolution_rate == 0.4
    assert report.owner_resolved == 1
    assert report.owner_resolution_rate == 0.2
    # dismissing as the owner hands the report to administrators
    assert report.escalated == 1
    assert report.escalation_rate == 0.2
    # resolved after 2h, dismissed after 4h
    assert report.average_resolution_hours.overall == 3.0
    assert report.average_resolution_hours.by_reporter_type == {"authenticated": 3.0}
    assert [(d.date, d.count) for d in report.daily_trend] == [("2026-03-02", 5)]
    assert report.top_reported_events[0].event_id == LOCAL_EVENT
    assert report.top_reported_events[0].count == 3
    assert report.reporter_volume.distinct_reporters == {"authenticated": 2, "anonymous": 1}
    assert report.reporter_volume.reports_per_reporter == {"1": 2, "2-5": 1, "6+": 0}


@pytest.mark.asyncio
async def test_range_excludes_other_days(moderation, db_session):
    await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "a", signed_in("r1"))

    report = await AnalyticsService(db_session).get_analytics(
        T0.replace(day=3), T0.replace(day=4)
    )

    assert report.total_reports == 0
    assert report.resolution_rate == 0.0
    assert report.average_resolution_hours.overall is None
    assert report.owner_resolution_rate == 0.0
    assert report.escalation_rate == 0.0


@pytest.mark.asyncio
async def test_scheduler_escalations_count_as_escalated(moderation, db_session, clock):
    overdue = await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "a", signed_in("r1"))
    handled = await moderation.gateway.submit_report(SECOND_EVENT, "spam", "b", signed_in("r1"))
    await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "c", signed_in("r2"))

    await moderation.engine.owner_action(OWNER, CALENDAR_ID, handled.id, "resolve", "ok")
    clock.advance(hours=73)
    await moderation.scheduler.run_pass()
    await moderation.engine.admin_action(ADMIN, overdue.id, "resolve", "removed")

    report = await AnalyticsService(db_session).get_analytics("2026-03-01", "2026-03-10")

    assert report.total_reports == 3
    # the third report was escalated by the same pass and is still open
    assert report.escalated == 2
    assert report.escalation_rate == 0.6667
    assert report.owner_resolved == 1
    assert report.owner_resolution_rate == 0.3333
    assert report.resolution_rate == 0.6667
