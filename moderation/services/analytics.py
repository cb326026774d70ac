"""
Moderation analytics (admin only, read side).
"""
import logging
from datetime import date, datetime, timezone

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation.domain import ReportStatus, TERMINAL_STATUSES
from moderation.errors import ReportValidationError
from moderation.models import EscalationHistoryRow, ReportRow

logger = logging.getLogger(__name__)

TOP_EVENTS_LIMIT = 10
TERMINAL_VALUES = frozenset(s.value for s in TERMINAL_STATUSES)
VOLUME_BUCKETS = (("1", 1, 1), ("2-5", 2, 5), ("6+", 6, None))


class DailyCount(BaseModel):
    date: str
    count: int


class EventCount(BaseModel):
    event_id: str
    count: int


class ResolutionTimes(BaseModel):
    overall: float | None
    by_reporter_type: dict[str, float | None]


class ReporterVolume(BaseModel):
    distinct_reporters: dict[str, int]
    reports_per_reporter: dict[str, int]


class AnalyticsReport(BaseModel):
    start_date: datetime
    end_date: datetime
    total_reports: int
    counts_by_status: dict[str, int]
    resolution_rate: float
    # closed without ever reaching an administrator
    owner_resolved: int
    owner_resolution_rate: float
    # handed to administrators, manually or by the scheduler
    escalated: int
    escalation_rate: float
    average_resolution_hours: ResolutionTimes
    daily_trend: list[DailyCount]
    top_reported_events: list[EventCount]
    reporter_volume: ReporterVolume


def parse_bound(value, name: str) -> datetime:
    """Accept datetimes, dates or ISO-8601 strings; naive values are UTC."""
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            raise ReportValidationError(f"Invalid {name}")
    elif isinstance(value, date) and not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if not isinstance(value, datetime):
        raise ReportValidationError(f"Invalid {name}")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _rate(part: int, total: int) -> float:
    return round(part / total, 4) if total else 0.0


def _mean(values: list[float]) -> float | None:
    if not values:
        return None
    return round(sum(values) / len(values), 2)


class AnalyticsService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_analytics(self, start, end) -> AnalyticsReport:
        """
        Aggregate reports created in ``[start, end)``.

        Raises:
            ReportValidationError: a bound is unparsable or end <= start. No
                query runs in that case.
        """
        start_at = parse_bound(start, "start date")
        end_at = parse_bound(end, "end date")
        if end_at <= start_at:
            raise ReportValidationError("End date must be after start date")

        in_range = (ReportRow.created_at >= start_at, ReportRow.created_at < end_at)

        counts = {s.value: 0 for s in ReportStatus}
        escalated = 0
        owner_resolved = 0
        was_escalated = ReportRow.escalation_type.is_not(None)
        result = await self.session.execute(
            select(ReportRow.status, was_escalated, func.count(ReportRow.id))
            .where(*in_range)
            .group_by(ReportRow.status, was_escalated)
        )
        for status, from_escalation, count in result.all():
            counts[status] += count
            if from_escalation:
                escalated += count
            elif status in TERMINAL_VALUES:
                owner_resolved += count
        total = sum(counts.values())
        closed = sum(counts[s.value] for s in TERMINAL_STATUSES)

        return AnalyticsReport(
            start_date=start_at,
            end_date=end_at,
            total_reports=total,
            counts_by_status=counts,
            resolution_rate=_rate(closed, total),
            owner_resolved=owner_resolved,
            owner_resolution_rate=_rate(owner_resolved, total),
            escalated=escalated,
            escalation_rate=_rate(escalated, total),
            average_resolution_hours=await self._resolution_times(in_range),
            daily_trend=await self._daily_trend(in_range),
            top_reported_events=await self._top_events(in_range),
            reporter_volume=await self._reporter_volume(in_range),
        )

    async def _resolution_times(self, in_range) -> ResolutionTimes:
        terminal = [s.value for s in TERMINAL_STATUSES]
        closed_at = (
            select(
                EscalationHistoryRow.report_id.label("report_id"),
                func.max(EscalationHistoryRow.created_at).label("closed_at"),
            )
            .where(EscalationHistoryRow.to_status.in_(terminal))
            .group_by(EscalationHistoryRow.report_id)
            .subquery()
        )
        result = await self.session.execute(
            select(ReportRow.reporter_type, ReportRow.created_at, closed_at.c.closed_at)
            .join(closed_at, closed_at.c.report_id == ReportRow.id)
            .where(*in_range, ReportRow.status.in_(terminal))
        )

        by_type: dict[str, list[float]] = {}
        every: list[float] = []
        for reporter_type, created_at, closed in result.all():
            hours = (closed - created_at).total_seconds() / 3600
            by_type.setdefault(reporter_type, []).append(hours)
            every.append(hours)

        return ResolutionTimes(
            overall=_mean(every),
            by_reporter_type={k: _mean(v) for k, v in by_type.items()},
        )

    async def _daily_trend(self, in_range) -> list[DailyCount]:
        day = func.date(ReportRow.created_at)
        result = await self.session.execute(
            select(day.label("day"), func.count(ReportRow.id))
            .where(*in_range)
            .group_by(day)
            .order_by(day)
        )
        return [DailyCount(date=str(d), count=c) for d, c in result.all()]

    async def _top_events(self, in_range) -> list[EventCount]:
        count = func.count(ReportRow.id)
        result = await self.session.execute(
            select(ReportRow.event_id, count.label("report_count"))
            .where(*in_range)
            .group_by(ReportRow.event_id)
            .order_by(count.desc(), ReportRow.event_id)
            .limit(TOP_EVENTS_LIMIT)
        )
        return [EventCount(event_id=e, count=c) for e, c in result.all()]

    async def _reporter_volume(self, in_range) -> ReporterVolume:
        result = await self.session.execute(
            select(
                ReportRow.reporter_type,
                func.count(func.distinct(ReportRow.reporter_fingerprint)),
            )
            .where(*in_range)
            .group_by(ReportRow.reporter_type)
        )
        distinct = {reporter_type: c for reporter_type, c in result.all()}

        result = await self.session.execute(
            select(ReportRow.reporter_fingerprint, func.count(ReportRow.id))
            .where(*in_range)
            .group_by(ReportRow.reporter_fingerprint)
        )
        histogram = {label: 0 for label, _, _ in VOLUME_BUCKETS}
        for _, n in result.all():
            for label, low, high in VOLUME_BUCKETS:
                if n >= low and (high is None or n <= high):
                    histogram[label] += 1
                    break

        return ReporterVolume(distinct_reporters=distinct, reports_per_reporter=histogram)
