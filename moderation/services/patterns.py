"""
Abuse pattern detection.

Flags are computed whenever a report is read and are never stored. Each one
is a distinct-count over a sliding window compared to a threshold.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation.domain import Report
from moderation.models import ReportRow

SOURCE_FLOODING = "source_flooding"
EVENT_TARGETING = "event_targeting"
INSTANCE_PATTERN = "instance_pattern"


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class PatternThresholds(BaseModel):
    model_config = ConfigDict(frozen=True)

    window_days: int = Field(default=7, gt=0)
    source_flooding: int = Field(default=3, gt=0)
    event_targeting: int = Field(default=3, gt=0)
    instance: int = Field(default=5, gt=0)


@dataclass(frozen=True)
class PatternResult:
    type: str
    severity: str
    count: int
    threshold: int

    @property
    def detected(self) -> bool:
        return self.count >= self.threshold


def _result(pattern_type: str, count: int, threshold: int) -> PatternResult:
    return PatternResult(
        type=pattern_type,
        severity="high" if count >= threshold else "low",
        count=count,
        threshold=threshold,
    )


class PatternDetector:
    def __init__(
        self,
        session: AsyncSession,
        thresholds: PatternThresholds | None = None,
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.session = session
        self.thresholds = thresholds or PatternThresholds()
        self.clock = clock

    async def detect(self, report: Report) -> list[PatternResult]:
        """
        Measure the three abuse signals around a report.

        - source flooding: distinct events the same reporter flagged
        - event targeting: distinct reporters who flagged the same event
        - instance pattern: distinct events of the same recurring series flagged
        """
        cutoff = self.clock() - timedelta(days=self.thresholds.window_days)

        source_count = await self._scalar(
            select(func.count(func.distinct(ReportRow.event_id))).where(
                ReportRow.reporter_fingerprint == report.reporter_fingerprint,
                ReportRow.created_at >= cutoff,
            )
        )
        targeting_count = await self._scalar(
            select(func.count(func.distinct(ReportRow.reporter_fingerprint))).where(
                ReportRow.event_id == report.event_id,
                ReportRow.created_at >= cutoff,
            )
        )
        instance_count = 0
        if report.event_series_id:
            instance_count = await self._scalar(
                select(func.count(func.distinct(ReportRow.event_id))).where(
                    ReportRow.event_series_id == report.event_series_id,
                    ReportRow.created_at >= cutoff,
                )
            )

        return [
            _result(SOURCE_FLOODING, source_count, self.thresholds.source_flooding),
            _result(EVENT_TARGETING, targeting_count, self.thresholds.event_targeting),
            _result(INSTANCE_PATTERN, instance_count, self.thresholds.instance),
        ]

    async def annotate(self, report: Report) -> Report:
        results = {r.type: r for r in await self.detect(report)}
        return report.model_copy(
            update={
                "has_source_flooding_pattern": results[SOURCE_FLOODING].detected,
                "has_event_targeting_pattern": results[EVENT_TARGETING].detected,
                "has_instance_pattern": results[INSTANCE_PATTERN].detected,
            }
        )

    async def annotate_many(self, reports: list[Report]) -> list[Report]:
        return [await self.annotate(report) for report in reports]

    async def _scalar(self, stmt) -> int:
        result = await self.session.execute(stmt)
        return int(result.scalar_one() or 0)
