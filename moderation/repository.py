"""
Report storage.

ReportRepository is what the lifecycle engine, gateway and scheduler depend
on. SqlReportRepository backs it with an async SQLAlchemy session; every
status change is an UPDATE conditioned on the status the caller read, so two
racing writers cannot both win.
"""
import logging
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from moderation.domain import (
    EscalationEntry,
    EscalationSettings,
    OPEN_STATUSES,
    Report,
    ReportCategory,
    ReporterType,
    ReportStatus,
)
from moderation.errors import DuplicateReportError
from moderation.models import BlockedReporter, EscalationHistoryRow, ReportRow

logger = logging.getLogger(__name__)

_REPORT_COLUMNS = set(ReportRow.__table__.columns.keys())
_IMMUTABLE_COLUMNS = {"id", "created_at"}


def _column_values(model, columns: set[str]) -> dict:
    values = model.model_dump(include=columns)
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}


class ReportRepository(Protocol):
    async def find(self, report_id: uuid.UUID) -> Report | None: ...

    async def find_by_token_hash(self, token_hash: str) -> Report | None: ...

    async def find_open_for_fingerprint(
        self,
        fingerprint: str,
        event_id: str,
        now: datetime,
        exclude_id: uuid.UUID | None = None,
    ) -> Report | None: ...

    async def add(self, report: Report) -> Report: ...

    async def save(
        self,
        report: Report,
        expected_status: ReportStatus,
        entry: EscalationEntry | None = None,
        expected_token_hash: str | None = None,
    ) -> Report | None: ...

    async def list_due(
        self, now: datetime, escalation: EscalationSettings
    ) -> list[Report]: ...

    async def list_reminder_due(
        self, now: datetime, escalation: EscalationSettings
    ) -> list[Report]: ...

    async def mark_reminded(self, report_id: uuid.UUID, now: datetime) -> bool: ...

    async def history(self, report_id: uuid.UUID) -> list[EscalationEntry]: ...

    async def list_reports(
        self,
        *,
        calendar_id: str | None = None,
        statuses: list[ReportStatus] | None = None,
        category: ReportCategory | None = None,
        admin_queue: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Report], int]: ...

    async def is_blocked(self, email_hash: str) -> bool: ...


class SqlReportRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, report_id: uuid.UUID) -> Report | None:
        row = await self.session.get(ReportRow, report_id, populate_existing=True)
        return Report.model_validate(row) if row else None

    async def find_by_token_hash(self, token_hash: str) -> Report | None:
        stmt = (
            select(ReportRow)
            .where(ReportRow.verification_token_hash == token_hash)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return Report.model_validate(row) if row else None

    async def find_open_for_fingerprint(
        self,
        fingerprint: str,
        event_id: str,
        now: datetime,
        exclude_id: uuid.UUID | None = None,
    ) -> Report | None:
        """
        The reporter's live report on ``event_id``, if any.

        A pending report whose verification window has passed can never be
        confirmed, so it does not count.
        """
        stmt = (
            select(ReportRow)
            .where(
                ReportRow.reporter_fingerprint == fingerprint,
                ReportRow.event_id == event_id,
                ReportRow.status.in_([s.value for s in OPEN_STATUSES]),
                or_(
                    ReportRow.status != ReportStatus.PENDING_VERIFICATION.value,
                    ReportRow.verification_expiration > now,
                ),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        if exclude_id is not None:
            stmt = stmt.where(ReportRow.id != exclude_id)
        result = await self.session.execute(stmt)
        row = result.scalar_one_or_none()
        return Report.model_validate(row) if row else None

    async def add(self, report: Report) -> Report:
        """
        Insert a new report.

        Raises:
            DuplicateReportError: another open report exists for the same
                reporter fingerprint and event (partial unique index).
        """
        row = ReportRow(**_column_values(report, _REPORT_COLUMNS))
        self.session.add(row)
        try:
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.info(
                f"Duplicate report rejected for event {report.event_id}: {exc.orig}"
            )
            raise DuplicateReportError() from exc
        except Exception:
            await self.session.rollback()
            raise
        return Report.model_validate(row)

    async def save(
        self,
        report: Report,
        expected_status: ReportStatus,
        entry: EscalationEntry | None = None,
        expected_token_hash: str | None = None,
    ) -> Report | None:
        """
        Write ``report`` if the stored status still equals ``expected_status``.

        The history entry, when given, is inserted in the same transaction.

        Returns:
            The stored report, or None when the precondition no longer holds.

        Raises:
            DuplicateReportError: the write would give the reporter a second
                verified open report on the event.
        """
        conditions = [
            ReportRow.id == report.id,
            ReportRow.status == expected_status.value,
        ]
        if expected_token_hash is not None:
            conditions.append(ReportRow.verification_token_hash == expected_token_hash)

        values = _column_values(report, _REPORT_COLUMNS - _IMMUTABLE_COLUMNS)
        stmt = (
            update(ReportRow)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            if result.rowcount != 1:
                await self.session.rollback()
                return None

            if entry is not None:
                self.session.add(
                    EscalationHistoryRow(
                        **_column_values(
                            entry, set(EscalationHistoryRow.__table__.columns.keys())
                        )
                    )
                )
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            logger.info(f"Duplicate report rejected for event {report.event_id}: {exc.orig}")
            raise DuplicateReportError() from exc
        except Exception:
            await self.session.rollback()
            raise
        return await self.find(report.id)

    async def list_due(
        self, now: datetime, escalation: EscalationSettings
    ) -> list[Report]:
        auto_cutoff = now - timedelta(hours=escalation.auto_escalation_hours)
        admin_cutoff = now - timedelta(hours=escalation.admin_report_escalation_hours)
        stmt = (
            select(ReportRow)
            .where(
                ReportRow.status == ReportStatus.SUBMITTED.value,
                or_(
                    and_(
                        ReportRow.reporter_type != ReporterType.ADMIN.value,
                        ReportRow.created_at <= auto_cutoff,
                    ),
                    and_(
                        ReportRow.reporter_type == ReporterType.ADMIN.value,
                        ReportRow.created_at <= admin_cutoff,
                    ),
                ),
            )
            .order_by(ReportRow.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [Report.model_validate(row) for row in result.scalars().all()]

    async def list_reminder_due(
        self, now: datetime, escalation: EscalationSettings
    ) -> list[Report]:
        reminder = timedelta(hours=escalation.reminder_before_escalation_hours)
        auto = timedelta(hours=escalation.auto_escalation_hours)
        admin = timedelta(hours=escalation.admin_report_escalation_hours)
        stmt = (
            select(ReportRow)
            .where(
                ReportRow.status == ReportStatus.SUBMITTED.value,
                ReportRow.reminder_sent_at.is_(None),
                or_(
                    and_(
                        ReportRow.reporter_type != ReporterType.ADMIN.value,
                        ReportRow.created_at <= now - (auto - reminder),
                        ReportRow.created_at > now - auto,
                    ),
                    and_(
                        ReportRow.reporter_type == ReporterType.ADMIN.value,
                        ReportRow.created_at <= now - (admin - reminder),
                        ReportRow.created_at > now - admin,
                    ),
                ),
            )
            .order_by(ReportRow.created_at)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return [Report.model_validate(row) for row in result.scalars().all()]

    async def mark_reminded(self, report_id: uuid.UUID, now: datetime) -> bool:
        """Claim the one reminder a report may receive."""
        stmt = (
            update(ReportRow)
            .where(
                ReportRow.id == report_id,
                ReportRow.status == ReportStatus.SUBMITTED.value,
                ReportRow.reminder_sent_at.is_(None),
            )
            .values(reminder_sent_at=now)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            raise
        return result.rowcount == 1

    async def history(self, report_id: uuid.UUID) -> list[EscalationEntry]:
        stmt = (
            select(EscalationHistoryRow)
            .where(EscalationHistoryRow.report_id == report_id)
            .order_by(EscalationHistoryRow.created_at)
        )
        result = await self.session.execute(stmt)
        return [EscalationEntry.model_validate(row) for row in result.scalars().all()]

    async def list_reports(
        self,
        *,
        calendar_id: str | None = None,
        statuses: list[ReportStatus] | None = None,
        category: ReportCategory | None = None,
        admin_queue: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Report], int]:
        """
        Page through reports, newest first.

        Unverified reports are never listed. ``admin_queue`` narrows to what
        administrators act on: escalated reports and their own reports.
        """
        stmt = select(ReportRow).where(
            ReportRow.status != ReportStatus.PENDING_VERIFICATION.value
        )
        if calendar_id is not None:
            stmt = stmt.where(ReportRow.calendar_id == calendar_id)
        if statuses:
            stmt = stmt.where(ReportRow.status.in_([s.value for s in statuses]))
        if category is not None:
            stmt = stmt.where(ReportRow.category == category.value)
        if admin_queue:
            stmt = stmt.where(
                or_(
                    ReportRow.status == ReportStatus.ESCALATED.value,
                    ReportRow.reporter_type == ReporterType.ADMIN.value,
                )
            )

        count_stmt = select(func.count()).select_from(stmt.subquery())
        total = (await self.session.execute(count_stmt)).scalar_one()

        stmt = stmt.order_by(ReportRow.created_at.desc()).limit(limit).offset(offset)
        stmt = stmt.execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return [Report.model_validate(row) for row in result.scalars().all()], total

    async def is_blocked(self, email_hash: str) -> bool:
        row = await self.session.get(BlockedReporter, email_hash)
        return row is not None
