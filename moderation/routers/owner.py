"""
Calendar owner and editor review endpoints.

Every route resolves the caller's calendar role before touching report data.
"""
import uuid

from fastapi import APIRouter, Depends, Query

from moderation.domain import Actor, Decision, ReportCategory, ReportStatus
from moderation.repository import SqlReportRepository
from moderation.rbac import AuthorizationResolver
from moderation.schemas.report import (
    OwnerNotesRequest,
    ReportListResponse,
    ReportView,
    ReviewRequest,
)
from moderation.security import get_current_actor
from moderation.dependencies.services import (
    get_authz,
    get_lifecycle_engine,
    get_repository,
)
from moderation.services.lifecycle import LifecycleEngine


router = APIRouter(prefix="/calendars/{calendar_id}/reports", tags=["calendar reports"])


@router.get("", response_model=ReportListResponse)
async def list_calendar_reports(
    calendar_id: str,
    status: ReportStatus | None = None,
    category: ReportCategory | None = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    authz: AuthorizationResolver = Depends(get_authz),
    repo: SqlReportRepository = Depends(get_repository),
) -> ReportListResponse:
    """
    List reports filed against events of a calendar, newest first.

    Reports still waiting for email verification are not shown.
    """
    await authz.require_calendar_role(actor, calendar_id)
    items, total = await repo.list_reports(
        calendar_id=calendar_id,
        statuses=[status] if status else None,
        category=category,
        limit=limit,
        offset=offset,
    )
    return ReportListResponse(
        items=[ReportView.model_validate(r, from_attributes=True) for r in items],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/{report_id}", response_model=ReportView)
async def get_calendar_report(
    calendar_id: str,
    report_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ReportView:
    report = await engine.get_calendar_report(actor, calendar_id, report_id)
    return ReportView.model_validate(report, from_attributes=True)


@router.put("/{report_id}", response_model=ReportView)
async def update_owner_notes(
    calendar_id: str,
    report_id: uuid.UUID,
    request: OwnerNotesRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ReportView:
    report = await engine.update_owner_notes(
        actor, calendar_id, report_id, request.owner_notes
    )
    return ReportView.model_validate(report, from_attributes=True)


@router.post("/{report_id}/resolve", response_model=ReportView)
async def resolve_report(
    calendar_id: str,
    report_id: uuid.UUID,
    request: ReviewRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ReportView:
    """Close a report as handled. Notes are required."""
    report = await engine.owner_action(
        actor, calendar_id, report_id, Decision.RESOLVE, request.notes
    )
    return ReportView.model_validate(report, from_attributes=True)


@router.post("/{report_id}/dismiss", response_model=ReportView)
async def dismiss_report(
    calendar_id: str,
    report_id: uuid.UUID,
    request: ReviewRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> ReportView:
    """
    Dismiss a report.

    The report is not closed: it goes to the administrators for a final call.
    """
    report = await engine.owner_action(
        actor, calendar_id, report_id, Decision.DISMISS, request.notes
    )
    return ReportView.model_validate(report, from_attributes=True)
