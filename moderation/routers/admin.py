"""
Administrator moderation endpoints.
"""
import uuid

from fastapi import APIRouter, Depends, Query, Response

from moderation.domain import Actor, ReportCategory, ReportStatus
from moderation.errors import ReportNotFoundError
from moderation.rbac import AuthorizationResolver
from moderation.repository import SqlReportRepository
from moderation.schemas.moderation import (
    BlockedReporterView,
    BlockReporterRequest,
    ModerationSettingsUpdate,
    ModerationSettingsView,
)
from moderation.schemas.report import (
    AdminActionRequest,
    AdminReportDetail,
    AdminReportListResponse,
    AdminReportRequest,
    AdminReportView,
    EscalationEntryView,
    MessageResponse,
    PatternView,
)
from moderation.security import get_current_actor
from moderation.dependencies.services import (
    get_analytics_service,
    get_authz,
    get_blocking_service,
    get_lifecycle_engine,
    get_pattern_detector,
    get_repository,
    get_settings_store,
    get_submission_gateway,
)
from moderation.services.analytics import AnalyticsReport, AnalyticsService
from moderation.services.blocking import BlockingService
from moderation.services.lifecycle import LifecycleEngine
from moderation.services.patterns import PatternDetector
from moderation.services.submission import SubmissionGateway
from moderation.settings_store import RedisSettingsStore


router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/reports", response_model=AdminReportListResponse)
async def list_admin_reports(
    status: ReportStatus | None = None,
    category: ReportCategory | None = None,
    all_reports: bool = Query(False, description="Include reports not in the admin queue"),
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    actor: Actor = Depends(get_current_actor),
    authz: AuthorizationResolver = Depends(get_authz),
    repo: SqlReportRepository = Depends(get_repository),
    patterns: PatternDetector = Depends(get_pattern_detector),
) -> AdminReportListResponse:
    """
    The admin queue: escalated reports and reports filed by administrators.

    Each item carries the abuse pattern flags measured at read time.
    """
    authz.require_admin(actor, "act_on_escalated")
    items, total = await repo.list_reports(
        statuses=[status] if status else None,
        category=category,
        admin_queue=not all_reports,
        limit=limit,
        offset=offset,
    )
    annotated = await patterns.annotate_many(items)
    return AdminReportListResponse(
        items=[AdminReportView.model_validate(r, from_attributes=True) for r in annotated],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.post("/reports", response_model=AdminReportView, status_code=201)
async def create_admin_report(
    request: AdminReportRequest,
    actor: Actor = Depends(get_current_actor),
    gateway: SubmissionGateway = Depends(get_submission_gateway),
) -> AdminReportView:
    report = await gateway.submit_admin_report(
        actor,
        request.event_id,
        request.category,
        request.description,
        request.priority,
        deadline=request.deadline,
        admin_notes=request.admin_notes,
    )
    return AdminReportView.model_validate(report, from_attributes=True)


@router.get("/reports/{report_id}", response_model=AdminReportDetail)
async def get_admin_report(
    report_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    authz: AuthorizationResolver = Depends(get_authz),
    repo: SqlReportRepository = Depends(get_repository),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
    patterns: PatternDetector = Depends(get_pattern_detector),
) -> AdminReportDetail:
    """Report with its full escalation history and pattern measurements."""
    authz.require_admin(actor, "act_on_escalated")
    report = await repo.find(report_id)
    if report is None:
        raise ReportNotFoundError()

    results = await patterns.detect(report)
    annotated = await patterns.annotate(report)
    history = await engine.get_escalation_history(report_id)
    return AdminReportDetail(
        report=AdminReportView.model_validate(annotated, from_attributes=True),
        escalation_history=[
            EscalationEntryView.model_validate(e, from_attributes=True) for e in history
        ],
        patterns=[PatternView.model_validate(p, from_attributes=True) for p in results],
    )


@router.put("/reports/{report_id}", response_model=AdminReportView)
async def act_on_report(
    report_id: uuid.UUID,
    request: AdminActionRequest,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> AdminReportView:
    """Resolve, dismiss or override a report. Notes are required."""
    report = await engine.admin_action(actor, report_id, request.action, request.notes)
    return AdminReportView.model_validate(report, from_attributes=True)


@router.post("/reports/{report_id}/forward-to-admin", response_model=MessageResponse)
async def forward_report(
    report_id: uuid.UUID,
    actor: Actor = Depends(get_current_actor),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
) -> MessageResponse:
    """Send a Flag for a reposted event to its origin instance's administrator."""
    await engine.forward_report(actor, report_id)
    return MessageResponse(message="Report forwarded to remote admin")


@router.get("/moderation/analytics", response_model=AnalyticsReport)
async def get_analytics(
    start_date: str | None = None,
    end_date: str | None = None,
    actor: Actor = Depends(get_current_actor),
    authz: AuthorizationResolver = Depends(get_authz),
    analytics: AnalyticsService = Depends(get_analytics_service),
) -> AnalyticsReport:
    authz.require_admin(actor, "view_analytics")
    return await analytics.get_analytics(start_date, end_date)


@router.get("/moderation/settings", response_model=ModerationSettingsView)
async def get_moderation_settings(
    actor: Actor = Depends(get_current_actor),
    authz: AuthorizationResolver = Depends(get_authz),
    store: RedisSettingsStore = Depends(get_settings_store),
) -> ModerationSettingsView:
    authz.require_admin(actor, "update_settings")
    return ModerationSettingsView.model_validate(await store.get(), from_attributes=True)


@router.put("/moderation/settings", response_model=ModerationSettingsView)
async def update_moderation_settings(
    request: ModerationSettingsUpdate,
    actor: Actor = Depends(get_current_actor),
    authz: AuthorizationResolver = Depends(get_authz),
    store: RedisSettingsStore = Depends(get_settings_store),
) -> ModerationSettingsView:
    """
    Change escalation deadlines. The scheduler picks up new values on its
    next pass.
    """
    authz.require_admin(actor, "update_settings")
    updated = await store.update(request.model_dump(exclude_none=True))
    return ModerationSettingsView.model_validate(updated, from_attributes=True)


@router.get("/moderation/blocked-reporters", response_model=list[BlockedReporterView])
async def list_blocked_reporters(
    actor: Actor = Depends(get_current_actor),
    blocking: BlockingService = Depends(get_blocking_service),
) -> list[BlockedReporterView]:
    rows = await blocking.list_blocked_reporters(actor)
    return [BlockedReporterView.model_validate(row) for row in rows]


@router.post(
    "/moderation/blocked-reporters", response_model=BlockedReporterView, status_code=201
)
async def block_reporter(
    request: BlockReporterRequest,
    actor: Actor = Depends(get_current_actor),
    blocking: BlockingService = Depends(get_blocking_service),
) -> BlockedReporterView:
    row = await blocking.block_reporter(actor, request.email, request.reason)
    return BlockedReporterView.model_validate(row)


@router.delete("/moderation/blocked-reporters/{email_hash}", status_code=204)
async def unblock_reporter(
    email_hash: str,
    actor: Actor = Depends(get_current_actor),
    blocking: BlockingService = Depends(get_blocking_service),
) -> Response:
    await blocking.unblock_reporter(actor, email_hash)
    return Response(status_code=204)
