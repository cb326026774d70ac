"""
Public reporting endpoints: anyone may report an event.
"""
from fastapi import APIRouter, Depends

from moderation.domain import Actor, ReporterIdentity, ReporterType
from moderation.schemas.report import (
    ReportSubmitRequest,
    ReportSubmitResponse,
    VerifyReportRequest,
)
from moderation.security import get_optional_actor
from moderation.dependencies.services import (
    get_submission_gateway,
    get_verification_service,
)
from moderation.services.submission import SubmissionGateway
from moderation.services.verification import VerificationService


router = APIRouter(tags=["reports"])

PENDING_MESSAGE = "Report submitted. Please check your email to verify."
SUBMITTED_MESSAGE = "Report submitted"
VERIFIED_MESSAGE = "Report verified"


@router.post("/events/{event_id}/reports", response_model=ReportSubmitResponse, status_code=201)
async def submit_report(
    event_id: str,
    request: ReportSubmitRequest,
    actor: Actor | None = Depends(get_optional_actor),
    gateway: SubmissionGateway = Depends(get_submission_gateway),
) -> ReportSubmitResponse:
    """
    Report an event.

    Signed-in callers file straight into review. Anonymous visitors must give
    an email address and confirm the report with the link sent to it.
    """
    if actor is not None:
        reporter = ReporterIdentity(
            type=ReporterType.AUTHENTICATED, account_id=actor.account_id
        )
    else:
        reporter = ReporterIdentity(type=ReporterType.ANONYMOUS, email=request.email)

    report = await gateway.submit_report(
        event_id, request.category, request.description, reporter
    )
    message = PENDING_MESSAGE if actor is None else SUBMITTED_MESSAGE
    return ReportSubmitResponse(id=report.id, status=report.status, message=message)


@router.post("/reports/verify", response_model=ReportSubmitResponse)
async def verify_report(
    request: VerifyReportRequest,
    verification: VerificationService = Depends(get_verification_service),
) -> ReportSubmitResponse:
    report = await verification.verify_report(request.token)
    return ReportSubmitResponse(
        id=report.id, status=report.status, message=VERIFIED_MESSAGE
    )
