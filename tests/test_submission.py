"""
Submission gateway tests: validation, blocking, rate limits and duplicates.
"""
from datetime import timedelta

import pytest

from moderation.domain import ReporterIdentity, ReporterType, ReportStatus
from moderation.errors import (
    DuplicateReportError,
    EmailRateLimitError,
    EventNotFoundError,
    ForbiddenError,
    ReporterBlockedError,
    ReportValidationError,
)
from moderation.models import BlockedReporter
from moderation.services.submission import hash_email, hash_token
from conftest import ADMIN, HASH_SECRET, LOCAL_EVENT, REMOTE_EVENT, REPORTER, SECOND_EVENT, T0


def anonymous(email="visitor@example.com"):
    return ReporterIdentity(type=ReporterType.ANONYMOUS, email=email)


def signed_in(account_id=REPORTER.account_id):
    return ReporterIdentity(type=ReporterType.AUTHENTICATED, account_id=account_id)


class TestAnonymousSubmission:
    @pytest.mark.asyncio
    async def test_anonymous_report_waits_for_verification(self, moderation):
        report = await moderation.gateway.submit_report(
            LOCAL_EVENT, "spam", "  Selling knock-off tickets  ", anonymous()
        )

        assert report.status == ReportStatus.PENDING_VERIFICATION
        assert report.description == "Selling knock-off tickets"
        assert report.reporter_email_hash == hash_email("visitor@example.com", HASH_SECRET)
        assert report.verification_expiration == T0 + timedelta(hours=24)

        kind, recipient, data = moderation.notifier.sent[-1]
        assert kind == "report_verification"
        assert recipient == "visitor@example.com"
        assert data["verify_url"].endswith(data["token"])
        # only the hash of the token is stored
        assert report.verification_token_hash == hash_token(data["token"])
        assert data["token"] not in report.model_dump_json()

    @pytest.mark.asyncio
    async def test_email_is_normalized_before_hashing(self, moderation):
        report = await moderation.gateway.submit_report(
            LOCAL_EVENT, "spam", "dup", anonymous("  Visitor@Example.COM ")
        )
        assert report.reporter_email_hash == hash_email("visitor@example.com", HASH_SECRET)

    @pytest.mark.asyncio
    async def test_validation_errors_are_collected(self, moderation):
        with pytest.raises(ReportValidationError) as exc:
            await moderation.gateway.submit_report(
                LOCAL_EVENT, "nonsense", "   ", anonymous("not-an-email")
            )
        assert len(exc.value.errors) == 3
        assert "Description is required" in exc.value.errors
        assert "Invalid email address" in exc.value.errors
        assert moderation.notifier.sent == []

    @pytest.mark.asyncio
    async def test_missing_email_is_rejected(self, moderation):
        with pytest.raises(ReportValidationError, match="Email is required"):
            await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "x", anonymous(None))

    @pytest.mark.asyncio
    async def test_description_length_limit(self, moderation):
        with pytest.raises(ReportValidationError, match="at most 2000"):
            await moderation.gateway.submit_report(
                LOCAL_EVENT, "spam", "x" * 2001, anonymous()
            )

    @pytest.mark.asyncio
    async def test_blocked_email_is_rejected(self, moderation, db_session):
        db_session.add(
            BlockedReporter(
                email_hash=hash_email("visitor@example.com", HASH_SECRET),
                blocked_by=ADMIN.account_id,
                reason="abuse",
                created_at=T0,
            )
        )
        await db_session.commit()

        with pytest.raises(ReporterBlockedError):
            await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "x", anonymous())

    @pytest.mark.asyncio
    async def test_email_rate_limit(self, moderation):
        moderation.gateway.email_rate_limit = 2
        await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "one", anonymous())
        await moderation.gateway.submit_report(REMOTE_EVENT, "spam", "two", anonymous())

        with pytest.raises(EmailRateLimitError):
            await moderation.gateway.submit_report(SECOND_EVENT, "spam", "three", anonymous())

    @pytest.mark.asyncio
    async def test_rejected_submissions_do_not_use_up_the_limit(self, moderation):
        moderation.gateway.email_rate_limit = 2
        await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "one", anonymous())
        for _ in range(3):
            with pytest.raises(DuplicateReportError):
                await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "again", anonymous())
            with pytest.raises(EventNotFoundError):
                await moderation.gateway.submit_report("missing", "spam", "x", anonymous())

        second = await moderation.gateway.submit_report(SECOND_EVENT, "spam", "two", anonymous())
        assert second.status == ReportStatus.PENDING_VERIFICATION

    @pytest.mark.asyncio
    async def test_unknown_event(self, moderation):
        with pytest.raises(EventNotFoundError):
            await moderation.gateway.submit_report("missing", "spam", "x", anonymous())

    @pytest.mark.asyncio
    async def test_expired_unverified_report_does_not_block_a_new_one(
        self, moderation, clock
    ):
        first = await moderation.gateway.submit_report(
            LOCAL_EVENT, "spam", "first", anonymous()
        )
        with pytest.raises(DuplicateReportError):
            await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "again", anonymous())

        clock.advance(days=30)
        second = await moderation.gateway.submit_report(
            LOCAL_EVENT, "spam", "again", anonymous()
        )

        assert second.id != first.id
        assert second.status == ReportStatus.PENDING_VERIFICATION


class TestAuthenticatedSubmission:
    @pytest.mark.asyncio
    async def test_goes_straight_to_review(self, moderation):
        report = await moderation.gateway.submit_report(
            LOCAL_EVENT, "harassment", "Targets a person", signed_in()
        )

        assert report.status == ReportStatus.SUBMITTED
        assert report.reporter_account_id == REPORTER.account_id
        assert report.verification_token_hash is None
        assert moderation.notifier.sent[-1][:2] == ("new_report", "calendar:cal-1")

    @pytest.mark.asyncio
    async def test_remote_event_notifies_admins(self, moderation):
        report = await moderation.gateway.submit_report(
            REMOTE_EVENT, "spam", "Reposted spam", signed_in()
        )
        assert report.calendar_id is None
        assert moderation.notifier.sent[-1][:2] == ("new_report", "admins")

    @pytest.mark.asyncio
    async def test_second_open_report_is_a_duplicate(self, moderation):
        await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "first", signed_in())

        with pytest.raises(DuplicateReportError):
            await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "again", signed_in())

    @pytest.mark.asyncio
    async def test_new_report_allowed_once_previous_is_closed(self, moderation):
        first = await moderation.gateway.submit_report(
            LOCAL_EVENT, "spam", "first", signed_in()
        )
        await moderation.engine.admin_action(ADMIN, first.id, "resolve", "handled")

        second = await moderation.gateway.submit_report(
            LOCAL_EVENT, "spam", "it is back", signed_in()
        )
        assert second.id != first.id

    @pytest.mark.asyncio
    async def test_unique_index_backs_up_the_duplicate_check(self, moderation):
        await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "first", signed_in())

        async def no_open_report(*args, **kwargs):
            return None

        moderation.repo.find_open_for_fingerprint = no_open_report
        with pytest.raises(DuplicateReportError):
            await moderation.gateway.submit_report(LOCAL_EVENT, "spam", "race", signed_in())


class TestAdminReports:
    @pytest.mark.asyncio
    async def test_admin_report_with_deadline(self, moderation):
        deadline = T0 + timedelta(hours=6)
        report = await moderation.gateway.submit_admin_report(
            ADMIN, LOCAL_EVENT, "misleading", "Wrong venue", "high",
            deadline=deadline.isoformat(), admin_notes=" check venue ",
        )

        assert report.status == ReportStatus.SUBMITTED
        assert report.reporter_type == ReporterType.ADMIN
        assert report.deadline == deadline
        assert report.admin_notes == "check venue"
        assert moderation.notifier.sent[-1][0] == "admin_report"

    @pytest.mark.asyncio
    async def test_non_admin_is_forbidden(self, moderation):
        with pytest.raises(ForbiddenError):
            await moderation.gateway.submit_admin_report(
                REPORTER, LOCAL_EVENT, "spam", "x", "low"
            )

    @pytest.mark.asyncio
    async def test_past_deadline_and_bad_priority(self, moderation):
        with pytest.raises(ReportValidationError) as exc:
            await moderation.gateway.submit_admin_report(
                ADMIN, LOCAL_EVENT, "spam", "x", "urgent",
                deadline=(T0 - timedelta(hours=1)).isoformat(),
            )
        assert "Deadline must be in the future" in exc.value.errors
        assert any(e.startswith("Invalid priority") for e in exc.value.errors)
