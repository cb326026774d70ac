"""
Blocked reporter management (admin only).
"""
import logging
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from moderation.domain import Actor
from moderation.errors import ReportValidationError
from moderation.models import BlockedReporter
from moderation.rbac import AuthorizationResolver
from moderation.services.submission import hash_email

logger = logging.getLogger(__name__)


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class BlockingService:
    def __init__(
        self,
        session: AsyncSession,
        authz: AuthorizationResolver,
        *,
        email_hash_secret: str,
        clock: Callable[[], datetime] = _now_utc,
    ):
        self.session = session
        self.authz = authz
        self.email_hash_secret = email_hash_secret
        self.clock = clock

    async def list_blocked_reporters(self, actor: Actor | None) -> list[BlockedReporter]:
        self.authz.require_admin(actor, "manage_blocked_reporters")
        result = await self.session.execute(
            select(BlockedReporter).order_by(BlockedReporter.created_at.desc())
        )
        return list(result.scalars().all())

    async def block_reporter(
        self, actor: Actor | None, email: str | None, reason: str | None
    ) -> BlockedReporter:
        """
        Block an email address from filing reports.

        Blocking an address that is already blocked replaces the reason.
        """
        self.authz.require_admin(actor, "manage_blocked_reporters")
        errors = []
        if not isinstance(email, str) or not email.strip():
            errors.append("Email is required")
        if not isinstance(reason, str) or not reason.strip():
            errors.append("Reason is required")
        if errors:
            raise ReportValidationError(errors)

        email_hash = hash_email(email, self.email_hash_secret)
        row = await self.session.get(BlockedReporter, email_hash)
        if row is None:
            row = BlockedReporter(
                email_hash=email_hash,
                blocked_by=actor.account_id,
                reason=reason.strip(),
                created_at=self.clock(),
            )
            self.session.add(row)
        else:
            row.blocked_by = actor.account_id
            row.reason = reason.strip()
        await self.session.commit()
        logger.info(f"Reporter {email_hash[:12]}... blocked by {actor.account_id}")
        return row

    async def unblock_reporter(self, actor: Actor | None, email_hash: str) -> None:
        """Remove a block. Unknown hashes are ignored."""
        self.authz.require_admin(actor, "manage_blocked_reporters")
        await self.session.execute(
            delete(BlockedReporter).where(BlockedReporter.email_hash == email_hash)
        )
        await self.session.commit()
        logger.info(f"Reporter {email_hash[:12]}... unblocked by {actor.account_id}")
