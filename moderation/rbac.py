"""
Role-Based Access Control for report review.

Calendar owners and editors decide reports while they are submitted; once a
report is escalated only administrators may act on it.
"""
import logging

from moderation.domain import Actor, ReviewerRole
from moderation.errors import ForbiddenError
from moderation.interfaces import CalendarAuthorizer

logger = logging.getLogger(__name__)


# Capability definitions
CAPABILITIES = {
    "owner": "Owns the calendar; reviews its submitted reports",
    "editor": "Has edit access to the calendar; reviews its submitted reports",
    "admin": "Platform administrator; escalated reports, analytics, forwarding",
}

# What only an administrator may do
ADMIN_ONLY_OPERATIONS = frozenset(
    {
        "act_on_escalated",
        "create_admin_report",
        "view_analytics",
        "forward_report",
        "manage_blocked_reporters",
        "update_settings",
    }
)


class AuthorizationResolver:
    def __init__(self, calendars: CalendarAuthorizer):
        self.calendars = calendars

    @staticmethod
    def is_admin(actor: Actor | None) -> bool:
        return actor is not None and actor.is_admin

    async def calendar_role(
        self, actor: Actor | None, calendar_id: str
    ) -> ReviewerRole | None:
        """
        Resolve the actor's review role on a calendar.

        Returns:
            ReviewerRole.OWNER or ReviewerRole.EDITOR, or None without access.
        """
        if actor is None:
            return None
        if not await self.calendars.can_review(actor.account_id, calendar_id):
            return None
        if await self.calendars.is_owner(actor.account_id, calendar_id):
            return ReviewerRole.OWNER
        return ReviewerRole.EDITOR

    async def require_calendar_role(
        self, actor: Actor | None, calendar_id: str
    ) -> ReviewerRole:
        role = await self.calendar_role(actor, calendar_id)
        if role is None:
            logger.info(
                f"Denied calendar review (account: "
                f"{actor.account_id if actor else 'anonymous'}, calendar: {calendar_id})"
            )
            raise ForbiddenError()
        return role

    def require_admin(self, actor: Actor | None, operation: str) -> Actor:
        if operation not in ADMIN_ONLY_OPERATIONS:
            raise ValueError(f"Unknown admin operation: {operation}")
        if not self.is_admin(actor):
            logger.info(
                f"Denied {operation} (account: "
                f"{actor.account_id if actor else 'anonymous'})"
            )
            raise ForbiddenError()
        return actor
