"""
Contracts for the services this core talks to.

Implementations live in moderation.clients, moderation.notifications,
moderation.cache and moderation.settings_store; tests substitute fakes.
"""
from typing import Protocol

from moderation.domain import EscalationSettings, EventInfo


class CalendarAuthorizer(Protocol):
    async def can_review(self, account_id: str, calendar_id: str) -> bool: ...

    async def is_owner(self, account_id: str, calendar_id: str) -> bool: ...


class EventLookup(Protocol):
    async def get_event(self, event_id: str) -> EventInfo | None: ...


class Notifier(Protocol):
    """Fire-and-forget delivery; implementations must not block on transport."""

    async def send(self, kind: str, recipient: str, data: dict) -> None: ...


class FederationTransport(Protocol):
    async def deliver_flag(self, remote_admin_uri: str, payload: dict) -> bool: ...


class RateLimiter(Protocol):
    async def check_and_increment(
        self, key: str, limit: int, window_seconds: int
    ) -> bool: ...


class SettingsStore(Protocol):
    async def get(self) -> EscalationSettings: ...
