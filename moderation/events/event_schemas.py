"""
Pydantic schemas for events published by the moderation service.

Events go to the Redis pub/sub channel 'moderation.events' as JSON. The
notification service and dashboards subscribe to it.
"""
from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field


class BaseEvent(BaseModel):
    """Base event schema with common fields."""

    event: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationRequestedEvent(BaseEvent):
    """A notification for a non-email recipient (calendar owners, admins, accounts)."""

    event: Literal["moderation.notification"] = "moderation.notification"
    kind: str
    recipient: str
    data: dict
