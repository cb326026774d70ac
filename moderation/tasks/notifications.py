"""Notification delivery tasks."""
import asyncio
import logging

from moderation.celery_app import app
from moderation.events.emitter import emit_event
from moderation.events.event_schemas import NotificationRequestedEvent
from moderation.redis_client import new_redis
from moderation.services.email import render_notification, send_email

logger = logging.getLogger(__name__)


# kinds whose recipient is a raw email address
EMAIL_KINDS = frozenset({"report_verification"})


def is_email_notification(kind: str) -> bool:
    return kind in EMAIL_KINDS


async def _publish(kind: str, recipient: str, data: dict) -> bool:
    redis = new_redis()
    try:
        return await emit_event(
            NotificationRequestedEvent(kind=kind, recipient=recipient, data=data),
            redis,
        )
    finally:
        await redis.aclose()


@app.task(name="moderation.tasks.notifications.deliver_notification")
def deliver_notification(kind: str, recipient: str, data: dict) -> dict:
    """
    Verification mail goes to the reporter by SES; every other kind (for
    calendar owners, admins or accounts) is published for the notification
    service.
    """
    if is_email_notification(kind):
        subject, body = render_notification(kind, data)
        try:
            asyncio.run(send_email(to_addr=recipient, subject=subject, body=body))
        except Exception as exc:
            # log and let Celery retry/backoff if configured
            logger.warning(f"{kind} email send failed: {exc}")
            raise
        return {"status": "sent", "kind": kind}

    published = asyncio.run(_publish(kind, recipient, data))
    return {"status": "published" if published else "dropped", "kind": kind}
