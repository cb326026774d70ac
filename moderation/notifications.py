"""
Notifier backed by Celery: send() only enqueues, delivery happens in a worker.
"""
import asyncio
import logging

from moderation.tasks.notifications import deliver_notification

logger = logging.getLogger(__name__)


class CeleryNotifier:
    async def send(self, kind: str, recipient: str, data: dict) -> None:
        try:
            # broker publish is blocking I/O
            await asyncio.to_thread(deliver_notification.delay, kind, recipient, data)
        except Exception:
            logger.exception(f"Could not enqueue {kind} notification")
