"""
Periodic auto-escalation pass, scheduled by Celery beat.
"""
import asyncio
import logging
from dataclasses import asdict

from moderation.celery_app import app
from moderation.database import create_worker_session
from moderation.dependencies.services import build_scheduler
from moderation.redis_client import new_redis

logger = logging.getLogger(__name__)


@app.task(name="moderation.tasks.escalation.run_escalation_pass")
def run_escalation_pass() -> dict:
    """
    Escalate overdue reports and send due reminders.

    Safe to run concurrently with itself: each report is claimed with a
    conditional update, so overlapping passes never double-escalate or
    double-remind.
    """

    async def _run():
        # Create fresh async session for this task
        WorkerSession, db_engine = create_worker_session()
        redis = new_redis()

        try:
            async with WorkerSession() as session:
                scheduler = build_scheduler(session, redis)
                result = await scheduler.run_pass()
                return asdict(result)
        finally:
            await redis.aclose()
            await db_engine.dispose()

    return asyncio.run(_run())
