from celery import Celery
from moderation.settings import settings

# Prefer configured settings (loaded from .env) with env fallback for flexibility.
broker_url = (
    settings.CELERY_BROKER_URL or settings.REDIS_URL or "redis://localhost:6379/0"
)

backend_url = settings.CELERY_RESULT_BACKEND or "redis://localhost:6379/1"

app = Celery(
    "event_moderation",
    broker=str(broker_url),
    backend=backend_url,
    include=["moderation.tasks.escalation", "moderation.tasks.notifications"],
)


app.conf.update(
    task_default_queue=settings.CELERY_TASK_DEFAULT_QUEUE or "default",
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone=settings.CELERY_TIMEZONE or "UTC",
    enable_utc=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    broker_connection_retry_on_startup=True,
    task_routes={
        "moderation.tasks.notifications.*": {"queue": "notifications"},
        "moderation.tasks.escalation.*": {"queue": "default"},
    },
    beat_schedule={
        "run-escalation-pass": {
            "task": "moderation.tasks.escalation.run_escalation_pass",
            "schedule": float(settings.ESCALATION_CHECK_INTERVAL_SECONDS),
        },
    },
)
