"""
Service wiring.

FastAPI providers build the services per request from the shared settings;
the Celery escalation task and the in-process scheduler reuse build_scheduler.
Tests replace the collaborator providers through app.dependency_overrides.
"""
from datetime import timedelta
from functools import lru_cache

from fastapi import Depends
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from moderation.cache import RedisRateLimiter
from moderation.clients.calendar import CalendarServiceClient
from moderation.clients.federation import FederationOutboxClient
from moderation.database import AsyncSessionLocal, get_db
from moderation.interfaces import (
    CalendarAuthorizer,
    EventLookup,
    FederationTransport,
    Notifier,
    RateLimiter,
    SettingsStore,
)
from moderation.notifications import CeleryNotifier
from moderation.rbac import AuthorizationResolver
from moderation.redis_client import get_redis
from moderation.repository import SqlReportRepository
from moderation.services.analytics import AnalyticsService
from moderation.services.blocking import BlockingService
from moderation.services.lifecycle import LifecycleEngine
from moderation.services.patterns import PatternDetector, PatternThresholds
from moderation.services.scheduler import (
    EscalationLoop,
    EscalationScheduler,
    SchedulerPassResult,
)
from moderation.services.submission import SubmissionGateway
from moderation.services.verification import VerificationService
from moderation.settings import settings
from moderation.settings_store import RedisSettingsStore, settings_from_env


@lru_cache(maxsize=1)
def get_calendar_client() -> CalendarServiceClient:
    return CalendarServiceClient(
        settings.CALENDAR_SERVICE_URL,
        service_token=settings.SERVICE_API_KEY,
        timeout=settings.HTTP_CLIENT_TIMEOUT_SECONDS,
    )


@lru_cache(maxsize=1)
def get_federation_client() -> FederationOutboxClient:
    return FederationOutboxClient(
        settings.FEDERATION_OUTBOX_URL,
        service_token=settings.SERVICE_API_KEY,
        timeout=settings.HTTP_CLIENT_TIMEOUT_SECONDS,
    )


def get_calendar_authorizer() -> CalendarAuthorizer:
    return get_calendar_client()


def get_event_lookup() -> EventLookup:
    return get_calendar_client()


def get_federation_transport() -> FederationTransport:
    return get_federation_client()


def get_notifier() -> Notifier:
    return CeleryNotifier()


def get_rate_limiter(r: Redis = Depends(get_redis)) -> RateLimiter:
    return RedisRateLimiter(r)


def get_settings_store(r: Redis = Depends(get_redis)) -> SettingsStore:
    return RedisSettingsStore(r, settings_from_env(settings))


def get_pattern_thresholds() -> PatternThresholds:
    return PatternThresholds(
        window_days=settings.PATTERN_WINDOW_DAYS,
        source_flooding=settings.PATTERN_SOURCE_FLOODING_THRESHOLD,
        event_targeting=settings.PATTERN_EVENT_TARGETING_THRESHOLD,
        instance=settings.PATTERN_INSTANCE_THRESHOLD,
    )


def get_repository(db: AsyncSession = Depends(get_db)) -> SqlReportRepository:
    return SqlReportRepository(db)


def get_authz(
    calendars: CalendarAuthorizer = Depends(get_calendar_authorizer),
) -> AuthorizationResolver:
    return AuthorizationResolver(calendars)


def build_lifecycle_engine(
    repo: SqlReportRepository,
    authz: AuthorizationResolver,
    events: EventLookup,
    notifier: Notifier,
    federation: FederationTransport,
) -> LifecycleEngine:
    return LifecycleEngine(
        repo,
        authz,
        events,
        notifier,
        federation,
        admin_recipient=settings.ADMIN_NOTIFICATION_RECIPIENT,
    )


def get_lifecycle_engine(
    repo: SqlReportRepository = Depends(get_repository),
    authz: AuthorizationResolver = Depends(get_authz),
    events: EventLookup = Depends(get_event_lookup),
    notifier: Notifier = Depends(get_notifier),
    federation: FederationTransport = Depends(get_federation_transport),
) -> LifecycleEngine:
    return build_lifecycle_engine(repo, authz, events, notifier, federation)


def get_submission_gateway(
    repo: SqlReportRepository = Depends(get_repository),
    authz: AuthorizationResolver = Depends(get_authz),
    events: EventLookup = Depends(get_event_lookup),
    notifier: Notifier = Depends(get_notifier),
    rate_limiter: RateLimiter = Depends(get_rate_limiter),
) -> SubmissionGateway:
    return SubmissionGateway(
        repo,
        events,
        notifier,
        rate_limiter,
        authz,
        email_hash_secret=settings.EMAIL_HASH_SECRET,
        token_ttl=timedelta(hours=settings.VERIFICATION_TOKEN_TTL_HOURS),
        email_rate_limit=settings.RATE_LIMIT_REPORT_EMAIL_LIMIT,
        email_rate_window_seconds=settings.RATE_LIMIT_REPORT_EMAIL_WINDOW_SECONDS,
        verify_url_base=settings.REPORT_VERIFY_BASE_URL,
        admin_recipient=settings.ADMIN_NOTIFICATION_RECIPIENT,
    )


def get_verification_service(
    repo: SqlReportRepository = Depends(get_repository),
    engine: LifecycleEngine = Depends(get_lifecycle_engine),
    notifier: Notifier = Depends(get_notifier),
) -> VerificationService:
    return VerificationService(
        repo, engine, notifier, admin_recipient=settings.ADMIN_NOTIFICATION_RECIPIENT
    )


def get_pattern_detector(
    db: AsyncSession = Depends(get_db),
    thresholds: PatternThresholds = Depends(get_pattern_thresholds),
) -> PatternDetector:
    return PatternDetector(db, thresholds)


def get_analytics_service(db: AsyncSession = Depends(get_db)) -> AnalyticsService:
    return AnalyticsService(db)


def get_blocking_service(
    db: AsyncSession = Depends(get_db),
    authz: AuthorizationResolver = Depends(get_authz),
) -> BlockingService:
    return BlockingService(db, authz, email_hash_secret=settings.EMAIL_HASH_SECRET)


def build_scheduler(session: AsyncSession, redis: Redis) -> EscalationScheduler:
    """Scheduler with production collaborators, for the worker and the lifespan loop."""
    repo = SqlReportRepository(session)
    engine = build_lifecycle_engine(
        repo,
        AuthorizationResolver(get_calendar_client()),
        get_calendar_client(),
        CeleryNotifier(),
        get_federation_client(),
    )
    return EscalationScheduler(
        repo,
        engine,
        RedisSettingsStore(redis, settings_from_env(settings)),
        CeleryNotifier(),
        interval_seconds=settings.ESCALATION_CHECK_INTERVAL_SECONDS,
        admin_recipient=settings.ADMIN_NOTIFICATION_RECIPIENT,
    )


def build_escalation_loop(
    redis: Redis, session_factory: async_sessionmaker = AsyncSessionLocal
) -> EscalationLoop:
    """
    In-process scheduler for the API lifespan.

    Each pass opens and closes its own session, so a failed statement or an
    idle transaction never carries over to the next pass.
    """

    async def run_pass() -> SchedulerPassResult:
        async with session_factory() as session:
            return await build_scheduler(session, redis).run_pass()

    return EscalationLoop(run_pass, settings.ESCALATION_CHECK_INTERVAL_SECONDS)
