"""
Pytest configuration to ensure the project root is on sys.path.
"""
import os
import sys
from pathlib import Path

# Add project root to path BEFORE any app imports
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from moderation.cache import RedisRateLimiter
from moderation.database import Base, get_db
from moderation.domain import Actor, EscalationSettings, EventInfo
from moderation.main import app
from moderation.rbac import AuthorizationResolver
from moderation.redis_client import get_redis
from moderation.repository import SqlReportRepository
from moderation.security import get_optional_actor
from moderation.dependencies.services import (
    get_calendar_authorizer,
    get_event_lookup,
    get_federation_transport,
    get_notifier,
)
from moderation.services.lifecycle import LifecycleEngine
from moderation.services.scheduler import EscalationScheduler
from moderation.services.submission import SubmissionGateway
from moderation.services.verification import VerificationService
from moderation.settings_store import StaticSettingsStore
from moderation import models  # noqa: F401

HASH_SECRET = "test-secret"
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

CALENDAR_ID = "cal-1"
LOCAL_EVENT = "evt-local"
SECOND_EVENT = "evt-local-2"
REMOTE_EVENT = "evt-remote"
OWNER = Actor(account_id="owner-1")
EDITOR = Actor(account_id="editor-1")
STRANGER = Actor(account_id="stranger-1")
REPORTER = Actor(account_id="reporter-1")
ADMIN = Actor(account_id="admin-1", is_admin=True)


class FakeRedis:
    """
    Fake Redis client for testing to avoid event loop issues.
    Implements the Redis interface used by the app without actual connections.
    """
    def __init__(self):
        self.kv_store = {}
        self.hash_store = {}
        self.ttl = {}
        self.published = []

    async def incr(self, key):
        self.kv_store[key] = int(self.kv_store.get(key, 0)) + 1
        return self.kv_store[key]

    async def expire(self, key, seconds, nx=False):
        if nx and key in self.ttl:
            return False
        self.ttl[key] = seconds
        return True

    async def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    async def hset(self, key, mapping):
        self.hash_store.setdefault(key, {}).update({k: str(v) for k, v in mapping.items()})

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    async def ping(self):
        return True

    async def aclose(self):
        pass

    def pipeline(self, transaction=True):
        return _FakePipeline(self)


class _FakePipeline:
    """Fake Redis pipeline for testing."""
    def __init__(self, redis_client: FakeRedis):
        self.redis = redis_client
        self.ops = []

    def incr(self, key):
        self.ops.append(("incr", (key,), {}))
        return self

    def expire(self, key, seconds, nx=False):
        self.ops.append(("expire", (key, seconds), {"nx": nx}))
        return self

    async def execute(self):
        results = []
        for op, args, kwargs in self.ops:
            results.append(await getattr(self.redis, op)(*args, **kwargs))
        self.ops = []
        return results


class FakeCalendarService:
    """Calendar access and event lookup backed by dicts."""

    def __init__(self):
        self.access = {
            CALENDAR_ID: {OWNER.account_id: "owner", EDITOR.account_id: "editor"},
        }
        self.events = {
            LOCAL_EVENT: EventInfo(event_id=LOCAL_EVENT, calendar_id=CALENDAR_ID),
            SECOND_EVENT: EventInfo(event_id=SECOND_EVENT, calendar_id=CALENDAR_ID),
            REMOTE_EVENT: EventInfo(
                event_id=REMOTE_EVENT,
                source_url="https://remote.example.org/events/42",
            ),
        }

    async def can_review(self, account_id, calendar_id):
        return account_id in self.access.get(calendar_id, {})

    async def is_owner(self, account_id, calendar_id):
        return self.access.get(calendar_id, {}).get(account_id) == "owner"

    async def get_event(self, event_id):
        return self.events.get(event_id)


class FakeNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, kind, recipient, data):
        self.sent.append((kind, recipient, data))

    def of_kind(self, kind):
        return [s for s in self.sent if s[0] == kind]


class FakeFederation:
    def __init__(self, accept=True):
        self.accept = accept
        self.delivered = []

    async def deliver_flag(self, remote_admin_uri, payload):
        self.delivered.append((remote_admin_uri, payload))
        return self.accept


class FakeClock:
    def __init__(self, now=T0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


class Moderation:
    """The service graph wired against fakes and one database session."""

    def __init__(self, session, clock, escalation=None):
        self.session = session
        self.clock = clock
        self.redis = FakeRedis()
        self.calendar = FakeCalendarService()
        self.notifier = FakeNotifier()
        self.federation = FakeFederation()
        self.repo = SqlReportRepository(session)
        self.authz = AuthorizationResolver(self.calendar)
        self.escalation = escalation or EscalationSettings()
        self.engine = LifecycleEngine(
            self.repo,
            self.authz,
            self.calendar,
            self.notifier,
            self.federation,
            clock=clock,
        )
        self.gateway = SubmissionGateway(
            self.repo,
            self.calendar,
            self.notifier,
            RedisRateLimiter(self.redis),
            self.authz,
            email_hash_secret=HASH_SECRET,
            verify_url_base="https://moderation.test/verify?token=",
            clock=clock,
        )
        self.verification = VerificationService(
            self.repo, self.engine, self.notifier, clock=clock
        )
        self.scheduler = EscalationScheduler(
            self.repo,
            self.engine,
            StaticSettingsStore(self.escalation),
            self.notifier,
            interval_seconds=0.01,
            clock=clock,
        )

    def last_token(self):
        kind, _, data = self.notifier.of_kind("report_verification")[-1]
        return data["token"]


@pytest_asyncio.fixture(scope="function")
async def db_session():
    """
    Create a fresh in-memory database for each test.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        future=True,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create all tables
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    TestSessionLocal = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with TestSessionLocal() as session:
        yield session

    # Cleanup
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await test_engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def moderation(db_session, clock):
    return Moderation(db_session, clock)


class ActorHolder:
    """Who the test client is signed in as; None means anonymous."""

    def __init__(self):
        self.actor = None


@pytest_asyncio.fixture
async def api(db_session):
    """
    HTTP client against the app with collaborators replaced by fakes.

    Yields (client, holder, fakes); set holder.actor to sign in.
    """
    holder = ActorHolder()
    fake_redis = FakeRedis()
    calendar = FakeCalendarService()
    notifier = FakeNotifier()
    federation = FakeFederation()

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    async def override_actor():
        return holder.actor

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_optional_actor] = override_actor
    app.dependency_overrides[get_calendar_authorizer] = lambda: calendar
    app.dependency_overrides[get_event_lookup] = lambda: calendar
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_federation_transport] = lambda: federation

    fakes = {
        "redis": fake_redis,
        "calendar": calendar,
        "notifier": notifier,
        "federation": federation,
    }
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client, holder, fakes

    app.dependency_overrides.clear()
