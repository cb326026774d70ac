from datetime import timezone

from sqlalchemy import DateTime
from sqlalchemy.ext.asyncio import (
    async_sessionmaker,
    create_async_engine,
    AsyncSession,
    AsyncEngine,
)
from sqlalchemy.orm import declarative_base
from sqlalchemy.types import TypeDecorator

from moderation.settings import settings

engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True)
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

Base = declarative_base()


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetime that always round-trips as UTC.

    Postgres keeps the offset natively; sqlite drops it, so naive values read
    back are tagged as UTC.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            raise ValueError("naive datetime is not allowed")
        return value.astimezone(timezone.utc)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


async def get_db() -> AsyncSession:
    async with AsyncSessionLocal() as session:
        yield session


def create_worker_session() -> tuple[async_sessionmaker[AsyncSession], AsyncEngine]:
    """
    Create a fresh async engine and session factory for Celery worker use.

    This avoids event loop conflicts that occur when reusing the global
    AsyncSessionLocal which is bound to the import-time event loop.

    Returns:
        Tuple of (session_factory, engine) - caller must dispose engine when done.
    """
    db_url = settings.DATABASE_WORKER_URL or settings.DATABASE_URL
    worker_engine = create_async_engine(db_url, echo=False, future=True)
    worker_session = async_sessionmaker(
        worker_engine, expire_on_commit=False, autoflush=False
    )
    return worker_session, worker_engine
