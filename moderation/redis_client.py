from fastapi import Request
from redis.asyncio import Redis, from_url

from moderation.settings import Settings, settings

_redis: Redis | None = None


def build_redis_url(config: Settings = settings) -> str:
    """Redis URL for the app; REDIS_URL wins over host/port/db."""
    if config.REDIS_URL:
        return str(config.REDIS_URL)
    return f"redis://{config.REDIS_HOST or 'localhost'}:{config.REDIS_PORT or 6379}/{config.REDIS_DB or 0}"


async def init_redis() -> Redis:
    global _redis
    if _redis is None:
        _redis = from_url(build_redis_url(), decode_responses=True)
    return _redis


def new_redis() -> Redis:
    """A client owned by the caller, for Celery tasks that run their own loop."""
    return from_url(build_redis_url(), decode_responses=True)


async def close_redis() -> None:
    global _redis
    if _redis is not None:
        await _redis.aclose()
        _redis = None


async def get_redis(request: Request) -> Redis:
    if hasattr(request.app.state, "redis"):
        return request.app.state.redis
    return await init_redis()
