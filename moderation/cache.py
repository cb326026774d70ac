from redis.asyncio import Redis

from moderation.redis_client import init_redis


def make_rate_limit_key(prefix: str, identifier: str) -> str:
    return f"rl:{prefix}:{identifier}"


async def fixed_window_allow(
    key: str,
    limit: int,
    window_seconds: int,
    r: Redis | None = None,
) -> tuple[bool, int]:
    """
    Count one hit against ``key`` and report whether it is within ``limit``.

    INCR and EXPIRE run in one MULTI block, so concurrent callers each see a
    distinct count. The window starts at the first hit.

    Returns:
        (allowed, remaining)
    """
    r = r or await init_redis()
    pipe = r.pipeline(transaction=True)
    pipe.incr(key)
    pipe.expire(key, max(window_seconds, 1), nx=True)
    count, _ = await pipe.execute()
    count = int(count)
    return count <= limit, max(limit - count, 0)


class RedisRateLimiter:
    def __init__(self, redis: Redis | None = None, prefix: str = "moderation"):
        self.redis = redis
        self.prefix = prefix

    async def check_and_increment(
        self, key: str, limit: int, window_seconds: int
    ) -> bool:
        allowed, _ = await fixed_window_allow(
            make_rate_limit_key(self.prefix, key), limit, window_seconds, self.redis
        )
        return allowed
