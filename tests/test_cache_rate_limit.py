import pytest

from moderation.cache import RedisRateLimiter, fixed_window_allow, make_rate_limit_key
from conftest import FakeRedis


@pytest.mark.asyncio
async def test_fixed_window_allows_until_limit():
    r = FakeRedis()
    key = "rl:test:email"

    # limit 2 per hour. First two should pass, third should block.
    ok1, rem1 = await fixed_window_allow(key, limit=2, window_seconds=3600, r=r)
    ok2, rem2 = await fixed_window_allow(key, limit=2, window_seconds=3600, r=r)
    ok3, rem3 = await fixed_window_allow(key, limit=2, window_seconds=3600, r=r)

    assert ok1 and ok2
    assert not ok3
    assert rem1 == 1
    assert rem2 == 0
    assert rem3 == 0


@pytest.mark.asyncio
async def test_window_starts_at_first_hit():
    r = FakeRedis()
    key = "rl:test:email"

    await fixed_window_allow(key, limit=5, window_seconds=60, r=r)
    await fixed_window_allow(key, limit=5, window_seconds=999, r=r)

    # later hits must not push the expiry out
    assert r.ttl[key] == 60


@pytest.mark.asyncio
async def test_window_expiry_resets_the_count():
    r = FakeRedis()
    key = "rl:test:email"

    await fixed_window_allow(key, limit=1, window_seconds=60, r=r)
    ok, _ = await fixed_window_allow(key, limit=1, window_seconds=60, r=r)
    assert not ok

    # Simulate the key expiring.
    r.kv_store.pop(key)
    r.ttl.pop(key)

    ok, rem = await fixed_window_allow(key, limit=1, window_seconds=60, r=r)
    assert ok
    assert rem == 0


@pytest.mark.asyncio
async def test_rate_limiter_keys_are_prefixed():
    r = FakeRedis()
    limiter = RedisRateLimiter(r)

    assert await limiter.check_and_increment("report:email:abc", 1, 60)
    assert not await limiter.check_and_increment("report:email:abc", 1, 60)
    assert make_rate_limit_key("moderation", "report:email:abc") in r.kv_store
