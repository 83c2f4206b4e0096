"""Tests for the Redis fixed-window rate limiter."""

from datetime import UTC, datetime, timedelta

import pytest
from fakeredis import FakeAsyncRedis

from bsos.core.exceptions import RateLimitExceededError
from bsos.core.rate_limit import RateLimiter

pytestmark = pytest.mark.unit


@pytest.fixture
async def redis():
    """Create a fake Redis instance for testing."""
    fake_redis = FakeAsyncRedis(decode_responses=True)
    yield fake_redis
    await fake_redis.flushall()
    await fake_redis.aclose()


@pytest.fixture
def limiter(redis):
    return RateLimiter(redis, limit=3, window_seconds=60)


async def test_hits_within_budget_return_running_count(limiter):
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)

    assert await limiter.hit("finance_sync", "owner", now) == 1
    assert await limiter.hit("finance_sync", "owner", now) == 2
    assert await limiter.hit("finance_sync", "owner", now) == 3


async def test_hit_over_budget_raises_with_retry_after(limiter):
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)
    for _ in range(3):
        await limiter.hit("finance_sync", "owner", now)

    with pytest.raises(RateLimitExceededError) as exc_info:
        await limiter.hit("finance_sync", "owner", now)

    # Window is 10:30:00-10:31:00, so 55s remain
    assert exc_info.value.retry_after == 55
    assert exc_info.value.limit == 3
    assert exc_info.value.identifier == "finance_sync:owner"


async def test_new_window_resets_budget(limiter):
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)
    for _ in range(3):
        await limiter.hit("finance_sync", "owner", now)

    later = now + timedelta(seconds=60)

    assert await limiter.hit("finance_sync", "owner", later) == 1


async def test_identifiers_and_scopes_are_counted_separately(limiter):
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)
    for _ in range(3):
        await limiter.hit("finance_sync", "owner", now)

    assert await limiter.hit("finance_sync", "manager", now) == 1
    assert await limiter.hit("other_scope", "owner", now) == 1


async def test_counter_key_has_expiry_set(limiter, redis):
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)

    await limiter.hit("finance_sync", "owner", now)

    window_start = int(datetime(2030, 6, 15, 10, 30, 0, tzinfo=UTC).timestamp())
    # fakeredis measures TTL against the real clock; the 2030 window end is far away
    assert await redis.ttl(f"ratelimit:finance_sync:owner:{window_start}") > 0


async def test_remaining_counts_down(limiter):
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)

    assert await limiter.remaining("finance_sync", "owner", now) == 3
    await limiter.hit("finance_sync", "owner", now)
    assert await limiter.remaining("finance_sync", "owner", now) == 2


async def test_limits_survive_a_new_limiter_instance(redis):
    """Counters live in Redis, not in the limiter object."""
    now = datetime(2030, 6, 15, 10, 30, 5, tzinfo=UTC)
    for _ in range(3):
        await RateLimiter(redis, limit=3, window_seconds=60).hit("finance_sync", "owner", now)

    with pytest.raises(RateLimitExceededError):
        await RateLimiter(redis, limit=3, window_seconds=60).hit("finance_sync", "owner", now)
