"""Fixed-window rate limiting backed by Redis.

Counters live in Redis rather than process memory so limits hold across
restarts and across every instance of the service.
"""

from datetime import UTC, datetime

from redis.asyncio import Redis

from bsos.core.config import get_settings
from bsos.core.exceptions import RateLimitExceededError


class RateLimiter:
    """Count requests per identifier inside aligned time windows."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, redis: Redis, limit: int | None = None, window_seconds: int | None = None):
        settings = get_settings()
        self.redis = redis
        self.limit = limit or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds

    def _window_start(self, now: datetime) -> int:
        epoch = int(now.timestamp())
        return epoch - (epoch % self.window_seconds)

    def _key(self, scope: str, identifier: str, window_start: int) -> str:
        return f"{self.KEY_PREFIX}{scope}:{identifier}:{window_start}"

    async def hit(self, scope: str, identifier: str, now: datetime | None = None) -> int:
        """Record one request and return the count for the current window.

        Args:
            scope: Logical bucket (e.g. "finance_sync")
            identifier: Caller identity (role, client IP, ...)
            now: Current time (for deterministic testing)

        Raises:
            RateLimitExceededError: if the window's budget is already spent
        """
        now = now or datetime.now(UTC)
        window_start = self._window_start(now)
        window_end = window_start + self.window_seconds
        key = self._key(scope, identifier, window_start)

        count = await self.redis.incr(key)

        ttl = await self.redis.ttl(key)
        if ttl == -1:
            await self.redis.expireat(key, window_end)

        if count > self.limit:
            retry_after = max(1, window_end - int(now.timestamp()))
            raise RateLimitExceededError(f"{scope}:{identifier}", self.limit, retry_after)

        return count

    async def remaining(self, scope: str, identifier: str, now: datetime | None = None) -> int:
        """Requests left in the current window for this identifier."""
        now = now or datetime.now(UTC)
        key = self._key(scope, identifier, self._window_start(now))
        used = await self.redis.get(key)
        return max(0, self.limit - (int(used) if used else 0))
