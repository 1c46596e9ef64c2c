"""Redis-backed failed-attempt lockout shared by every gate instance."""

from __future__ import annotations

import time
from typing import Final

from redis import Redis
from redis.exceptions import ResponseError


class RedisFailedAttemptLimiter:
    """Distributed failure window implemented with Redis sorted sets."""

    _REGISTER_SCRIPT: Final[str] = """
    local key = KEYS[1]
    local counter_key = key .. ':seq'
    local window_ms = tonumber(ARGV[1])
    local now_ms = tonumber(ARGV[2])

    redis.call('ZREMRANGEBYSCORE', key, 0, now_ms - window_ms)
    local seq = redis.call('INCR', counter_key)
    redis.call('PEXPIRE', counter_key, window_ms)
    redis.call('ZADD', key, now_ms, tostring(now_ms) .. ':' .. tostring(seq))
    redis.call('PEXPIRE', key, window_ms)
    return redis.call('ZCARD', key)
    """

    def __init__(
        self,
        client: Redis,
        *,
        max_failures: int,
        window_seconds: int,
        key_prefix: str = "authfail"
    ) -> None:
        """Initialise the Redis client, window configuration, and Lua script cache."""
        self._client = client
        self._max_failures = max_failures
        self._window_ms = window_seconds * 1000
        self._key_prefix = key_prefix
        self._register = client.register_script(self._REGISTER_SCRIPT)

    def is_locked(self, key: str) -> bool:
        """Return ``True`` when ``key`` reached the failure threshold in the window."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        current = self._client.zcount(redis_key, now_ms - self._window_ms, "+inf")
        return int(current) >= self._max_failures

    def register_failure(self, key: str) -> None:
        """Record one failed attempt for ``key`` across all instances."""
        now_ms = int(time.time() * 1000)
        redis_key = f"{self._key_prefix}:{key}"
        try:
            self._register(keys=[redis_key], args=[self._window_ms, now_ms])
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command" in message and "eval" in message:
                self._register_fallback(redis_key, now_ms)
                return
            raise

    def _register_fallback(self, redis_key: str, now_ms: int) -> None:
        """Fallback pure-Python implementation used when Lua is unavailable."""
        self._client.zremrangebyscore(redis_key, 0, now_ms - self._window_ms)
        seq = self._client.incr(f"{redis_key}:seq")
        self._client.pexpire(f"{redis_key}:seq", self._window_ms)
        self._client.zadd(redis_key, {f"{now_ms}:{seq}": now_ms})
        self._client.pexpire(redis_key, self._window_ms)
