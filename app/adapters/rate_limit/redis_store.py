"""Redis-backed counter store for the rate limiter.

Shares quota across every process pointed at the same Redis instance. Each
entry is a hash ``{count, reset}`` that Redis expires at ``reset``, so no
sweep is needed. The limiter's read-compare-write runs under a redis-py
distributed lock keyed by identifier.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator

import redis

from app.adapters.rate_limit.base import RateLimitEntry, RateLimitStore
from app.core.errors import RateLimitStoreError

logger = logging.getLogger(__name__)

# HINCRBY on a missing key would recreate it without an expiry.
INCREMENT_IF_EXISTS_SCRIPT = """
    if redis.call('EXISTS', KEYS[1]) == 0 then
        return -1
    end
    return redis.call('HINCRBY', KEYS[1], 'count', 1)
"""


class RedisRateLimitStore(RateLimitStore):
    """Counter store keeping entries in Redis hashes."""

    is_remote = True

    def __init__(
        self,
        *,
        client: Any | None = None,
        redis_url: str = "redis://localhost:6379/0",
        key_prefix: str = "rl:",
        socket_timeout_seconds: float = 0.5,
        lock_timeout_seconds: float = 2.0,
    ) -> None:
        """Initialize the Redis store.

        Args:
            client: Pre-built Redis client (tests inject a mock here).
            redis_url: Connection URL used when no client is given.
            key_prefix: Namespace prepended to every key.
            socket_timeout_seconds: Per-command socket timeout.
            lock_timeout_seconds: Lock lease and acquisition timeout.
        """
        # Connection is lazy; nothing hits the network until the first command.
        self._client = client or redis.Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout_seconds,
            socket_connect_timeout=socket_timeout_seconds,
        )
        self._prefix = key_prefix
        self._lock_timeout = lock_timeout_seconds
        self._increment_script = self._client.register_script(INCREMENT_IF_EXISTS_SCRIPT)

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def _store_error(self, operation: str, exc: Exception) -> RateLimitStoreError:
        return RateLimitStoreError(
            code="rate_limit_store_unavailable",
            message=f"Redis {operation} failed: {exc}",
            details={"backend": "redis", "operation": operation},
        )

    def get(self, key: str) -> RateLimitEntry | None:
        try:
            raw = self._client.hgetall(self._key(key))
        except redis.RedisError as exc:
            raise self._store_error("get", exc) from exc

        if not raw:
            return None
        return RateLimitEntry(count=int(raw["count"]), reset_time=int(raw["reset"]))

    def set_with_expiry(self, key: str, entry: RateLimitEntry) -> None:
        name = self._key(key)
        try:
            pipe = self._client.pipeline(transaction=True)
            pipe.delete(name)
            pipe.hset(name, mapping={"count": entry.count, "reset": entry.reset_time})
            pipe.pexpireat(name, entry.reset_time)
            pipe.execute()
        except redis.RedisError as exc:
            raise self._store_error("set", exc) from exc

    def increment(self, key: str) -> int:
        try:
            count = int(self._increment_script(keys=[self._key(key)]))
        except redis.RedisError as exc:
            raise self._store_error("increment", exc) from exc

        if count < 0:
            raise KeyError(key)
        return count

    def delete(self, key: str) -> None:
        try:
            self._client.delete(self._key(key))
        except redis.RedisError as exc:
            raise self._store_error("delete", exc) from exc

    def sweep(self, cutoff_ms: int) -> int:
        # Keys carry PEXPIREAT, Redis evicts them itself.
        return 0

    @contextmanager
    def lock(self, key: str) -> Iterator[None]:
        redis_lock = self._client.lock(
            self._key(f"lock:{key}"),
            timeout=self._lock_timeout,
            blocking_timeout=self._lock_timeout,
        )
        try:
            acquired = redis_lock.acquire()
        except redis.RedisError as exc:
            raise self._store_error("lock", exc) from exc
        if not acquired:
            raise RateLimitStoreError(
                code="rate_limit_lock_timeout",
                message=f"Timed out acquiring rate limit lock for {key!r}",
                details={"backend": "redis", "operation": "lock"},
            )

        try:
            yield
        finally:
            try:
                redis_lock.release()
            except redis.RedisError as exc:
                # The lease expired under us; the next holder already owns the key.
                logger.warning(
                    "rate_limit.lock_release_failed",
                    extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
                )

    def ping(self) -> bool:
        """Return True when Redis answers PING."""
        try:
            return bool(self._client.ping())
        except redis.RedisError:
            return False
