"""Fixed-window request rate limiter.

Each identifier gets a counter that opens on its first request and resets
``window_ms`` later. Window bounds are right-open: a request at exactly
``reset_time`` starts a new window. Straddling a boundary can admit up to
``2 * limit`` requests in one rolling window.

Rejected requests never increment the counter, so hammering a limiter while
blocked does not extend the penalty beyond the current window.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from app.adapters.rate_limit.base import RateLimitDecision, RateLimitEntry, RateLimitStore
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.core.errors import RateLimitStoreError

logger = logging.getLogger(__name__)


class RateLimiter:
    """Admit or reject requests per identifier under a fixed-window cap.

    Attributes:
        name: Label used in logs (e.g., the route class).
        limit: Maximum admitted requests per window.
        window_ms: Window length in milliseconds.
        fail_closed: Reject instead of admit when the store is unreachable.
    """

    def __init__(
        self,
        limit: int,
        window_ms: int,
        *,
        store: RateLimitStore | None = None,
        clock: Callable[[], float] = time.time,
        fail_closed: bool = False,
        name: str = "default",
    ) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum admitted requests per window.
            window_ms: Window length in milliseconds.
            store: Counter store; defaults to a fresh in-memory store.
            clock: Time source returning UNIX time in seconds.
            fail_closed: Store failure policy (False admits, True rejects).
            name: Label for logs.

        Raises:
            ValueError: If limit or window_ms are invalid.
        """
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_ms < 1:
            raise ValueError("window_ms must be >= 1")

        self.name = name
        self.limit = limit
        self.window_ms = window_ms
        self.fail_closed = fail_closed
        self._store = store if store is not None else InMemoryRateLimitStore()
        self._clock = clock

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"RateLimiter(name={self.name!r}, limit={self.limit}, "
            f"window_ms={self.window_ms}, store={type(self._store).__name__})"
        )

    @property
    def store(self) -> RateLimitStore:
        return self._store

    def now_ms(self) -> int:
        """Current time from the limiter's clock in epoch milliseconds."""
        return round(self._clock() * 1000)

    def check(self, identifier: str) -> RateLimitDecision:
        """Count one request for ``identifier`` and decide whether it may proceed.

        Args:
            identifier: Caller key, typically ``"<route-class>:<client-ip>"``.

        Returns:
            RateLimitDecision with the verdict and quota metadata.

        Raises:
            ValueError: If identifier is empty.
        """
        if not identifier:
            raise ValueError("identifier must be a non-empty string")

        now = self.now_ms()
        self._sweep_quietly(now)

        try:
            with self._store.lock(identifier):
                return self._check_locked(identifier, now)
        except RateLimitStoreError as exc:
            return self._store_failure_decision(identifier, now, exc)

    def _check_locked(self, identifier: str, now: int) -> RateLimitDecision:
        entry = self._store.get(identifier)

        if entry is None or entry.reset_time <= now:
            return self._open_window(identifier, now)

        if entry.count >= self.limit:
            return RateLimitDecision(
                success=False,
                limit=self.limit,
                remaining=0,
                reset=entry.reset_time,
            )

        try:
            count = self._store.increment(identifier)
        except KeyError:
            # Expired between get and increment; this request opens the next window.
            return self._open_window(identifier, now)

        return RateLimitDecision(
            success=True,
            limit=self.limit,
            remaining=max(0, self.limit - count),
            reset=entry.reset_time,
        )

    def _open_window(self, identifier: str, now: int) -> RateLimitDecision:
        entry = RateLimitEntry(count=1, reset_time=now + self.window_ms)
        self._store.set_with_expiry(identifier, entry)
        return RateLimitDecision(
            success=True,
            limit=self.limit,
            remaining=self.limit - 1,
            reset=entry.reset_time,
        )

    def _store_failure_decision(
        self, identifier: str, now: int, exc: RateLimitStoreError
    ) -> RateLimitDecision:
        policy = "fail_closed" if self.fail_closed else "fail_open"
        logger.warning(
            "rate_limit.store_unavailable",
            extra={
                "limiter": self.name,
                "policy": policy,
                "error_code": exc.code,
                "error_message": exc.message,
            },
        )

        reset = now + self.window_ms
        if self.fail_closed:
            return RateLimitDecision(success=False, limit=self.limit, remaining=0, reset=reset)
        return RateLimitDecision(
            success=True, limit=self.limit, remaining=self.limit - 1, reset=reset
        )

    def _sweep_quietly(self, now: int) -> None:
        try:
            self._store.sweep(now - self.window_ms)
        except RateLimitStoreError as exc:
            logger.warning(
                "rate_limit.sweep_failed",
                extra={"limiter": self.name, "error_code": exc.code},
            )

    def sweep(self) -> int:
        """Evict every entry whose window has already ended.

        Returns:
            Number of entries removed.
        """
        removed = self._store.sweep(self.now_ms())
        if removed:
            logger.debug("rate_limit.swept", extra={"limiter": self.name, "removed": removed})
        return removed

    def reset(self, identifier: str) -> None:
        """Forget the current window for ``identifier``."""
        with self._store.lock(identifier):
            self._store.delete(identifier)
