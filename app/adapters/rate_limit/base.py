"""Rate limiter data types and counter store interface.

The limiter depends on this abstraction (not a concrete backend) so the same
admission algorithm runs against process memory or a shared Redis instance.
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass
class RateLimitEntry:
    """Request-count state for one identifier within its current window.

    Attributes:
        count: Requests counted in the current window (starts at 1).
        reset_time: Epoch milliseconds at which the window ends.
    """

    count: int
    reset_time: int


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single ``check`` call.

    Attributes:
        success: Whether the request may proceed.
        limit: Max requests per window.
        remaining: Requests left in the current window (0 when rejected).
        reset: Epoch milliseconds when quota is next available.
    """

    success: bool
    limit: int
    remaining: int
    reset: int

    def retry_after_seconds(self, now_ms: int) -> int:
        """Seconds until the window resets, rounded up (0 when admitted)."""
        if self.success:
            return 0
        return max(0, int(math.ceil((self.reset - now_ms) / 1000)))

    def reset_iso(self) -> str:
        """Reset timestamp as an ISO-8601 UTC string with milliseconds."""
        moment = datetime.fromtimestamp(self.reset / 1000, tz=timezone.utc)
        return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RateLimitStore(ABC):
    """Interface for counter stores backing the rate limiter.

    Implementations must make ``increment`` atomic on its own; the limiter
    wraps its read-compare-write sequence in ``lock(key)``.
    """

    #: True when calls leave the process (network round-trip per operation).
    is_remote: bool = False

    @abstractmethod
    def get(self, key: str) -> RateLimitEntry | None:
        """Return the stored entry for ``key`` or None."""
        raise NotImplementedError

    @abstractmethod
    def set_with_expiry(self, key: str, entry: RateLimitEntry) -> None:
        """Create or replace the entry; it may be dropped once ``reset_time`` passes."""
        raise NotImplementedError

    @abstractmethod
    def increment(self, key: str) -> int:
        """Add one to the entry's count and return the new count."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the entry for ``key`` if present."""
        raise NotImplementedError

    @abstractmethod
    def sweep(self, cutoff_ms: int) -> int:
        """Delete entries whose ``reset_time`` is older than ``cutoff_ms``.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def lock(self, key: str) -> AbstractContextManager:
        """Return a context manager serialising updates to ``key``."""
        raise NotImplementedError
