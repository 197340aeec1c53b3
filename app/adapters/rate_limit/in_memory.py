"""In-memory counter store for the rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a lock guards the map and striped per-key locks serialise
  the limiter's read-compare-write for one identifier.
"""

from __future__ import annotations

import threading
import zlib
from dataclasses import replace

from app.adapters.rate_limit.base import RateLimitEntry, RateLimitStore


class InMemoryRateLimitStore(RateLimitStore):
    """Counter store keeping entries in a process-local dict.

    Important:
        If the API runs with multiple workers (e.g., multiple Uvicorn/Gunicorn
        workers), each worker enforces its own independent quota. Use the
        Redis store for a shared limit.
    """

    is_remote = False

    def __init__(self, *, lock_stripes: int = 64) -> None:
        """Initialize an empty store.

        Args:
            lock_stripes: Size of the per-key lock pool.

        Raises:
            ValueError: If lock_stripes is invalid.
        """
        if lock_stripes < 1:
            raise ValueError("lock_stripes must be >= 1")

        self._entries: dict[str, RateLimitEntry] = {}
        self._map_lock = threading.RLock()
        self._key_locks = [threading.Lock() for _ in range(lock_stripes)]

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._entries)

    def get(self, key: str) -> RateLimitEntry | None:
        with self._map_lock:
            entry = self._entries.get(key)
            # Hand out a copy so callers never mutate shared state directly.
            return replace(entry) if entry is not None else None

    def set_with_expiry(self, key: str, entry: RateLimitEntry) -> None:
        with self._map_lock:
            self._entries[key] = replace(entry)

    def increment(self, key: str) -> int:
        with self._map_lock:
            entry = self._entries.get(key)
            if entry is None:
                raise KeyError(key)
            entry.count += 1
            return entry.count

    def delete(self, key: str) -> None:
        with self._map_lock:
            self._entries.pop(key, None)

    def sweep(self, cutoff_ms: int) -> int:
        with self._map_lock:
            expired = [k for k, e in self._entries.items() if e.reset_time < cutoff_ms]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def lock(self, key: str) -> threading.Lock:
        stripe = zlib.crc32(key.encode()) % len(self._key_locks)
        return self._key_locks[stripe]

    def clear(self) -> None:
        """Drop every entry (used by tests and admin resets)."""
        with self._map_lock:
            self._entries.clear()
