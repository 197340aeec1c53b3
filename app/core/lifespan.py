"""Application lifespan: background sweep of expired rate limit entries.

Checks already evict stale entries lazily; the sweep only bounds memory for
identifiers that never come back. A failed pass is logged and retried on the
next tick.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from app.core.config import settings
from app.core.errors import RateLimitStoreError
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)


async def sweep_once(limiters: Iterable[RateLimiter]) -> int:
    """Run one eager sweep over every limiter.

    Returns:
        Total entries removed.
    """
    removed = 0
    for limiter in limiters:
        try:
            removed += await run_in_threadpool(limiter.sweep)
        except RateLimitStoreError as exc:
            logger.warning(
                "rate_limit.sweep_failed",
                extra={"limiter": limiter.name, "error_code": exc.code},
            )
    return removed


async def sweep_forever(limiters: list[RateLimiter], interval_seconds: float) -> None:
    while True:
        await asyncio.sleep(interval_seconds)
        await sweep_once(limiters)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    interval = settings.rate_limit.sweep_interval_seconds
    task: asyncio.Task | None = None

    if settings.rate_limit.enabled and interval > 0:
        limiters = list(app.state.rate_limiters.values())
        task = asyncio.create_task(sweep_forever(limiters, interval))
        logger.info("rate_limit.sweeper_started", extra={"interval_s": interval})

    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
