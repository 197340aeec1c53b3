from __future__ import annotations

from fastapi import APIRouter, Request

from app.adapters.rate_limit.redis_store import RedisRateLimitStore
from app.core.config import settings
from app.core.rate_limit import get_rate_limiters

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check(request: Request) -> dict:
    """Health check endpoint.

    Always reports ``"status": "ok"`` while the process serves requests; an
    unreachable Redis store only degrades ``rate_limit.store``, since the
    limiters fail open.

    Returns:
        dict: Liveness status plus rate limit backend state.
    """

    limiters = get_rate_limiters(request)
    stores = {id(limiter.store): limiter.store for limiter in limiters.values()}

    store_state = "ok"
    for store in stores.values():
        if isinstance(store, RedisRateLimitStore) and not store.ping():
            store_state = "unreachable"

    return {
        "status": "ok",
        "rate_limit": {
            "enabled": settings.rate_limit.enabled,
            "backend": settings.rate_limit.backend,
            "store": store_state,
        },
    }
