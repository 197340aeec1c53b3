"""Rate limiting wiring for the HTTP layer.

This module connects the limiter service to FastAPI.

Design goals:
- Explicit construction: one limiter per route class is built from settings
  in the app factory and kept on ``app.state``; nothing is created at import.
- Swap-friendly: the counter store (memory or Redis) is chosen by settings
  behind the RateLimitStore interface.
- Transparent: admitted and rejected responses carry X-RateLimit-* headers.

Route classes (by path prefix):
- ``/api/``  → api limiter (default 50 per minute)
- ``/auth/`` → auth limiter (default 5 per 15 minutes)
- anything else → general limiter (default 100 per minute)

Identifiers are ``"<route-class>:<client-ip>"``.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.adapters.rate_limit.base import RateLimitDecision, RateLimitStore
from app.adapters.rate_limit.in_memory import InMemoryRateLimitStore
from app.adapters.rate_limit.redis_store import RedisRateLimitStore
from app.core.config import RateLimitSettings, settings
from app.core.errors import RateLimitExceededError
from app.core.logging import hash_for_log
from app.services.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

DEFAULT_CLIENT_IP = "127.0.0.1"

# Liveness probes must stay reachable while a client is throttled.
EXEMPT_PATHS = frozenset({"/health"})


class RouteClass(str, Enum):
    """Namespaces selecting which limiter instance handles a request."""

    GENERAL = "general"
    API = "api"
    AUTH = "auth"


_PREFIX_ROUTE_CLASSES: tuple[tuple[str, RouteClass], ...] = (
    ("/api/", RouteClass.API),
    ("/auth/", RouteClass.AUTH),
)

RateLimiters = dict[RouteClass, RateLimiter]


def resolve_route_class(path: str) -> RouteClass:
    """Map a request path to its route class."""

    for prefix, route_class in _PREFIX_ROUTE_CLASSES:
        if path.startswith(prefix):
            return route_class
    return RouteClass.GENERAL


def build_store(cfg: RateLimitSettings) -> RateLimitStore:
    """Create the counter store selected by ``cfg.backend``."""

    if cfg.backend == "redis":
        return RedisRateLimitStore(
            redis_url=cfg.redis_url,
            key_prefix=cfg.redis_key_prefix,
            socket_timeout_seconds=cfg.redis_socket_timeout_seconds,
        )
    return InMemoryRateLimitStore()


def build_rate_limiters(
    cfg: RateLimitSettings,
    *,
    store_factory: Callable[[RateLimitSettings], RateLimitStore] = build_store,
    clock: Callable[[], float] = time.time,
) -> RateLimiters:
    """Construct one limiter per route class.

    In-memory stores are per limiter. A Redis store is shared; identifiers
    are already namespaced by route class so keys never collide.

    Args:
        cfg: Rate limit settings.
        store_factory: Builds a counter store from settings.
        clock: Time source passed to every limiter.

    Returns:
        Mapping of route class to its limiter.
    """

    quotas = {
        RouteClass.GENERAL: (cfg.general_requests, cfg.general_window),
        RouteClass.API: (cfg.api_requests, cfg.api_window),
        RouteClass.AUTH: (cfg.auth_requests, cfg.auth_window),
    }

    shared_store = store_factory(cfg) if cfg.backend == "redis" else None

    limiters: RateLimiters = {}
    for route_class, (limit, window_ms) in quotas.items():
        limiters[route_class] = RateLimiter(
            limit,
            window_ms,
            store=shared_store if shared_store is not None else store_factory(cfg),
            clock=clock,
            fail_closed=cfg.fail_closed,
            name=route_class.value,
        )

    logger.info(
        "rate_limit.configured",
        extra={
            "backend": cfg.backend,
            "fail_closed": cfg.fail_closed,
            "limits": {rc.value: {"limit": lim, "window_ms": win} for rc, (lim, win) in quotas.items()},
        },
    )
    return limiters


def get_rate_limiters(request: Request) -> RateLimiters:
    """Return the limiters the app factory attached to ``app.state``."""

    return request.app.state.rate_limiters


def get_client_ip(request: Request, *, trust_forwarded_for: bool = False) -> str:
    """Best-effort client address for the request.

    Args:
        request: Incoming request.
        trust_forwarded_for: Use the first X-Forwarded-For hop when present.

    Returns:
        Client IP string (``127.0.0.1`` when unknown).
    """

    if trust_forwarded_for:
        forwarded = request.headers.get("x-forwarded-for", "")
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host
    return DEFAULT_CLIENT_IP


async def run_check(limiter: RateLimiter, identifier: str) -> RateLimitDecision:
    """Run ``limiter.check`` without stalling the event loop on network stores.

    In-memory checks never block and run inline. Remote checks run in the
    threadpool; the request waits for the round-trip, bounded by the store's
    socket timeout (a timeout fails open unless ``fail_closed`` is set).
    """

    if limiter.store.is_remote:
        return await run_in_threadpool(limiter.check, identifier)
    return limiter.check(identifier)


def build_rate_limit_headers(decision: RateLimitDecision, *, now_ms: int | None = None) -> dict[str, str]:
    """Quota headers for a decision; rejected decisions also get Retry-After."""

    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": decision.reset_iso(),
    }
    if not decision.success:
        now = now_ms if now_ms is not None else int(time.time() * 1000)
        headers["Retry-After"] = str(decision.retry_after_seconds(now))
    return headers


def _log_decision(
    limiter: RateLimiter, identifier: str, decision: RateLimitDecision, path: str
) -> None:
    fields = {
        "limiter": limiter.name,
        "key_hash": hash_for_log(identifier),
        "limit": decision.limit,
        "remaining": decision.remaining,
        "window_ms": limiter.window_ms,
        "path": path,
    }
    if decision.success:
        logger.debug("rate_limit.allowed", extra=fields)
    else:
        logger.warning("rate_limit.exceeded", extra=fields)


async def rate_limit_middleware(
    request: Request, call_next: Callable[[Request], Awaitable[Response]]
) -> Response:
    """HTTP middleware applying the route-class limiter to every request.

    Rejected requests get a 429 JSON body without reaching the route.
    Admitted responses carry the same quota headers for transparency.

    Usage:
        app.middleware("http")(rate_limit_middleware)
    """

    cfg = settings.rate_limit
    path = request.url.path
    if not cfg.enabled or path in EXEMPT_PATHS:
        return await call_next(request)

    route_class = resolve_route_class(path)
    limiter = get_rate_limiters(request)[route_class]
    client_ip = get_client_ip(request, trust_forwarded_for=cfg.trust_forwarded_for)
    identifier = f"{route_class.value}:{client_ip}"

    decision = await run_check(limiter, identifier)
    _log_decision(limiter, identifier, decision, path)

    if not decision.success:
        headers = build_rate_limit_headers(decision, now_ms=limiter.now_ms())
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": "Too many requests",
                "message": "Rate limit exceeded. Please try again later.",
            },
            headers=headers if cfg.include_headers else None,
        )

    response = await call_next(request)
    # Endpoints with their own quota have already set these headers.
    apply_rate_limit_headers(response, decision, overwrite=False)
    return response


def apply_rate_limit_headers(
    response: Response, decision: RateLimitDecision | None, *, overwrite: bool = True
) -> None:
    """Attach quota headers for ``decision`` to an outgoing response.

    No-op when the decision is None (limiting disabled) or headers are
    turned off in settings.
    """

    if decision is None or not settings.rate_limit.include_headers:
        return
    for name, value in build_rate_limit_headers(decision).items():
        if overwrite:
            response.headers[name] = value
        else:
            response.headers.setdefault(name, value)


def enforce_rate_limit(
    namespace: str, route_class: RouteClass = RouteClass.API
) -> Callable[[Request], Awaitable[RateLimitDecision | None]]:
    """Build a FastAPI dependency adding a per-endpoint limit.

    The dependency consumes one unit from ``route_class``'s limiter under
    ``"<namespace>:<client-ip>"``, independent of the middleware's budget.
    Its return value is the endpoint decision, so the route can report this
    quota with ``apply_rate_limit_headers``.

    Usage:
        quota: RateLimitDecision | None = Depends(enforce_rate_limit("errors"))

    Args:
        namespace: Identifier prefix for this endpoint.
        route_class: Limiter whose quota applies.

    Returns:
        Async dependency raising RateLimitExceededError (rendered as
        ``429 {"error": "Rate limit exceeded"}``) when over quota.
    """

    async def dependency(request: Request) -> RateLimitDecision | None:
        cfg = settings.rate_limit
        if not cfg.enabled:
            return None

        limiter = get_rate_limiters(request)[route_class]
        client_ip = get_client_ip(request, trust_forwarded_for=cfg.trust_forwarded_for)
        identifier = f"{namespace}:{client_ip}"

        decision = await run_check(limiter, identifier)
        _log_decision(limiter, identifier, decision, request.url.path)
        if decision.success:
            return decision

        headers = build_rate_limit_headers(decision, now_ms=limiter.now_ms())
        raise RateLimitExceededError(
            code="rate_limit_exceeded",
            message="Rate limit exceeded",
            details={"retry_after": float(headers["Retry-After"])},
            headers=headers if cfg.include_headers else None,
        )

    return dependency
