"""
In-memory rate limiting for expensive endpoints.

Counters live in the process that serves the request. They are not shared
between instances and are lost on restart.
"""

import asyncio
import contextlib
import math
import time
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, Request, Response

from portal.config.logging import get_logger
from portal.v1.core.exceptions import RateLimitExceededError
from portal.v1.core.security import OptionalPrincipalDep, Principal

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitConfig:
    window_ms: int
    max_requests: int
    key_prefix: str | None = None


@dataclass
class RateLimitEntry:
    count: int
    reset_time: float  # epoch milliseconds


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_time: float  # epoch milliseconds
    retry_after: int | None = None


BUCKETS: dict[str, RateLimitConfig] = {
    # Login, registration
    "auth": RateLimitConfig(window_ms=15 * 60 * 1000, max_requests=10, key_prefix="auth"),
    # Checkout and payment endpoints
    "payment": RateLimitConfig(window_ms=60 * 1000, max_requests=5, key_prefix="payment"),
    # AI generation and project development
    "ai": RateLimitConfig(window_ms=60 * 1000, max_requests=10, key_prefix="ai"),
    # General API
    "api": RateLimitConfig(window_ms=60 * 1000, max_requests=60, key_prefix="api"),
    # Inbound webhooks, Stripe can burst
    "webhook": RateLimitConfig(window_ms=60 * 1000, max_requests=100, key_prefix="webhook"),
}


def _now_ms() -> float:
    return time.time() * 1000


class RateLimiter:
    """Fixed-size windows per key, reset lazily on the first check after expiry."""

    def __init__(self, clock: Callable[[], float] | None = None):
        self.clock = clock or _now_ms
        self._entries: dict[str, RateLimitEntry] = {}
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request for identifier and decide whether it is allowed."""
        key = f"{config.key_prefix}:{identifier}" if config.key_prefix else identifier
        now = self.clock()

        entry = self._entries.get(key)
        if entry is None or entry.reset_time < now:
            entry = RateLimitEntry(count=0, reset_time=now + config.window_ms)
            self._entries[key] = entry

        entry.count += 1

        if entry.count > config.max_requests:
            retry_after = max(1, math.ceil((entry.reset_time - now) / 1000))
            logger.warning(
                "Rate limit exceeded",
                identifier=key[:20] + "...",
                count=entry.count,
                max_requests=config.max_requests,
            )
            return RateLimitResult(
                allowed=False,
                remaining=0,
                reset_time=entry.reset_time,
                retry_after=retry_after,
            )

        return RateLimitResult(
            allowed=True,
            remaining=max(0, config.max_requests - entry.count),
            reset_time=entry.reset_time,
        )

    def sweep(self) -> int:
        """Drop entries whose window has closed. Only bounds memory."""
        now = self.clock()
        expired = [key for key, entry in self._entries.items() if entry.reset_time < now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def start(self, interval_s: float = 300.0) -> None:
        """Start the background sweep on the running event loop."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_loop(interval_s))

    async def stop(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._sweeper
        self._sweeper = None

    async def _sweep_loop(self, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            removed = self.sweep()
            if removed:
                logger.debug("Expired rate limit entries removed", removed=removed)


def get_rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    headers = {
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(math.ceil(result.reset_time / 1000)),
    }
    if result.retry_after:
        headers["Retry-After"] = str(result.retry_after)
    return headers


def get_request_identifier(request: Request, user_id: str | None = None) -> str:
    """Prefer the authenticated user, fall back to the client IP."""
    if user_id:
        return f"user:{user_id}"

    forwarded = request.headers.get("x-forwarded-for")
    # Proxies append the address they saw, so the last hop is the one not
    # chosen by the client
    forwarded_ip = forwarded.split(",")[-1].strip() if forwarded else None
    ip = (
        request.headers.get("cf-connecting-ip")
        or request.headers.get("x-real-ip")
        or forwarded_ip
        or (request.client.host if request.client else None)
        or "unknown"
    )
    return f"ip:{ip}"


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


class RateLimit:
    """
    Dependency enforcing one bucket on a route.

        @router.post("/expensive", dependencies=[Depends(RateLimit("ai"))])
    """

    def __init__(self, bucket: str, use_principal: bool = True):
        self.config = BUCKETS[bucket]
        self.use_principal = use_principal

    async def __call__(
        self,
        request: Request,
        response: Response,
        principal: Principal | None = OptionalPrincipalDep,
        limiter: RateLimiter = Depends(get_rate_limiter),
    ) -> RateLimitResult:
        user_id = principal.user_id if principal and self.use_principal else None
        result = limiter.check(get_request_identifier(request, user_id), self.config)
        headers = get_rate_limit_headers(result)

        if not result.allowed:
            raise RateLimitExceededError(retry_after=result.retry_after, headers=headers)

        response.headers.update(headers)
        return result
