"""In-process sliding-window rate limiter middleware."""

from __future__ import annotations

import asyncio
import math
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

import structlog
from starlette.responses import Response

from lottery_api.logging_config import log_validation_error
from lottery_api.middleware.pipeline import InboundRequest, Middleware, RequestContext
from lottery_api.validation.result import ErrorKind, Rejection

logger = structlog.get_logger()


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after: int = 0


class SlidingWindowRateLimiter:
    """Per-client sliding window of request timestamps.

    - Timestamps older than ``now - window_seconds`` are purged before each check
    - A rejected request is not recorded
    - Every read-modify-write happens under one lock, so concurrent callers
      never admit more than ``max_requests`` per window
    - Windows are created lazily; ``reap_idle`` drops the ones that emptied
    """

    def __init__(
        self,
        max_requests: int = 100,
        window_seconds: float = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, deque[float]] = {}

    def _purge(self, window: deque[float], now: float) -> None:
        cutoff = now - self.window_seconds
        while window and window[0] < cutoff:
            window.popleft()

    def check(self, client_id: str, now: float | None = None) -> RateLimitDecision:
        """Admit or reject one request from *client_id*."""
        if now is None:
            now = self._clock()
        with self._lock:
            window = self._windows.get(client_id)
            if window is None:
                window = self._windows[client_id] = deque()
            self._purge(window, now)

            if len(window) >= self.max_requests:
                oldest_expiry = window[0] + self.window_seconds
                return RateLimitDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_at=math.ceil(oldest_expiry),
                    retry_after=max(1, math.ceil(oldest_expiry - now)),
                )

            window.append(now)
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - len(window),
                reset_at=math.ceil(window[0] + self.window_seconds),
            )

    def admit(self, client_id: str, now: float | None = None) -> bool:
        return self.check(client_id, now).allowed

    def reap_idle(self, now: float | None = None) -> int:
        """Drop windows with no live timestamps. Returns the number dropped."""
        if now is None:
            now = self._clock()
        with self._lock:
            idle = []
            for client_id, window in self._windows.items():
                self._purge(window, now)
                if not window:
                    idle.append(client_id)
            for client_id in idle:
                del self._windows[client_id]
        return len(idle)

    def tracked_clients(self) -> int:
        with self._lock:
            return len(self._windows)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()


class RateLimiter(Middleware):
    """Reject clients that exceed the sliding-window budget.

    - Keyed on the resolved client address
    - 429 with ``Retry-After`` and ``X-RateLimit-*`` headers on rejection
    - Injects ``X-RateLimit-*`` headers into admitted responses
    """

    def __init__(self, limiter: SlidingWindowRateLimiter) -> None:
        self.limiter = limiter

    async def process_request(self, inbound: InboundRequest, context: RequestContext) -> Rejection | None:
        decision = self.limiter.check(inbound.client_host)
        context.extra["rate_limit_max"] = decision.limit
        context.extra["rate_limit_remaining"] = decision.remaining
        context.extra["rate_limit_reset"] = decision.reset_at

        if decision.allowed:
            return None

        log_validation_error("rate_limit", inbound.client_host, "Rate limit exceeded")
        window = self.limiter.window_seconds
        return Rejection(
            kind=ErrorKind.RATE_LIMITED,
            message="Rate limit exceeded",
            details=f"Maximum {decision.limit} requests per {window:g} seconds",
            field="rate_limit",
            headers={
                "Retry-After": str(decision.retry_after),
                "X-RateLimit-Limit": str(decision.limit),
                "X-RateLimit-Remaining": "0",
                "X-RateLimit-Reset": str(decision.reset_at),
            },
        )

    async def process_response(self, response: Response, context: RequestContext) -> Response:
        """Inject X-RateLimit-* headers into responses."""
        if "rate_limit_max" in context.extra:
            response.headers["X-RateLimit-Limit"] = str(context.extra["rate_limit_max"])
            response.headers["X-RateLimit-Remaining"] = str(context.extra["rate_limit_remaining"])
            response.headers["X-RateLimit-Reset"] = str(context.extra["rate_limit_reset"])
        return response


async def run_window_reaper(limiter: SlidingWindowRateLimiter, interval_seconds: float) -> None:
    """Periodically drop idle client windows.

    Runs forever until cancelled. Errors are logged but never crash the loop.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            dropped = limiter.reap_idle()
            if dropped:
                logger.info("rate_limit_windows_reaped", dropped=dropped, tracked=limiter.tracked_clients())
        except Exception as exc:
            logger.error("rate_limit_reaper_error", error=str(exc))
