"""Tests for the sliding-window rate limiter and its pipeline stage."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import patch

import pytest
from starlette.responses import Response

from lottery_api.middleware.pipeline import InboundRequest, RequestContext
from lottery_api.middleware.rate_limiter import (
    RateLimiter,
    SlidingWindowRateLimiter,
    run_window_reaper,
)
from lottery_api.validation.result import ErrorKind


def _inbound(client_host: str = "10.0.0.1") -> InboundRequest:
    return InboundRequest(method="GET", path="/results/2024-01-02", client_host=client_host)


class TestSlidingWindowRateLimiter:
    def test_admits_up_to_max_then_rejects(self):
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)
        assert [limiter.admit("a", now=100.0 + i) for i in range(3)] == [True, True, True]
        assert limiter.admit("a", now=103.0) is False

    def test_rejected_request_not_recorded(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=10)
        assert limiter.admit("a", now=0.0)
        for t in (1.0, 2.0, 3.0):
            assert not limiter.admit("a", now=t)
        # Only the admitted request occupies the window
        assert limiter.admit("a", now=10.5)

    def test_admission_resumes_after_window(self):
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60)
        assert limiter.admit("a", now=0.0)
        assert limiter.admit("a", now=1.0)
        assert not limiter.admit("a", now=30.0)
        assert limiter.admit("a", now=60.5)

    def test_timestamp_exactly_at_boundary_still_counts(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        assert limiter.admit("a", now=0.0)
        assert not limiter.admit("a", now=60.0)

    def test_independent_clients(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        assert limiter.admit("a", now=0.0)
        assert not limiter.admit("a", now=1.0)
        assert limiter.admit("b", now=1.0)

    def test_decision_counts_remaining(self):
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60)
        first = limiter.check("a", now=100.0)
        second = limiter.check("a", now=101.0)
        assert first.remaining == 2
        assert second.remaining == 1
        assert second.reset_at == 160

    def test_rejection_reports_retry_after(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        limiter.check("a", now=100.0)
        decision = limiter.check("a", now=130.0)
        assert decision.allowed is False
        assert decision.remaining == 0
        assert decision.retry_after == 30

    def test_injected_clock(self):
        now = [0.0]
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=5, clock=lambda: now[0])
        assert limiter.admit("a")
        assert not limiter.admit("a")
        now[0] = 6.0
        assert limiter.admit("a")

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(max_requests=0)
        with pytest.raises(ValueError):
            SlidingWindowRateLimiter(window_seconds=0)

    def test_concurrent_admissions_never_exceed_limit(self):
        limiter = SlidingWindowRateLimiter(max_requests=50, window_seconds=60)
        admitted = []
        lock = threading.Lock()

        def worker():
            for _ in range(20):
                ok = limiter.admit("shared", now=1.0)
                with lock:
                    admitted.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(admitted) == 200
        assert sum(admitted) == 50

    def test_reap_idle_drops_expired_windows(self):
        limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=10)
        limiter.admit("old", now=0.0)
        limiter.admit("fresh", now=15.0)
        assert limiter.tracked_clients() == 2

        assert limiter.reap_idle(now=16.0) == 1
        assert limiter.tracked_clients() == 1
        assert limiter.admit("fresh", now=16.0)

    def test_reset(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        limiter.admit("a", now=0.0)
        limiter.reset()
        assert limiter.tracked_clients() == 0
        assert limiter.admit("a", now=1.0)


class TestRateLimiterStage:
    @pytest.mark.asyncio
    async def test_allows_under_limit(self):
        stage = RateLimiter(SlidingWindowRateLimiter(max_requests=2, window_seconds=60))
        ctx = RequestContext()
        assert await stage.process_request(_inbound(), ctx) is None
        assert ctx.extra["rate_limit_max"] == 2
        assert ctx.extra["rate_limit_remaining"] == 1

    @pytest.mark.asyncio
    async def test_blocks_over_limit(self):
        stage = RateLimiter(SlidingWindowRateLimiter(max_requests=1, window_seconds=60))
        await stage.process_request(_inbound(), RequestContext())
        rejection = await stage.process_request(_inbound(), RequestContext())

        assert rejection is not None
        assert rejection.kind is ErrorKind.RATE_LIMITED
        assert rejection.status == 429
        assert rejection.field == "rate_limit"
        assert rejection.details == "Maximum 1 requests per 60 seconds"
        assert "Retry-After" in rejection.headers
        assert rejection.headers["X-RateLimit-Remaining"] == "0"

    @pytest.mark.asyncio
    async def test_keyed_by_client_address(self):
        stage = RateLimiter(SlidingWindowRateLimiter(max_requests=1, window_seconds=60))
        assert await stage.process_request(_inbound("10.0.0.1"), RequestContext()) is None
        assert await stage.process_request(_inbound("10.0.0.2"), RequestContext()) is None
        assert await stage.process_request(_inbound("10.0.0.1"), RequestContext()) is not None

    @pytest.mark.asyncio
    async def test_response_headers_injected(self):
        stage = RateLimiter(SlidingWindowRateLimiter(max_requests=5, window_seconds=60))
        ctx = RequestContext()
        await stage.process_request(_inbound(), ctx)
        response = await stage.process_response(Response(content="ok"), ctx)
        assert response.headers["X-RateLimit-Limit"] == "5"
        assert response.headers["X-RateLimit-Remaining"] == "4"
        assert "X-RateLimit-Reset" in response.headers

    @pytest.mark.asyncio
    async def test_no_headers_without_decision(self):
        stage = RateLimiter(SlidingWindowRateLimiter())
        response = await stage.process_response(Response(content="ok"), RequestContext())
        assert "X-RateLimit-Limit" not in response.headers


class TestWindowReaper:
    @pytest.mark.asyncio
    async def test_reaper_runs_until_cancelled(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        with patch.object(limiter, "reap_idle", return_value=0) as reap:
            task = asyncio.create_task(run_window_reaper(limiter, 0.01))
            await asyncio.sleep(0.05)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert reap.call_count >= 1

    @pytest.mark.asyncio
    async def test_reaper_survives_errors(self):
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60)
        with patch.object(limiter, "reap_idle", side_effect=RuntimeError("boom")) as reap:
            task = asyncio.create_task(run_window_reaper(limiter, 0.01))
            await asyncio.sleep(0.1)
            assert not task.done()
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
        assert reap.call_count >= 2
