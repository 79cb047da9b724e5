"""
Ariya Backend — Rate Limiter Unit Tests
=========================================

What we test:
    ✅ Requests within the limit are admitted with decreasing `remaining`
    ✅ The (max+1)th request in a window is rejected with retry_after
    ✅ A new window starts fresh
    ✅ Categories and identifiers are counted independently
    ✅ Unknown categories fall back to the default rule
    ✅ Stale entries are pruned
    ✅ Concurrent checks on one key admit exactly max_requests
"""

import asyncio
import threading
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest
from starlette.requests import Request

from app.dependencies import rate_limit
from app.exceptions import RateLimitExceededError
from app.services.rate_limiter import DEFAULT_RULES, RateLimiter, RateLimitRule, RateLimitStore


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestDefaultRules:
    def test_default_categories(self):
        assert DEFAULT_RULES["auth"].max_requests == 5
        assert DEFAULT_RULES["auth"].window_seconds == 15 * 60
        assert DEFAULT_RULES["api"].max_requests == 100
        assert DEFAULT_RULES["upload"].max_requests == 10
        assert DEFAULT_RULES["default"].max_requests == 60
        assert DEFAULT_RULES["default"].window_seconds == 60


class TestRateLimiterCheck:
    def setup_method(self):
        self.clock = FakeClock()
        self.limiter = RateLimiter(clock=self.clock)

    def test_admits_up_to_limit(self):
        remaining = [self.limiter.check("1.2.3.4", "auth").remaining for _ in range(5)]
        assert remaining == [4, 3, 2, 1, 0]

    def test_rejects_after_limit(self):
        for _ in range(5):
            self.limiter.check("1.2.3.4", "auth")

        with pytest.raises(RateLimitExceededError) as exc_info:
            self.limiter.check("1.2.3.4", "auth")

        exc = exc_info.value
        assert exc.status_code == 429
        assert exc.message == DEFAULT_RULES["auth"].message
        assert exc.retry_after == 15 * 60
        assert exc.headers["Retry-After"] == str(15 * 60)
        assert exc.headers["X-RateLimit-Remaining"] == "0"

    def test_retry_after_counts_down(self):
        for _ in range(5):
            self.limiter.check("ip", "auth")
        self.clock.advance(600)
        with pytest.raises(RateLimitExceededError) as exc_info:
            self.limiter.check("ip", "auth")
        assert exc_info.value.retry_after == 300

    def test_window_rollover_resets_count(self):
        for _ in range(5):
            self.limiter.check("ip", "auth")
        self.clock.advance(15 * 60 + 1)

        result = self.limiter.check("ip", "auth")
        assert result.remaining == 4

    def test_rejected_requests_still_count_within_window(self):
        for _ in range(5):
            self.limiter.check("ip", "auth")
        for _ in range(3):
            with pytest.raises(RateLimitExceededError):
                self.limiter.check("ip", "auth")

    def test_categories_are_independent(self):
        for _ in range(5):
            self.limiter.check("ip", "auth")
        assert self.limiter.check("ip", "api").remaining == 99

    def test_identifiers_are_independent(self):
        for _ in range(5):
            self.limiter.check("10.0.0.1", "auth")
        assert self.limiter.check("10.0.0.2", "auth").remaining == 4

    def test_unknown_category_uses_default_rule(self):
        result = self.limiter.check("ip", "no-such-category")
        assert result.limit == DEFAULT_RULES["default"].max_requests

    def test_reset_clears_identifier(self):
        for _ in range(5):
            self.limiter.check("ip", "auth")
        self.limiter.reset("ip", "auth")
        assert self.limiter.check("ip", "auth").remaining == 4

    def test_rule_overrides_merge_with_defaults(self):
        limiter = RateLimiter(
            rules={"auth": RateLimitRule(max_requests=2, window_ms=1000, message="slow down")},
            clock=self.clock,
        )
        limiter.check("ip", "auth")
        limiter.check("ip", "auth")
        with pytest.raises(RateLimitExceededError, match="slow down"):
            limiter.check("ip", "auth")
        assert limiter.rule_for("api") == DEFAULT_RULES["api"]


class TestRateLimitStore:
    def test_cleanup_removes_expired_entries(self):
        store = RateLimitStore()
        store.hit("auth:a", 10, now=0)
        store.hit("auth:b", 100, now=0)

        removed = store.cleanup(now=50)

        assert removed == 1
        assert len(store) == 1

    def test_limiter_prunes_periodically(self):
        clock = FakeClock(0)
        limiter = RateLimiter(clock=clock, cleanup_every=2)
        limiter.check("old", "default")
        clock.advance(120)
        limiter.check("new", "default")
        assert len(limiter.store) == 1


class TestConcurrentChecks:
    """Racing callers on one key never push admissions past the limit."""

    RULES = {"auth": RateLimitRule(max_requests=5, window_ms=60_000, message="Too many login attempts")}
    CALLS = 40

    def test_thread_pool(self):
        limiter = RateLimiter(rules=self.RULES)
        barrier = threading.Barrier(self.CALLS)

        def attempt(_):
            barrier.wait()
            try:
                limiter.check("198.51.100.20", "auth")
            except RateLimitExceededError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=self.CALLS) as pool:
            outcomes = list(pool.map(attempt, range(self.CALLS)))

        assert outcomes.count(True) == 5
        assert limiter.store.get("auth:198.51.100.20").count == self.CALLS

    @pytest.mark.asyncio
    async def test_gathered_dependency_calls(self):
        limiter = RateLimiter(rules=self.RULES)
        app = SimpleNamespace(state=SimpleNamespace(rate_limiter=limiter))
        dependency = rate_limit("auth")

        def request() -> Request:
            return Request({
                "type": "http",
                "method": "POST",
                "path": "/api/v1/auth/login",
                "query_string": b"",
                "headers": [],
                "client": ("198.51.100.21", 4000),
                "app": app,
            })

        outcomes = await asyncio.gather(
            *(dependency(request()) for _ in range(self.CALLS)), return_exceptions=True
        )

        admitted = [o for o in outcomes if not isinstance(o, Exception)]
        rejected = [o for o in outcomes if isinstance(o, RateLimitExceededError)]
        assert len(admitted) == 5
        assert len(rejected) == self.CALLS - 5
        assert sorted(r.remaining for r in admitted) == [0, 1, 2, 3, 4]
        assert limiter.store.get("auth:198.51.100.21").count == self.CALLS
