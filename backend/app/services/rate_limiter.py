"""
Ariya Backend — Rate Limiter
==============================

What:  Fixed-window request counter per (identifier, category).
Why:   Protects credential endpoints from brute force and the API from abuse
       without external infrastructure.
How:   A lock-guarded in-memory table maps `category:identifier` to a
       (count, window_start) entry. The first request of a window resets the
       count to 1; requests beyond `max_requests` are rejected with the
       seconds remaining until the window rolls over.
Who:   The `rate_limit()` dependency in app/dependencies.py.
When:  At the head of every rate-limited route, before validation and auth.

Categories (defaults, overridable from settings):
    auth     5 requests / 15 minutes
    api      100 requests / 1 hour
    upload   10 requests / 1 hour
    default  60 requests / 1 minute

The store holds no per-request state beyond the counters, so swapping it for
a shared backend only requires another `RateLimitStore` implementation.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional, Tuple

from app.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass(frozen=True)
class RateLimitRule:
    """Limit and message for one category."""

    max_requests: int
    window_ms: int
    message: str

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000.0


@dataclass
class RateLimitEntry:
    count: int
    window_start: float
    window_seconds: float

    def expired(self, now: float) -> bool:
        return now - self.window_start > self.window_seconds


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of an admitted check, used for the X-RateLimit-* headers."""

    category: str
    limit: int
    remaining: int
    reset_after: int


DEFAULT_RULES: Dict[str, RateLimitRule] = {
    "auth": RateLimitRule(5, 15 * 60 * 1000, "Too many login attempts. Please try again later."),
    "api": RateLimitRule(100, 60 * 60 * 1000, "Too many requests. Please try again later."),
    "upload": RateLimitRule(10, 60 * 60 * 1000, "Too many uploads. Please try again later."),
    "default": RateLimitRule(60, 60 * 1000, "Too many requests. Please slow down."),
}


class RateLimitStore:
    """
    In-memory counter table.

    `hit()` performs the window check and the increment inside one critical
    section, so two concurrent callers on the same key can never both observe
    the count below the limit.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        """Count one request; returns (count, window_start) after the increment."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.expired(now):
                entry = RateLimitEntry(count=1, window_start=now, window_seconds=window_seconds)
                self._entries[key] = entry
            else:
                entry.count += 1
            return entry.count, entry.window_start

    def get(self, key: str) -> Optional[RateLimitEntry]:
        """Snapshot of the entry for `key`, or None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            return RateLimitEntry(entry.count, entry.window_start, entry.window_seconds)

    def cleanup(self, now: float) -> int:
        """Drop entries whose window has elapsed. Returns the number removed."""
        with self._lock:
            stale = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RateLimiter:
    """
    Applies per-category rules on top of a `RateLimitStore`.

    Args:
        rules:          Overrides merged over DEFAULT_RULES by category name
        store:          Counter table (a fresh in-memory one by default)
        clock:          Monotonic seconds source, injectable for tests
        cleanup_every:  Prune stale entries every N checks
    """

    def __init__(
        self,
        rules: Optional[Mapping[str, RateLimitRule]] = None,
        store: Optional[RateLimitStore] = None,
        clock: Clock = time.monotonic,
        cleanup_every: int = 1000,
    ):
        self.rules: Dict[str, RateLimitRule] = dict(DEFAULT_RULES)
        if rules:
            self.rules.update(rules)
        self.store = store if store is not None else RateLimitStore()
        self._clock = clock
        self._cleanup_every = cleanup_every
        self._checks = 0

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "RateLimiter":
        """Build the limiter from the RATE_LIMIT_<CATEGORY>_{MAX,WINDOW_MS} settings."""
        rules = {}
        for category, default in DEFAULT_RULES.items():
            rules[category] = RateLimitRule(
                max_requests=getattr(settings, f"rate_limit_{category}_max"),
                window_ms=getattr(settings, f"rate_limit_{category}_window_ms"),
                message=default.message,
            )
        kwargs.setdefault("cleanup_every", settings.rate_limit_cleanup_every)
        return cls(rules=rules, **kwargs)

    def rule_for(self, category: str) -> RateLimitRule:
        rule = self.rules.get(category)
        if rule is None:
            logger.warning("Unknown rate limit category '%s', using default", category)
            rule = self.rules["default"]
        return rule

    def check(self, identifier: str, category: str = "default") -> RateLimitResult:
        """
        Count a request for `identifier` in `category`.

        Returns:
            RateLimitResult for the admitted request.

        Raises:
            RateLimitExceededError: when the count exceeds the category limit,
                with `retry_after` = seconds until the window rolls over.
        """
        rule = self.rule_for(category)
        now = self._clock()
        count, window_start = self.store.hit(
            f"{category}:{identifier}", rule.window_seconds, now
        )
        self._maybe_cleanup(now)

        reset_after = max(1, math.ceil(window_start + rule.window_seconds - now))
        if count > rule.max_requests:
            raise RateLimitExceededError(
                message=rule.message,
                retry_after=reset_after,
                limit=rule.max_requests,
                category=category,
                context={"identifier": identifier, "count": count},
            )
        return RateLimitResult(
            category=category,
            limit=rule.max_requests,
            remaining=rule.max_requests - count,
            reset_after=reset_after,
        )

    def reset(self, identifier: str, category: str) -> None:
        self.store.reset(f"{category}:{identifier}")

    def cleanup(self) -> int:
        removed = self.store.cleanup(self._clock())
        if removed:
            logger.debug("Rate limiter pruned %d stale entries", removed)
        return removed

    def _maybe_cleanup(self, now: float) -> None:
        # Not locked: an occasional extra or skipped prune is harmless
        self._checks += 1
        if self._checks % self._cleanup_every == 0:
            self.store.cleanup(now)
