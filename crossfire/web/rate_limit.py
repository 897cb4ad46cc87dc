"""In-process fixed-window rate limiting.

Each limiter keeps one counter per key. A window starts on the first request
for a key and resets once it has elapsed; bursts of up to twice the ceiling
are possible across a window boundary. State is per process and is not
shared between instances.
"""

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

from fastapi import Request

from crossfire.config.settings import RateLimitConfig, RateLimitTierConfig
from crossfire.debate_engine.exceptions import DebateError

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("security")

Clock = Callable[[], float]


@dataclass
class RateLimitEntry:
    count: int
    reset_at: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    remaining: int
    reset_at: float
    limit: int
    retry_after: int = 0

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimitedError(DebateError):
    code = "rate_limited"
    status_code = 429

    def __init__(self, result: RateLimitResult):
        super().__init__(
            "Too many requests. Please try again later.",
            limit=result.limit,
            retry_after_seconds=result.retry_after,
        )
        self.result = result


class RateLimiter:
    """Fixed-window counter keyed by an arbitrary string."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        *,
        name: str = "default",
        cleanup_interval: float = 60.0,
        clock: Clock = time.time,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.name = name
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._store: dict[str, RateLimitEntry] = {}
        self._lock = threading.Lock()
        self._last_cleanup = clock()

    @classmethod
    def from_config(
        cls,
        tier: RateLimitTierConfig,
        name: str,
        cleanup_interval: float = 60.0,
        clock: Clock = time.time,
    ) -> "RateLimiter":
        return cls(
            tier.max_requests,
            tier.window_seconds,
            name=name,
            cleanup_interval=cleanup_interval,
            clock=clock,
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def _sweep(self, now: float) -> int:
        expired = [key for key, entry in self._store.items() if entry.reset_at <= now]
        for key in expired:
            del self._store[key]
        self._last_cleanup = now
        return len(expired)

    def cleanup_expired(self) -> int:
        """Drop every entry whose window has elapsed."""
        with self._lock:
            return self._sweep(self._clock())

    def check(self, key: str) -> RateLimitResult:
        """Count a request for ``key`` and report whether it is allowed."""
        with self._lock:
            now = self._clock()
            if now - self._last_cleanup >= self.cleanup_interval:
                self._sweep(now)

            entry = self._store.get(key)
            if entry is None or now >= entry.reset_at:
                entry = RateLimitEntry(count=0, reset_at=now + self.window_seconds)
                self._store[key] = entry

            entry.count += 1
            allowed = entry.count <= self.max_requests
            return RateLimitResult(
                allowed=allowed,
                remaining=max(0, self.max_requests - entry.count),
                reset_at=entry.reset_at,
                limit=self.max_requests,
                retry_after=0 if allowed else max(1, math.ceil(entry.reset_at - now)),
            )

    def enforce(self, key: str) -> RateLimitResult:
        """Like check(), but raise RateLimitedError when the key is over its ceiling."""
        result = self.check(key)
        if not result.allowed:
            security_logger.warning(
                f"Rate limit '{self.name}' exceeded for {key} (retry in {result.retry_after}s)"
            )
            raise RateLimitedError(result)
        return result


class RateLimitTiers:
    """The limiter instances the HTTP layer composes into tiers."""

    def __init__(self, config: RateLimitConfig, clock: Clock = time.time):
        def build(name: str) -> RateLimiter:
            return RateLimiter.from_config(
                getattr(config, name), name, config.cleanup_interval_seconds, clock
            )

        self.turn_ip = build("turn_ip")
        self.turn_identity = build("turn_identity")
        self.create_ip = build("create_ip")
        self.create_identity = build("create_identity")
        self.anonymous_create_ip_daily = build("anonymous_create_ip_daily")
        self.score_ip = build("score_ip")
        self.score_identity = build("score_identity")
        self.takeover_ip = build("takeover_ip")
        self.takeover_identity = build("takeover_identity")
        self.feedback_ip = build("feedback_ip")
        self.feedback_identity = build("feedback_identity")

    def all(self) -> list[RateLimiter]:
        return [
            self.turn_ip,
            self.turn_identity,
            self.create_ip,
            self.create_identity,
            self.anonymous_create_ip_daily,
            self.score_ip,
            self.score_identity,
            self.takeover_ip,
            self.takeover_identity,
            self.feedback_ip,
            self.feedback_identity,
        ]

    def cleanup_expired(self) -> int:
        return sum(limiter.cleanup_expired() for limiter in self.all())


def most_restrictive(results: list[RateLimitResult]) -> Optional[RateLimitResult]:
    """The result with the fewest remaining requests, for response headers."""
    if not results:
        return None
    return min(results, key=lambda r: (r.remaining, r.limit))


def enforce_tier(request: Request, limiter: RateLimiter, key: str) -> RateLimitResult:
    """Enforce one tier and remember the result on the request.

    Responses, errors included, carry the headers of the tightest tier the
    request passed.
    """
    result = limiter.enforce(key)
    passed = getattr(request.state, "rate_limits", None)
    if passed is None:
        passed = request.state.rate_limits = []
    passed.append(result)
    return result


def passed_rate_limit_headers(request: Request) -> dict[str, str]:
    result = most_restrictive(getattr(request.state, "rate_limits", []))
    return result.headers() if result else {}


def get_client_ip(request: Request) -> str:
    """Client IP from proxy headers, falling back to the socket peer."""
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    # last hop is appended by our proxy and is the hardest to spoof
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        hops = [ip.strip() for ip in forwarded.split(",") if ip.strip()]
        if hops:
            return hops[-1]

    if request.client and request.client.host:
        return request.client.host
    return "unknown"
