"""Fixed-window request rate limiter.

Counters are stored through a Django cache backend (the ``rate_limit``
alias in ``CACHES``).  The default alias is a per-process ``LocMemCache``:
a restart resets every window and each process counts on its own.  Point
``RATE_LIMIT_CACHE_URL`` at Redis to share the limits across instances.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Set

import structlog
from django.conf import settings
from django.core.cache import caches
from django.core.cache.backends.base import BaseCache

logger = structlog.get_logger(__name__)

DEFAULT_SWEEP_INTERVAL_SECONDS = 300
RATE_LIMIT_CACHE_ALIAS = "rate_limit"
KEY_PREFIX = "ratelimit"


@dataclass(frozen=True)
class RateLimitConfig:
    name: str
    max_requests: int
    window_seconds: float


@dataclass(frozen=True)
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time: float
    retry_after: Optional[int] = None


class RateLimiter:
    """Per-``operation:identifier`` request counter.

    Each key holds ``{"count", "reset_time"}`` in the cache and expires
    with its window.  ``clock`` returns seconds since the epoch and is
    injectable so tests can advance time deterministically.  Keys this
    instance wrote are swept opportunistically from ``check`` every
    ``sweep_interval`` seconds.
    """

    def __init__(
        self,
        cache: Optional[BaseCache] = None,
        clock: Callable[[], float] = time.time,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._cache = cache
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._keys: Set[str] = set()
        self._lock = threading.Lock()
        self._next_sweep = clock() + sweep_interval

    @property
    def cache(self) -> BaseCache:
        return self._cache if self._cache is not None else caches[RATE_LIMIT_CACHE_ALIAS]

    @staticmethod
    def _key(identifier: str, config: RateLimitConfig) -> str:
        return f"{KEY_PREFIX}:{config.name}:{identifier}"

    def _store(self, key: str, count: int, reset_time: float, now: float) -> None:
        self.cache.set(
            key,
            {"count": count, "reset_time": reset_time},
            timeout=max(1, math.ceil(reset_time - now)),
        )
        self._keys.add(key)

    def check(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Count one request against *config* and report whether it may proceed."""
        now = self._clock()
        key = self._key(identifier, config)
        with self._lock:
            if now >= self._next_sweep:
                self._sweep_locked(now)

            entry = self.cache.get(key)
            if entry is None or now >= entry["reset_time"]:
                reset_time = now + config.window_seconds
                self._store(key, 1, reset_time, now)
                return RateLimitResult(
                    allowed=True,
                    limit=config.max_requests,
                    remaining=config.max_requests - 1,
                    reset_time=reset_time,
                )

            reset_time = entry["reset_time"]
            if entry["count"] >= config.max_requests:
                retry_after = max(1, math.ceil(reset_time - now))
                logger.info(
                    "rate_limit.exceeded",
                    operation=config.name,
                    identifier=identifier,
                    retry_after=retry_after,
                )
                return RateLimitResult(
                    allowed=False,
                    limit=config.max_requests,
                    remaining=0,
                    reset_time=reset_time,
                    retry_after=retry_after,
                )

            count = entry["count"] + 1
            self._store(key, count, reset_time, now)
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests - count,
                reset_time=reset_time,
            )

    def status(self, identifier: str, config: RateLimitConfig) -> RateLimitResult:
        """Report the current window without counting a request."""
        now = self._clock()
        entry = self.cache.get(self._key(identifier, config))
        if entry is None or now >= entry["reset_time"]:
            return RateLimitResult(
                allowed=True,
                limit=config.max_requests,
                remaining=config.max_requests,
                reset_time=now + config.window_seconds,
            )
        remaining = max(0, config.max_requests - entry["count"])
        return RateLimitResult(
            allowed=remaining > 0,
            limit=config.max_requests,
            remaining=remaining,
            reset_time=entry["reset_time"],
            retry_after=None if remaining else max(1, math.ceil(entry["reset_time"] - now)),
        )

    def reset(self, identifier: str, config: RateLimitConfig) -> None:
        key = self._key(identifier, config)
        with self._lock:
            self.cache.delete(key)
            self._keys.discard(key)

    def clear(self) -> None:
        with self._lock:
            self.cache.delete_many(list(self._keys))
            self._keys.clear()

    def sweep(self) -> int:
        """Drop every expired entry and return how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        entries = self.cache.get_many(list(self._keys))
        expired = [
            key
            for key in self._keys
            if key not in entries or now >= entries[key]["reset_time"]
        ]
        if expired:
            self.cache.delete_many(expired)
            self._keys.difference_update(expired)
            logger.debug("rate_limit.swept", removed=len(expired))
        self._next_sweep = now + self._sweep_interval
        return len(expired)

    def __len__(self) -> int:
        """Live keys written by this limiter."""
        with self._lock:
            return len(self.cache.get_many(list(self._keys)))


# ---------------------------------------------------------------------------
# Named operation limits
# ---------------------------------------------------------------------------


def get_rate_limit_config(name: str) -> RateLimitConfig:
    """Resolve a named operation from ``settings.RATE_LIMITS``."""
    values = settings.RATE_LIMITS.get(name)
    if not values:
        raise KeyError(f"Unknown rate limit operation: {name}")
    return RateLimitConfig(
        name=name,
        max_requests=int(values["max_requests"]),
        window_seconds=float(values["window_seconds"]),
    )


# ---------------------------------------------------------------------------
# Identifier resolution
# ---------------------------------------------------------------------------


def get_client_ip(request) -> str:
    """First hop of ``X-Forwarded-For``, then ``X-Real-IP``, else ``"unknown"``."""
    forwarded = request.META.get("HTTP_X_FORWARDED_FOR", "")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.META.get("HTTP_X_REAL_IP", "").strip()
    if real_ip:
        return real_ip
    return "unknown"


def get_rate_limit_identifier(request) -> str:
    """Prefer the authenticated profile id, falling back to the client IP."""
    user = getattr(request, "user", None)
    if user is not None and getattr(user, "is_authenticated", False):
        profile = getattr(user, "profile", None)
        if profile is not None:
            return f"user:{profile.id}"
        return f"user:{user.pk}"
    return f"ip:{get_client_ip(request)}"


# Process-wide limiter used by the HTTP throttles.
default_rate_limiter = RateLimiter()
