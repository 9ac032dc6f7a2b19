"""DRF throttle backed by ``RateLimiter``.

Views opt in by declaring ``throttle_scope`` (one of the named
operations in ``settings.RATE_LIMITS``).  A view may also expose a
``rate_limiter`` attribute to use an isolated limiter instance.
"""

from __future__ import annotations

from typing import Optional

from rest_framework.exceptions import Throttled
from rest_framework.throttling import BaseThrottle

from modules.core.rate_limit import (
    RateLimitResult,
    default_rate_limiter,
    get_rate_limit_config,
    get_rate_limit_identifier,
)


class RateLimited(Throttled):
    """429 carrying the window state for ``X-RateLimit-*`` headers."""

    default_detail = "Too many requests. Please try again later."

    def __init__(self, result: RateLimitResult) -> None:
        super().__init__(wait=result.retry_after, detail=self.default_detail)
        self.result = result

    def rate_limit_headers(self) -> dict[str, str]:
        return {
            "Retry-After": str(self.result.retry_after or 1),
            "X-RateLimit-Limit": str(self.result.limit),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(int(self.result.reset_time)),
        }


class SlidingWindowThrottle(BaseThrottle):
    scope_attr = "throttle_scope"

    def __init__(self) -> None:
        self.result: Optional[RateLimitResult] = None

    def allow_request(self, request, view) -> bool:
        scope = getattr(view, self.scope_attr, None)
        if not scope:
            return True
        limiter = getattr(view, "rate_limiter", None) or default_rate_limiter
        self.result = limiter.check(
            get_rate_limit_identifier(request), get_rate_limit_config(scope)
        )
        if not self.result.allowed:
            raise RateLimited(self.result)
        return True

    def wait(self) -> Optional[float]:
        if self.result is None or self.result.retry_after is None:
            return None
        return float(self.result.retry_after)
