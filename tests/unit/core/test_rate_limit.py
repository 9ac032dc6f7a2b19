from types import SimpleNamespace
from uuid import uuid4

import pytest
from django.core.cache.backends.locmem import LocMemCache

from modules.core.rate_limit import (
    RateLimitConfig,
    RateLimiter,
    get_client_ip,
    get_rate_limit_config,
    get_rate_limit_identifier,
)

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def limiter(clock):
    return RateLimiter(cache=LocMemCache(f"rate-limit-{uuid4()}", {}), clock=clock, sweep_interval=300)


COUPONS = RateLimitConfig(name="coupon_validation", max_requests=3, window_seconds=60)


class TestRateLimiter:
    def test_allows_up_to_the_limit(self, limiter):
        results = [limiter.check("ip:1.2.3.4", COUPONS) for _ in range(3)]
        assert all(r.allowed for r in results)
        assert [r.remaining for r in results] == [2, 1, 0]

    def test_rejects_over_the_limit_with_retry_after(self, limiter, clock):
        for _ in range(3):
            limiter.check("ip:1.2.3.4", COUPONS)
        clock.advance(20)
        result = limiter.check("ip:1.2.3.4", COUPONS)
        assert not result.allowed
        assert result.remaining == 0
        assert result.retry_after == 40

    def test_new_window_after_expiry(self, limiter, clock):
        for _ in range(4):
            limiter.check("ip:1.2.3.4", COUPONS)
        clock.advance(60)
        result = limiter.check("ip:1.2.3.4", COUPONS)
        assert result.allowed
        assert result.remaining == 2

    def test_operations_and_identifiers_are_counted_separately(self, limiter):
        orders = RateLimitConfig(name="order_creation", max_requests=1, window_seconds=60)
        for _ in range(3):
            limiter.check("user:a", COUPONS)
        assert limiter.check("user:a", orders).allowed
        assert limiter.check("user:b", COUPONS).allowed

    def test_status_does_not_count(self, limiter):
        limiter.check("user:a", COUPONS)
        status = limiter.status("user:a", COUPONS)
        assert status.remaining == 2
        assert limiter.status("user:a", COUPONS).remaining == 2

    def test_reset_clears_one_key(self, limiter):
        for _ in range(3):
            limiter.check("user:a", COUPONS)
        limiter.reset("user:a", COUPONS)
        assert limiter.check("user:a", COUPONS).allowed

    def test_sweep_removes_expired_entries(self, limiter, clock):
        limiter.check("user:a", COUPONS)
        limiter.check("user:b", COUPONS)
        assert len(limiter) == 2
        clock.advance(61)
        assert limiter.sweep() == 2
        assert len(limiter) == 0

    def test_sweep_runs_opportunistically_from_check(self, limiter, clock):
        limiter.check("user:a", COUPONS)
        clock.advance(301)
        limiter.check("user:b", COUPONS)
        assert len(limiter) == 1

    def test_counts_are_shared_through_the_cache(self, clock):
        cache = LocMemCache(f"rate-limit-{uuid4()}", {})
        first = RateLimiter(cache=cache, clock=clock)
        second = RateLimiter(cache=cache, clock=clock)
        for _ in range(3):
            first.check("user:a", COUPONS)
        assert not second.check("user:a", COUPONS).allowed

    def test_default_store_is_the_rate_limit_cache(self):
        from django.core.cache import caches

        assert RateLimiter().cache is caches["rate_limit"]


class TestConfig:
    def test_named_defaults(self):
        config = get_rate_limit_config("coupon_validation")
        assert (config.max_requests, config.window_seconds) == (5, 60)

    def test_settings_override(self, settings):
        settings.RATE_LIMITS = {"order_creation": {"max_requests": 2, "window_seconds": 60}}
        config = get_rate_limit_config("order_creation")
        assert config.max_requests == 2
        assert config.window_seconds == 60

    def test_unknown_operation(self, settings):
        settings.RATE_LIMITS = {}
        with pytest.raises(KeyError):
            get_rate_limit_config("bulk_export")


class TestIdentifier:
    def _request(self, meta=None, user=None):
        return SimpleNamespace(META=meta or {}, user=user)

    def test_first_forwarded_hop_wins(self):
        request = self._request({"HTTP_X_FORWARDED_FOR": "203.0.113.7, 10.0.0.1"})
        assert get_client_ip(request) == "203.0.113.7"

    def test_real_ip_fallback(self):
        assert get_client_ip(self._request({"HTTP_X_REAL_IP": "198.51.100.2"})) == "198.51.100.2"

    def test_unknown_when_no_headers(self):
        assert get_client_ip(self._request()) == "unknown"

    def test_authenticated_profile_preferred(self):
        user = SimpleNamespace(is_authenticated=True, pk=7, profile=SimpleNamespace(id="p-1"))
        request = self._request({"HTTP_X_REAL_IP": "198.51.100.2"}, user=user)
        assert get_rate_limit_identifier(request) == "user:p-1"

    def test_anonymous_uses_ip(self):
        user = SimpleNamespace(is_authenticated=False)
        request = self._request({"HTTP_X_REAL_IP": "198.51.100.2"}, user=user)
        assert get_rate_limit_identifier(request) == "ip:198.51.100.2"
