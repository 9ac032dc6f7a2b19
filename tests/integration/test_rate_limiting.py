"""Named-operation rate limits on the HTTP endpoints."""

import pytest
from rest_framework.test import APIClient

from conftest import make_profile

pytestmark = pytest.mark.integration

COUPON_URL = "/api/checkout/validate-coupon"
BODY = {"couponCode": "NOPE10", "orderSubtotal": "1000"}


def _exhaust(client, times=5):
    return [client.post(COUPON_URL, BODY, format="json").status_code for _ in range(times)]


class TestCouponValidationLimit:
    def test_sixth_request_in_window_is_rejected(self, api_client):
        assert _exhaust(api_client) == [400] * 5

        response = api_client.post(COUPON_URL, BODY, format="json")

        assert response.status_code == 429
        assert response.json()["error"].startswith("Too many requests")
        assert response["X-RateLimit-Limit"] == "5"
        assert response["X-RateLimit-Remaining"] == "0"
        assert 1 <= int(response["Retry-After"]) <= 60
        assert int(response["X-RateLimit-Reset"]) > 0

    def test_authenticated_callers_have_separate_buckets(self, customer_client):
        _exhaust(customer_client)
        assert customer_client.post(COUPON_URL, BODY, format="json").status_code == 429

        other = APIClient()
        other.force_authenticate(user=make_profile("arjun").user)
        assert other.post(COUPON_URL, BODY, format="json").status_code == 400

    def test_operations_are_counted_separately(self, api_client, delivery_settings):
        _exhaust(api_client)
        response = api_client.get(
            "/api/checkout/calculate-delivery", {"pincode": "12", "orderSubtotal": "1"}
        )
        assert response.status_code == 400

    def test_override_from_settings(self, api_client, settings):
        settings.RATE_LIMITS = {"coupon_validation": {"max_requests": 2, "window_seconds": 60}}
        assert _exhaust(api_client, times=2) == [400, 400]
        response = api_client.post(COUPON_URL, BODY, format="json")
        assert response.status_code == 429
        assert response["X-RateLimit-Limit"] == "2"

    def test_unscoped_endpoint_is_not_limited(self, api_client):
        codes = {api_client.get("/api/checkout/coupons").status_code for _ in range(30)}
        assert codes == {200}
