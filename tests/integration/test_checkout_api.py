"""End-to-end checkout through the HTTP stack.

The sandbox gateway signs payments in-process and the geocoder is
patched, so nothing leaves the test process.
"""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.core import mail
from django.utils import timezone

from modules.coupons.constants import DiscountType
from modules.coupons.models import Coupon, CouponUsage
from modules.delivery.exceptions import GeocodingError
from modules.delivery.geocoding import NominatimGeocoder, PincodeLocation
from modules.notifications.constants import NotificationStatus, NotificationType
from modules.notifications.mailers import DjangoMailSender
from modules.notifications.models import NotificationLog
from modules.orders.constants import OrderStatus, PaymentStatus
from modules.orders.models import Order
from modules.payments.constants import RefundStatus
from modules.payments.gateways import get_payment_gateway
from modules.payments.models import RejectedPayment

pytestmark = pytest.mark.integration

ADDRESS = {
    "name": "Priya Sharma",
    "phone": "9876543210",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


def _order_data(payment_method="razorpay", coupon_code="FESTIVE10", total="11000.00"):
    # 2 x 5500 - 10% + 100 delivery, then 10% tax: 11000.00
    return {
        "items": [
            {
                "product_id": str(uuid4()),
                "product_name": "Polki Earrings",
                "quantity": 2,
                "price": "5500.00",
            }
        ],
        "shipping_address": ADDRESS,
        "payment_method": payment_method,
        "coupon_code": coupon_code,
        "total": total,
    }


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def geocoder_down():
    with patch.object(
        NominatimGeocoder, "resolve", side_effect=GeocodingError("Pincode lookup failed")
    ) as resolve:
        yield resolve


@pytest.fixture()
def festive_coupon():
    return Coupon.objects.create(
        code="FESTIVE10",
        description="Festive offer",
        discount_type=DiscountType.PERCENTAGE,
        discount_value=Decimal("10"),
        valid_until=timezone.now() + timedelta(days=30),
    )


@pytest.fixture()
def paid_checkout(customer_client, delivery_settings, festive_coupon):
    """Create a gateway order and return a signed verify-payment body."""
    response = customer_client.post(
        "/api/checkout/create-payment",
        {"amount": "11000.00", "paymentMethod": "razorpay"},
        format="json",
    )
    assert response.status_code == 200
    gateway_order_id = response.json()["orderId"]
    payment_id = "pay_e2e_1"
    return {
        "razorpay_payment_id": payment_id,
        "razorpay_order_id": gateway_order_id,
        "razorpay_signature": get_payment_gateway().sign(gateway_order_id, payment_id),
        "orderData": _order_data(),
    }


# ---------------------------------------------------------------------------
# Delivery and coupon previews
# ---------------------------------------------------------------------------


class TestCalculateDelivery:
    def test_lookup_failure_uses_standard_charge(self, api_client, delivery_settings):
        response = api_client.get(
            "/api/checkout/calculate-delivery", {"pincode": "560001", "orderSubtotal": "11000"}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["deliveryCharge"] == 100.0
        assert body["zone"] == "standard"
        assert body["isStandardCharge"] is True
        assert body["isFreeShipping"] is False

    def test_resolved_pincode_is_zoned(self, api_client, delivery_settings, geocoder_down):
        geocoder_down.side_effect = None
        geocoder_down.return_value = PincodeLocation(
            pincode="400050", city="Mumbai", state="Maharashtra", latitude=19.0596, longitude=72.8295
        )
        response = api_client.post(
            "/api/checkout/calculate-delivery",
            {"pincode": "400050", "orderSubtotal": 2500},
            format="json",
        )
        assert response.status_code == 200
        assert response.json()["zone"] == "city"
        assert response.json()["deliveryCharge"] == 60.0

    def test_free_shipping_skips_lookup(self, api_client, delivery_settings, geocoder_down):
        delivery_settings.free_shipping_enabled = True
        delivery_settings.save()
        response = api_client.get(
            "/api/checkout/calculate-delivery", {"pincode": "560001", "orderSubtotal": "60000"}
        )
        assert response.json()["isFreeShipping"] is True
        assert response.json()["deliveryCharge"] == 0.0
        geocoder_down.assert_not_called()

    @pytest.mark.parametrize("pincode", ["", "12345", "012345", "abcdef"])
    def test_invalid_pincode(self, api_client, delivery_settings, pincode):
        response = api_client.get(
            "/api/checkout/calculate-delivery", {"pincode": pincode, "orderSubtotal": "100"}
        )
        assert response.status_code == 400
        assert "error" in response.json()

    def test_missing_settings_is_server_error(self, api_client):
        response = api_client.get(
            "/api/checkout/calculate-delivery", {"pincode": "560001", "orderSubtotal": "100"}
        )
        assert response.status_code == 500
        assert response.json()["kind"] == "config_error"


class TestValidateCoupon:
    def test_valid_coupon(self, api_client, festive_coupon):
        response = api_client.post(
            "/api/checkout/validate-coupon",
            {"couponCode": "festive10", "orderSubtotal": "11000.00"},
            format="json",
        )
        assert response.status_code == 200
        body = response.json()
        assert body["valid"] is True
        assert body["couponCode"] == "FESTIVE10"
        assert body["discount"] == 1100.0
        assert body["updatedTotal"] == 9900.0
        assert body["description"] == "Festive offer"

    def test_unknown_coupon(self, api_client):
        response = api_client.post(
            "/api/checkout/validate-coupon",
            {"couponCode": "NOPE10", "orderSubtotal": "1000"},
            format="json",
        )
        assert response.status_code == 400
        assert response.json()["valid"] is False
        assert response.json()["code"] == "not_found"

    def test_expired_coupon(self, api_client, festive_coupon):
        festive_coupon.valid_until = timezone.now() - timedelta(minutes=1)
        festive_coupon.save()
        response = api_client.post(
            "/api/checkout/validate-coupon",
            {"couponCode": "FESTIVE10", "orderSubtotal": "1000"},
            format="json",
        )
        assert response.json()["code"] == "expired"

    def test_malformed_body(self, api_client):
        response = api_client.post(
            "/api/checkout/validate-coupon", {"couponCode": "!!"}, format="json"
        )
        assert response.status_code == 400
        assert response.json()["valid"] is False

    def test_active_coupons_listing(self, api_client, festive_coupon):
        response = api_client.get("/api/checkout/coupons")
        assert [c["code"] for c in response.json()["coupons"]] == ["FESTIVE10"]


# ---------------------------------------------------------------------------
# Payment creation
# ---------------------------------------------------------------------------


class TestCreatePayment:
    def test_requires_authentication(self, api_client):
        response = api_client.post(
            "/api/checkout/create-payment", {"amount": "100", "paymentMethod": "razorpay"}, format="json"
        )
        assert response.status_code == 401

    def test_gateway_order(self, customer_client):
        response = customer_client.post(
            "/api/checkout/create-payment",
            {"amount": "2500.50", "paymentMethod": "razorpay", "orderDetails": {"items": 1}},
            format="json",
        )
        body = response.json()
        assert body["orderId"].startswith("order_sandbox_")
        assert body["keyId"] == "sandbox"
        assert body["currency"] == "INR"

    def test_cod_needs_no_gateway_order(self, customer_client):
        response = customer_client.post(
            "/api/checkout/create-payment", {"amount": "2500", "paymentMethod": "cod"}, format="json"
        )
        assert response.json()["orderId"] is None
        assert response.json()["message"] == "Cash on Delivery selected"

    def test_non_positive_amount(self, customer_client):
        response = customer_client.post(
            "/api/checkout/create-payment", {"amount": "0", "paymentMethod": "razorpay"}, format="json"
        )
        assert response.status_code == 400


# ---------------------------------------------------------------------------
# Order placement
# ---------------------------------------------------------------------------


class TestVerifyPayment:
    def test_verified_payment_places_order(
        self,
        customer_client,
        customer_profile,
        paid_checkout,
        festive_coupon,
        django_capture_on_commit_callbacks,
    ):
        with django_capture_on_commit_callbacks(execute=True):
            response = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["order"]["order_number"].startswith("ORD-")
        assert body["order"]["status"] == OrderStatus.PENDING

        order = Order.objects.get(id=body["order"]["id"])
        assert order.customer_id == customer_profile.id
        assert order.total == Decimal("11000.00")
        assert order.discount == Decimal("1100.00")
        assert order.delivery_charge == Decimal("100.00")
        assert order.tax == Decimal("1000.00")
        assert order.payment_status == PaymentStatus.COMPLETED
        assert order.payment_id == "pay_e2e_1"
        assert order.items.count() == 1

        festive_coupon.refresh_from_db()
        assert festive_coupon.usage_count == 1
        assert CouponUsage.objects.filter(coupon=festive_coupon, order=order).exists()
        assert any(m.subject == f"Order Confirmation - {order.order_number}" for m in mail.outbox)

    def test_forged_signature_persists_nothing(self, customer_client, paid_checkout, festive_coupon):
        paid_checkout["razorpay_signature"] = "0" * 64
        response = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")

        assert response.status_code == 400
        assert response.json()["kind"] == "payment_verification_failed"
        assert Order.objects.count() == 0
        assert RejectedPayment.objects.count() == 0
        festive_coupon.refresh_from_db()
        assert festive_coupon.usage_count == 0

    def test_stale_total_is_rejected(self, customer_client, paid_checkout):
        paid_checkout["orderData"]["total"] = "10500.00"
        response = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")

        assert response.status_code == 400
        assert response.json()["kind"] == "invariant_violation"
        assert Order.objects.count() == 0
        assert RejectedPayment.objects.filter(payment_id="pay_e2e_1").exists()

    def test_replayed_payment_returns_the_same_order(
        self, customer_client, paid_checkout, festive_coupon, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True):
            first = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")
            second = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")

        assert first.status_code == second.status_code == 200
        assert second.json()["order"]["id"] == first.json()["order"]["id"]
        assert Order.objects.count() == 1
        festive_coupon.refresh_from_db()
        assert festive_coupon.usage_count == 1
        assert CouponUsage.objects.filter(coupon=festive_coupon).count() == 1
        confirmations = [m for m in mail.outbox if m.subject.startswith("Order Confirmation")]
        assert len(confirmations) == 1

    def test_underpaid_payment_is_refunded(
        self, customer_client, delivery_settings, festive_coupon, django_capture_on_commit_callbacks
    ):
        gateway = get_payment_gateway()
        gateway_order_id = customer_client.post(
            "/api/checkout/create-payment",
            {"amount": "1.00", "paymentMethod": "razorpay"},
            format="json",
        ).json()["orderId"]
        body = {
            "razorpay_payment_id": "pay_cheap_1",
            "razorpay_order_id": gateway_order_id,
            "razorpay_signature": gateway.sign(gateway_order_id, "pay_cheap_1"),
            "orderData": _order_data(),
        }

        with django_capture_on_commit_callbacks(execute=True):
            response = customer_client.post("/api/checkout/verify-payment", body, format="json")

        assert response.status_code == 400
        assert response.json()["kind"] == "invariant_violation"
        assert Order.objects.count() == 0
        festive_coupon.refresh_from_db()
        assert festive_coupon.usage_count == 0

        rejection = RejectedPayment.objects.get(payment_id="pay_cheap_1")
        assert rejection.amount == Decimal("1.00")
        assert rejection.refund_status == RefundStatus.REFUNDED
        assert rejection.refund_id.startswith("rfnd_sandbox_")
        assert gateway.get_payment_details("pay_cheap_1").status == "refunded"

    def test_coupon_expiring_after_payment_refunds_it(
        self, customer_client, paid_checkout, festive_coupon, django_capture_on_commit_callbacks
    ):
        festive_coupon.valid_until = timezone.now() - timedelta(minutes=1)
        festive_coupon.save()

        with django_capture_on_commit_callbacks(execute=True):
            response = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")

        assert response.status_code == 400
        assert Order.objects.count() == 0
        rejection = RejectedPayment.objects.get(payment_id="pay_e2e_1")
        assert rejection.refund_status == RefundStatus.REFUNDED

        retry = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")
        assert retry.status_code == 409
        assert retry.json()["kind"] == "conflict"
        assert RejectedPayment.objects.count() == 1

    def test_mail_outage_does_not_fail_checkout(
        self, customer_client, paid_checkout, django_capture_on_commit_callbacks
    ):
        with patch.object(DjangoMailSender, "send", side_effect=ConnectionError("SMTP down")):
            with django_capture_on_commit_callbacks(execute=True):
                response = customer_client.post(
                    "/api/checkout/verify-payment", paid_checkout, format="json"
                )

        assert response.status_code == 200
        confirmation = NotificationLog.objects.get(
            notification_type=NotificationType.ORDER_CONFIRMATION
        )
        assert confirmation.status == NotificationStatus.FAILED
        assert confirmation.retry_count == 3
        assert confirmation.error_message == "SMTP down"

    def test_confirmation_waits_for_commit(self, customer_client, paid_checkout):
        response = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")

        assert response.status_code == 200
        confirmation = NotificationLog.objects.get(
            notification_type=NotificationType.ORDER_CONFIRMATION
        )
        assert confirmation.status == NotificationStatus.PENDING
        assert mail.outbox == []

    def test_invalid_shipping_address(self, customer_client, paid_checkout):
        paid_checkout["orderData"]["shipping_address"] = {**ADDRESS, "phone": "12345"}
        response = customer_client.post("/api/checkout/verify-payment", paid_checkout, format="json")
        assert response.status_code == 400
        assert "error" in response.json()


class TestPlaceCodOrder:
    def test_cod_order(self, customer_client, delivery_settings):
        # 2 x 5500 + 100 delivery, then 10% tax
        body = {"orderData": _order_data(payment_method="cod", coupon_code=None, total="12210.00")}
        response = customer_client.post("/api/checkout/place-cod-order", body, format="json")

        assert response.status_code == 200
        order = Order.objects.get(id=response.json()["order"]["id"])
        assert order.payment_method == "cod"
        assert order.payment_status == PaymentStatus.PENDING
        assert order.payment_id is None

    def test_rejects_prepaid_method(self, customer_client, delivery_settings):
        response = customer_client.post(
            "/api/checkout/place-cod-order", {"orderData": _order_data()}, format="json"
        )
        assert response.status_code == 400
        assert Order.objects.count() == 0

    def test_user_without_profile(self, api_client, django_user_model, delivery_settings):
        user = django_user_model.objects.create_user(username="noprofile", password="x")
        api_client.force_authenticate(user=user)
        body = {"orderData": _order_data(payment_method="cod", coupon_code=None, total=None)}
        response = api_client.post("/api/checkout/place-cod-order", body, format="json")
        assert response.status_code == 403

    def test_idempotency_key_replay_returns_the_same_order(self, customer_client, delivery_settings):
        body = {"orderData": _order_data(payment_method="cod", coupon_code=None, total="12210.00")}

        first = customer_client.post(
            "/api/checkout/place-cod-order", body, format="json", HTTP_IDEMPOTENCY_KEY="cart-7f3a"
        )
        second = customer_client.post(
            "/api/checkout/place-cod-order", body, format="json", HTTP_IDEMPOTENCY_KEY="cart-7f3a"
        )

        assert first.status_code == second.status_code == 200
        assert second.json()["order"]["id"] == first.json()["order"]["id"]
        assert Order.objects.get().idempotency_key == "cart-7f3a"

    def test_without_idempotency_key_each_submission_is_an_order(self, customer_client, delivery_settings):
        body = {"orderData": _order_data(payment_method="cod", coupon_code=None, total="12210.00")}
        customer_client.post("/api/checkout/place-cod-order", body, format="json")
        customer_client.post("/api/checkout/place-cod-order", body, format="json")
        assert Order.objects.count() == 2

    def test_oversized_idempotency_key(self, customer_client, delivery_settings):
        body = {"orderData": _order_data(payment_method="cod", coupon_code=None, total="12210.00")}
        response = customer_client.post(
            "/api/checkout/place-cod-order", body, format="json", HTTP_IDEMPOTENCY_KEY="k" * 256
        )
        assert response.status_code == 400
        assert Order.objects.count() == 0
