import itertools
from decimal import Decimal
from uuid import uuid4

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache, caches
from rest_framework.test import APIClient

from modules.accounts.constants import ProfileRole
from modules.accounts.models import Profile
from modules.core.rate_limit import default_rate_limiter
from modules.delivery.models import DeliverySettings
from modules.notifications.services import get_notification_service
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO, ShippingAddressDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.gateways import get_payment_gateway_factory

User = get_user_model()


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Limiter counters, cached lookups and gateway/notification singletons."""
    default_rate_limiter.clear()
    cache.clear()
    caches["rate_limit"].clear()
    get_payment_gateway_factory.cache_clear()
    get_notification_service.cache_clear()
    yield
    default_rate_limiter.clear()
    cache.clear()
    caches["rate_limit"].clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


def make_profile(username: str, role: str = ProfileRole.CUSTOMER, **extra) -> Profile:
    user = User.objects.create_user(
        username=username, password="testpass123", email=f"{username}@example.com"
    )
    defaults = {
        "full_name": username.title(),
        "email": f"{username}@example.com",
        "phone": "9876543210",
    }
    defaults.update(extra)
    return Profile.objects.create(user=user, role=role, **defaults)


@pytest.fixture()
def customer_profile():
    return make_profile("priya")


@pytest.fixture()
def admin_profile():
    return make_profile("storeadmin", role=ProfileRole.ADMIN)


@pytest.fixture()
def customer_client(customer_profile):
    client = APIClient()
    client.force_authenticate(user=customer_profile.user)
    return client


@pytest.fixture()
def admin_client(admin_profile):
    client = APIClient()
    client.force_authenticate(user=admin_profile.user)
    return client


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


@pytest.fixture()
def delivery_settings():
    return DeliverySettings.objects.create(
        business_pincode="400001",
        business_city="Mumbai",
        business_state="Maharashtra",
        business_latitude=18.9388,
        business_longitude=72.8354,
        local_delivery_charge=Decimal("40.00"),
        city_delivery_charge=Decimal("60.00"),
        state_delivery_charge=Decimal("80.00"),
        national_delivery_charge=Decimal("100.00"),
        free_shipping_threshold=Decimal("50000.00"),
        free_shipping_enabled=False,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------


SHIPPING_ADDRESS = {
    "name": "Priya Sharma",
    "phone": "9876543210",
    "street": "12 MG Road",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560001",
}


PAID = object()


@pytest.fixture()
def make_order(customer_profile):
    """Persist an order through the service; defaults to a paid razorpay order.

    Paid orders get ``pay_test_1``, ``pay_test_2``, ... unless *payment_id*
    is given; ``payment_id=None`` makes a COD order.
    """
    service = OrderService(order_repository=OrderDjangoRepository())
    payment_ids = itertools.count(1)

    def _make(customer=None, price="2500.00", quantity=2, payment_id=PAID, product_id=None):
        if payment_id is PAID:
            payment_id = f"pay_test_{next(payment_ids)}"
        price = Decimal(price)
        subtotal = price * quantity
        return service.create_order(
            CreateOrderDTO(
                customer_id=(customer or customer_profile).id,
                items=[
                    CreateOrderItemDTO(
                        product_id=product_id or uuid4(),
                        product_name="Temple Gold Bangle",
                        quantity=quantity,
                        price=price,
                        subtotal=subtotal,
                    )
                ],
                subtotal=subtotal,
                total=subtotal,
                shipping_address=ShippingAddressDTO(**SHIPPING_ADDRESS),
                payment_method=PaymentMethod.RAZORPAY if payment_id else PaymentMethod.COD,
                payment_id=payment_id,
                gateway_order_id="order_test_1" if payment_id else None,
            )
        )

    return _make
