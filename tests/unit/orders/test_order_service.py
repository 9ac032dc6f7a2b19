"""Unit tests for OrderService with mocked dependencies."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from unittest.mock import MagicMock
from uuid import UUID, uuid4

import pytest
from pydantic import ValidationError

from modules.orders.constants import (
    CANCELLABLE_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.dtos import (
    CancelOrderDTO,
    CreateOrderDTO,
    CreateOrderItemDTO,
    ShippingAddressDTO,
    UpdateOrderStatusDTO,
    UpdateTrackingDTO,
)
from modules.orders.exceptions import (
    InvalidTransition,
    MoneyInvariantViolation,
    OrderConflict,
    OrderNotCancellable,
    OrderNotFound,
)
from modules.orders.models import Order
from modules.orders.services import OrderService, retry_on_conflict, verify_order_amounts

pytestmark = pytest.mark.unit


@dataclass
class StubOrder:
    status: str = OrderStatus.PENDING
    version: int = 1
    payment_status: str = PaymentStatus.PENDING
    order_number: str = "ORD-2026-000001"
    id: UUID = field(default_factory=uuid4)

    @property
    def is_cancellable(self) -> bool:
        return self.status in CANCELLABLE_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())


ADDRESS = ShippingAddressDTO(
    name="Priya Sharma",
    phone="9876543210",
    street="12 MG Road",
    city="Bengaluru",
    state="Karnataka",
    pincode="560001",
)


def _item(price="5500.00", quantity=2, subtotal=None) -> CreateOrderItemDTO:
    price = Decimal(price)
    return CreateOrderItemDTO(
        product_id=uuid4(),
        product_name="Kundan Necklace",
        quantity=quantity,
        price=price,
        subtotal=Decimal(subtotal) if subtotal is not None else price * quantity,
    )


def _create_dto(**overrides) -> CreateOrderDTO:
    values = dict(
        customer_id=uuid4(),
        items=[_item()],
        subtotal=Decimal("11000.00"),
        discount=Decimal("1100.00"),
        coupon_code="FESTIVE10",
        delivery_charge=Decimal("100.00"),
        tax=Decimal("1000.00"),
        total=Decimal("11000.00"),
        shipping_address=ADDRESS,
        payment_method=PaymentMethod.RAZORPAY,
        payment_id="pay_1",
        gateway_order_id="order_1",
    )
    values.update(overrides)
    return CreateOrderDTO(**values)


def _call_create_order(service: OrderService, dto: CreateOrderDTO):
    return OrderService.create_order.__wrapped__(service, dto)


def _call_update_status(service: OrderService, dto: UpdateOrderStatusDTO):
    return OrderService.update_order_status.__wrapped__(service, dto)


def _call_update_tracking(service: OrderService, dto: UpdateTrackingDTO):
    return OrderService.update_tracking.__wrapped__(service, dto)


def _call_cancel(service: OrderService, dto: CancelOrderDTO):
    return OrderService.cancel_order.__wrapped__(service, dto)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def repo():
    repo = MagicMock()
    repo.update_if_version.return_value = True
    return repo


@pytest.fixture()
def service(repo):
    return OrderService(order_repository=repo)


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


class TestStateMachine:
    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED),
            (OrderStatus.CONFIRMED, OrderStatus.PROCESSING),
            (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
            (OrderStatus.PENDING, OrderStatus.CANCELLED),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target):
        assert Order(status=current).can_transition_to(target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (OrderStatus.PENDING, OrderStatus.SHIPPED),
            (OrderStatus.CONFIRMED, OrderStatus.DELIVERED),
            (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
            (OrderStatus.SHIPPED, OrderStatus.PENDING),
            (OrderStatus.DELIVERED, OrderStatus.CANCELLED),
            (OrderStatus.CANCELLED, OrderStatus.PENDING),
            (OrderStatus.PENDING, OrderStatus.PENDING),
        ],
    )
    def test_rejected(self, current, target):
        assert not Order(status=current).can_transition_to(target)

    def test_terminal_states(self):
        assert Order(status=OrderStatus.DELIVERED).is_terminal
        assert Order(status=OrderStatus.CANCELLED).is_terminal
        assert not Order(status=OrderStatus.SHIPPED).is_terminal

    def test_cancellable_only_before_processing(self):
        assert Order(status=OrderStatus.CONFIRMED).is_cancellable
        assert not Order(status=OrderStatus.PROCESSING).is_cancellable


# ---------------------------------------------------------------------------
# Money reconciliation
# ---------------------------------------------------------------------------


class TestVerifyOrderAmounts:
    def test_reconciled_order_passes(self):
        verify_order_amounts(_create_dto())

    def test_total_must_reconcile(self):
        with pytest.raises(MoneyInvariantViolation, match="does not reconcile"):
            verify_order_amounts(_create_dto(total=Decimal("10999.00")))

    def test_one_paisa_tolerance(self):
        verify_order_amounts(_create_dto(total=Decimal("11000.01")))

    def test_discount_cannot_exceed_subtotal(self):
        with pytest.raises(MoneyInvariantViolation, match="Discount"):
            verify_order_amounts(
                _create_dto(discount=Decimal("12000.00"), tax=Decimal("0"), total=Decimal("0"))
            )

    def test_negative_amounts(self):
        with pytest.raises(MoneyInvariantViolation, match="tax cannot be negative"):
            verify_order_amounts(_create_dto(tax=Decimal("-1")))

    def test_item_subtotal_must_match(self):
        dto = _create_dto(items=[_item(subtotal="10000.00")])
        with pytest.raises(MoneyInvariantViolation, match="Item subtotal mismatch"):
            verify_order_amounts(dto)

    def test_items_must_add_up(self):
        dto = _create_dto(items=[_item(quantity=1)])
        with pytest.raises(MoneyInvariantViolation, match="does not match its items"):
            verify_order_amounts(dto)


class TestDtos:
    def test_items_required(self):
        with pytest.raises(ValidationError):
            _create_dto(items=[])

    def test_quantity_positive(self):
        with pytest.raises(ValidationError):
            _item(quantity=0)

    def test_dtos_are_frozen(self):
        dto = _create_dto()
        with pytest.raises(ValidationError):
            dto.total = Decimal("1")


# ---------------------------------------------------------------------------
# create_order
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_persists_pending_order_with_items(self, service, repo):
        created = StubOrder()
        repo.create.return_value = created
        repo.get_by_id.return_value = created
        dto = _create_dto()

        result = _call_create_order(service, dto)

        assert result is created
        payload = repo.create.call_args.args[0]
        assert payload["status"] == OrderStatus.PENDING
        assert payload["customer_id"] == dto.customer_id
        assert payload["created_by"] == dto.customer_id
        assert payload["payment_status"] == PaymentStatus.COMPLETED
        assert payload["delivery_pincode"] == "560001"
        assert payload["shipping_address"]["country"] == "India"
        assert "latitude" not in payload["shipping_address"]
        assert payload["items"][0]["price"] == Decimal("5500.00")
        assert "subtotal" not in payload["items"][0]

    def test_cod_order_is_payment_pending(self, service, repo):
        repo.create.return_value = StubOrder()
        repo.get_by_id.return_value = None
        _call_create_order(
            service, _create_dto(payment_method=PaymentMethod.COD, payment_id=None, gateway_order_id=None)
        )
        assert repo.create.call_args.args[0]["payment_status"] == PaymentStatus.PENDING

    def test_mismatch_writes_nothing(self, service, repo):
        with pytest.raises(MoneyInvariantViolation):
            _call_create_order(service, _create_dto(total=Decimal("1.00")))
        repo.create.assert_not_called()


# ---------------------------------------------------------------------------
# update_order_status
# ---------------------------------------------------------------------------


class TestUpdateOrderStatus:
    def _dto(self, order, new_status, **extra):
        return UpdateOrderStatusDTO(order_id=order.id, new_status=new_status, **extra)

    def test_valid_transition_appends_history(self, service, repo):
        order = StubOrder(status=OrderStatus.PENDING, version=3)
        repo.get_by_id.return_value = order
        admin_id = uuid4()

        _call_update_status(
            service, self._dto(order, OrderStatus.CONFIRMED, updated_by=admin_id, notes="Stock checked")
        )

        repo.update_if_version.assert_called_once_with(
            order.id, 3, {"status": OrderStatus.CONFIRMED}
        )
        repo.add_history.assert_called_once_with(
            order_id=order.id,
            status=OrderStatus.CONFIRMED,
            old_status=OrderStatus.PENDING,
            updated_by=admin_id,
            notes="Stock checked",
        )

    def test_tracking_fields_ride_along(self, service, repo):
        order = StubOrder(status=OrderStatus.PROCESSING)
        repo.get_by_id.return_value = order
        _call_update_status(
            service,
            self._dto(order, OrderStatus.SHIPPED, tracking_number="AWB123", courier_name="BlueDart"),
        )
        changes = repo.update_if_version.call_args.args[2]
        assert changes == {
            "status": OrderStatus.SHIPPED,
            "tracking_number": "AWB123",
            "courier_name": "BlueDart",
        }

    def test_invalid_transition(self, service, repo):
        order = StubOrder(status=OrderStatus.PENDING)
        repo.get_by_id.return_value = order
        with pytest.raises(InvalidTransition, match="from pending to shipped"):
            _call_update_status(service, self._dto(order, OrderStatus.SHIPPED))
        repo.update_if_version.assert_not_called()

    def test_stale_expected_version(self, service, repo):
        order = StubOrder(version=4)
        repo.get_by_id.return_value = order
        with pytest.raises(OrderConflict) as excinfo:
            _call_update_status(service, self._dto(order, OrderStatus.CONFIRMED, expected_version=3))
        assert excinfo.value.context["current_version"] == 4
        repo.update_if_version.assert_not_called()

    def test_lost_race_is_a_conflict(self, service, repo):
        order = StubOrder()
        repo.get_by_id.return_value = order
        repo.update_if_version.return_value = False
        with pytest.raises(OrderConflict):
            _call_update_status(service, self._dto(order, OrderStatus.CONFIRMED))
        repo.add_history.assert_not_called()

    def test_missing_order(self, service, repo):
        repo.get_by_id.return_value = None
        with pytest.raises(OrderNotFound):
            _call_update_status(
                service, UpdateOrderStatusDTO(order_id=uuid4(), new_status=OrderStatus.CONFIRMED)
            )

    def test_store_cancel_of_paid_order_requires_refund(self, service, repo):
        order = StubOrder(status=OrderStatus.CONFIRMED, payment_status=PaymentStatus.COMPLETED)
        repo.get_by_id.return_value = order

        _call_update_status(service, self._dto(order, OrderStatus.CANCELLED))

        changes = repo.update_if_version.call_args.args[2]
        assert changes["status"] == OrderStatus.CANCELLED
        assert changes["refund_required"] is True
        assert changes["cancellation_reason"] == "Order cancelled by the store"
        assert changes["cancelled_at"] is not None
        assert repo.add_history.call_args.kwargs["notes"] == "Order cancelled by the store"

    def test_store_cancel_keeps_admin_notes(self, service, repo):
        order = StubOrder(status=OrderStatus.PENDING)
        repo.get_by_id.return_value = order

        _call_update_status(service, self._dto(order, OrderStatus.CANCELLED, notes="Out of stock"))

        changes = repo.update_if_version.call_args.args[2]
        assert changes["cancellation_reason"] == "Out of stock"
        assert changes["refund_required"] is False


class TestUpdateTracking:
    def test_cancelled_order_rejected(self, service, repo):
        order = StubOrder(status=OrderStatus.CANCELLED)
        repo.get_by_id.return_value = order
        with pytest.raises(InvalidTransition):
            _call_update_tracking(
                service, UpdateTrackingDTO(order_id=order.id, tracking_number="AWB1")
            )

    def test_status_is_not_touched(self, service, repo):
        order = StubOrder(status=OrderStatus.SHIPPED, version=5)
        repo.get_by_id.return_value = order
        _call_update_tracking(
            service,
            UpdateTrackingDTO(order_id=order.id, tracking_number="AWB1", tracking_url="https://t.example/AWB1"),
        )
        repo.update_if_version.assert_called_once_with(
            order.id, 5, {"tracking_number": "AWB1", "tracking_url": "https://t.example/AWB1"}
        )
        repo.add_history.assert_not_called()


# ---------------------------------------------------------------------------
# cancel_order
# ---------------------------------------------------------------------------


class TestCancelOrder:
    def test_paid_order_requires_refund(self, service, repo):
        customer_id = uuid4()
        order = StubOrder(status=OrderStatus.CONFIRMED, payment_status=PaymentStatus.COMPLETED)
        repo.get_by_id.return_value = order

        _call_cancel(service, CancelOrderDTO(order_id=order.id, customer_id=customer_id, reason="Changed my mind"))

        repo.get_by_id.assert_any_call(str(order.id), customer_id=customer_id)
        changes = repo.update_if_version.call_args.args[2]
        assert changes["status"] == OrderStatus.CANCELLED
        assert changes["refund_required"] is True
        assert changes["cancellation_reason"] == "Changed my mind"
        assert changes["cancelled_at"] is not None

    def test_cod_order_needs_no_refund(self, service, repo):
        order = StubOrder(status=OrderStatus.PENDING)
        repo.get_by_id.return_value = order
        _call_cancel(service, CancelOrderDTO(order_id=order.id, customer_id=uuid4()))
        changes = repo.update_if_version.call_args.args[2]
        assert changes["refund_required"] is False
        assert changes["cancellation_reason"] == "Order cancelled by customer"

    @pytest.mark.parametrize(
        "status", [OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED]
    )
    def test_not_cancellable_after_confirmation(self, service, repo, status):
        order = StubOrder(status=status)
        repo.get_by_id.return_value = order
        with pytest.raises(OrderNotCancellable, match="contact support"):
            _call_cancel(service, CancelOrderDTO(order_id=order.id, customer_id=uuid4()))
        repo.update_if_version.assert_not_called()

    def test_someone_elses_order_is_not_found(self, service, repo):
        repo.get_by_id.return_value = None
        with pytest.raises(OrderNotFound):
            _call_cancel(service, CancelOrderDTO(order_id=uuid4(), customer_id=uuid4()))


class TestRefundBookkeeping:
    def test_retry_on_conflict_gives_up(self):
        operation = MagicMock(side_effect=OrderConflict("busy"))
        with pytest.raises(OrderConflict):
            retry_on_conflict(operation, attempts=3)
        assert operation.call_count == 3

    def test_retry_on_conflict_recovers(self):
        operation = MagicMock(side_effect=[OrderConflict("busy"), "done"])
        assert retry_on_conflict(operation) == "done"

    def test_record_refund(self, service, repo):
        order = StubOrder(payment_status=PaymentStatus.COMPLETED, version=2)
        repo.get_by_id.return_value = order
        service.record_refund(order.id)
        repo.update_if_version.assert_called_once_with(
            order.id, 2, {"payment_status": PaymentStatus.REFUNDED, "refund_required": False}
        )


class TestQueries:
    def test_get_order_scoped_to_customer(self, service, repo):
        repo.get_by_id.return_value = None
        with pytest.raises(OrderNotFound):
            service.get_order(str(uuid4()), customer_id=uuid4())

    def test_get_order_by_number(self, service, repo):
        order = StubOrder()
        repo.get_by_number.return_value = order
        assert service.get_order_by_number("ORD-2026-000001") is order

    def test_find_by_payment_id(self, service, repo):
        order = StubOrder()
        repo.get_by_payment_id.return_value = order
        assert service.find_by_payment_id("pay_1") is order
        repo.get_by_payment_id.assert_called_once_with("pay_1")

    def test_find_by_idempotency_key_is_scoped_to_customer(self, service, repo):
        customer_id = uuid4()
        repo.get_by_idempotency_key.return_value = None
        assert service.find_by_idempotency_key("cart-1", customer_id) is None
        repo.get_by_idempotency_key.assert_called_once_with("cart-1", customer_id=customer_id)
