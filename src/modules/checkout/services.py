"""Checkout orchestration.

Sequences the collaborators for one checkout::

    price (coupon + delivery + tax) -> create payment -> verify payment
        -> create order -> consume coupon

Pricing is always recomputed on the server.  The coupon is validated
again at order time, so a coupon that expired or ran out between the
cart page and payment is caught here.  Coupon consumption happens after
the order transaction has committed and never fails the checkout.

Placement is idempotent.  A payment id that already has an order, or a
repeated COD ``Idempotency-Key``, returns the existing order unchanged.
A verified payment whose order cannot be placed is recorded as a
``RejectedPayment`` and refunded in full.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import IntegrityError

from modules.checkout.dtos import CheckoutOrderDTO, PaymentIntentDTO, PlacedOrder, PricingBreakdown
from modules.checkout.exceptions import CheckoutTotalMismatch
from modules.orders.constants import MONEY_TOLERANCE, PaymentMethod
from modules.orders.dtos import CreateOrderDTO
from modules.payments.exceptions import (
    PaymentAlreadyRejected,
    PaymentAmountMismatch,
    PaymentVerificationFailed,
)
from modules.payments.services import RejectedPaymentService
from shared.domain.errors import DomainError, ErrorKind

if TYPE_CHECKING:
    from modules.coupons.services import CouponService
    from modules.delivery.services import DeliveryService
    from modules.orders.models import Order
    from modules.orders.services import OrderService
    from modules.payments.gateways import PaymentGateway

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")
DEFAULT_TAX_RATE = Decimal("0.10")
COD_MESSAGE = "Cash on Delivery selected"

# Failures the customer can retry with the same payment; anything else is refunded.
RETRYABLE_KINDS = {ErrorKind.UPSTREAM_ERROR, ErrorKind.CONFIG_ERROR, ErrorKind.CONFLICT}


def _money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


class CheckoutService:
    def __init__(
        self,
        coupon_service: CouponService,
        delivery_service: DeliveryService,
        order_service: OrderService,
        gateway: PaymentGateway,
        tax_rate: Optional[Decimal] = None,
        rejected_payments: Optional[RejectedPaymentService] = None,
    ) -> None:
        self._coupons = coupon_service
        self._delivery = delivery_service
        self._orders = order_service
        self._gateway = gateway
        if tax_rate is None:
            tax_rate = Decimal(str(getattr(settings, "CHECKOUT_TAX_RATE", DEFAULT_TAX_RATE)))
        self._tax_rate = tax_rate
        self._rejected = rejected_payments or RejectedPaymentService()

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def price(self, order: CheckoutOrderDTO, customer_id: Optional[UUID] = None) -> PricingBreakdown:
        """Price *order* from its items.

        Tax is charged on the discounted subtotal plus delivery.

        Raises:
            CouponError: the coupon no longer applies.
            CheckoutTotalMismatch: the client's total differs from ours.
        """
        subtotal = _money(sum((item.price * item.quantity for item in order.items), Decimal("0")))

        coupon = None
        discount = Decimal("0.00")
        if order.coupon_code:
            coupon = self._coupons.validate_and_apply(order.coupon_code, subtotal, customer_id)
            discount = coupon.discount

        delivery = self._delivery.quote(order.shipping_address.pincode, subtotal)
        taxable = subtotal - discount + delivery.charge
        tax = _money(taxable * self._tax_rate)
        total = _money(taxable + tax)

        if order.total is not None and abs(Decimal(order.total) - total) > MONEY_TOLERANCE:
            logger.warning(
                "checkout.total_mismatch",
                client_total=str(order.total),
                server_total=str(total),
            )
            raise CheckoutTotalMismatch(
                "Order total has changed. Please review your order and try again.",
                expected=str(total),
                received=str(order.total),
            )

        return PricingBreakdown(
            subtotal=subtotal,
            discount=discount,
            coupon=coupon,
            delivery_charge=_money(delivery.charge),
            delivery_zone=delivery.zone,
            is_standard_charge=delivery.is_standard_charge,
            estimated_delivery_date=delivery.estimated_delivery_date,
            tax=tax,
            total=total,
        )

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    def create_payment(
        self,
        amount: Decimal,
        payment_method: str,
        currency: str = "INR",
        order_details: Optional[Dict[str, Any]] = None,
    ) -> PaymentIntentDTO:
        """Open a gateway order for *amount*; COD needs none."""
        if payment_method == PaymentMethod.COD:
            return PaymentIntentDTO(
                order_id=None,
                amount=amount,
                currency=currency,
                payment_method=PaymentMethod.COD,
                message=COD_MESSAGE,
            )

        notes = {str(k): str(v) for k, v in (order_details or {}).items()}
        notes["payment_method"] = payment_method
        payment_order = self._gateway.create_order(amount, currency, {"notes": notes})
        logger.info(
            "checkout.payment_created",
            gateway=self._gateway.name,
            gateway_order_id=payment_order.id,
            amount=str(payment_order.amount),
        )
        return PaymentIntentDTO(
            order_id=payment_order.id,
            amount=payment_order.amount,
            currency=payment_order.currency,
            key_id=self._gateway.public_key,
            payment_method=payment_method,
        )

    # ------------------------------------------------------------------
    # Order placement
    # ------------------------------------------------------------------

    def verify_and_place_order(
        self,
        payment_id: str,
        gateway_order_id: str,
        signature: str,
        order: CheckoutOrderDTO,
        customer_id: UUID,
    ) -> PlacedOrder:
        """Verify the gateway signature and captured amount, then persist the order.

        Replaying a payment that already has an order returns that order
        with ``created=False``.

        Raises:
            PaymentVerificationFailed: the signature does not match.
            PaymentAlreadyRejected: this payment was turned down before.
            PaymentAmountMismatch: the captured amount is not the order total.
        """
        log = logger.bind(
            customer_id=str(customer_id),
            gateway_order_id=gateway_order_id,
            payment_id=payment_id,
        )
        if not self._gateway.verify_payment(payment_id, gateway_order_id, signature):
            log.warning("checkout.payment_verification_failed")
            raise PaymentVerificationFailed("Payment verification failed. Invalid signature.")

        existing = self._orders.find_by_payment_id(payment_id)
        if existing is not None:
            log.info("checkout.payment_replayed", order_id=str(existing.id))
            return PlacedOrder(order=existing, created=False)
        if self._rejected.is_rejected(payment_id):
            raise PaymentAlreadyRejected(
                "This payment could not be used for an order and is being refunded.",
                payment_id=payment_id,
            )

        paid_amount = None
        try:
            pricing = self.price(order, customer_id)
            paid_amount = self._gateway.get_payment_details(payment_id).amount
            if abs(paid_amount - pricing.total) > MONEY_TOLERANCE:
                log.warning(
                    "checkout.payment_amount_mismatch",
                    paid=str(paid_amount),
                    expected=str(pricing.total),
                )
                raise PaymentAmountMismatch(
                    "Paid amount does not match the order total.",
                    expected=str(pricing.total),
                    paid=str(paid_amount),
                )
            return self._place(
                order,
                customer_id,
                pricing,
                payment_id=payment_id,
                gateway_order_id=gateway_order_id,
            )
        except DomainError as exc:
            if exc.kind not in RETRYABLE_KINDS:
                self._rejected.reject(
                    payment_id,
                    gateway_order_id,
                    customer_id,
                    exc.message,
                    amount=paid_amount,
                )
            raise

    def place_cod_order(
        self,
        order: CheckoutOrderDTO,
        customer_id: UUID,
        idempotency_key: Optional[str] = None,
    ) -> PlacedOrder:
        """Persist a cash-on-delivery order.

        A repeated *idempotency_key* from the same customer returns the
        order it first created.
        """
        if idempotency_key:
            existing = self._orders.find_by_idempotency_key(idempotency_key, customer_id)
            if existing is not None:
                logger.info("order.idempotency_hit", order_id=str(existing.id))
                return PlacedOrder(order=existing, created=False)
        pricing = self.price(order, customer_id)
        return self._place(order, customer_id, pricing, idempotency_key=idempotency_key)

    def _place(
        self,
        order: CheckoutOrderDTO,
        customer_id: UUID,
        pricing: PricingBreakdown,
        payment_id: Optional[str] = None,
        gateway_order_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> PlacedOrder:
        try:
            created = self._orders.create_order(
                CreateOrderDTO(
                    customer_id=customer_id,
                    items=order.items,
                    subtotal=pricing.subtotal,
                    discount=pricing.discount,
                    coupon_code=pricing.coupon.code if pricing.coupon else None,
                    delivery_charge=pricing.delivery_charge,
                    tax=pricing.tax,
                    total=pricing.total,
                    shipping_address=order.shipping_address,
                    payment_method=order.payment_method,
                    payment_id=payment_id,
                    gateway_order_id=gateway_order_id,
                    idempotency_key=idempotency_key,
                    estimated_delivery_date=pricing.estimated_delivery_date,
                    notes=order.notes,
                )
            )
        except IntegrityError:
            # A concurrent request for the same payment or key won the insert.
            existing = None
            if payment_id:
                existing = self._orders.find_by_payment_id(payment_id)
            elif idempotency_key:
                existing = self._orders.find_by_idempotency_key(idempotency_key, customer_id)
            if existing is None:
                raise
            logger.info("checkout.duplicate_placement", order_id=str(existing.id))
            return PlacedOrder(order=existing, created=False)

        if pricing.coupon is not None:
            self._coupons.increment_usage_count(pricing.coupon.code, customer_id, created.id)

        logger.info(
            "checkout.order_placed",
            order_id=str(created.id),
            order_number=created.order_number,
            payment_method=order.payment_method,
            total=str(created.total),
        )
        return PlacedOrder(order=created)
