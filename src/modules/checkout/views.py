"""Checkout API views.

The storefront drives checkout through these endpoints::

    calculate-delivery -> validate-coupon -> create-payment
        -> verify-payment | place-cod-order

Every amount is recomputed by ``CheckoutService``; the client's figures
are only compared against ours.  ``OrderPlaced`` is published after the
order transaction has committed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID

from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.checkout.dtos import PlacedOrder
from modules.checkout.serializers import (
    CreatePaymentSerializer,
    PlaceCodOrderSerializer,
    ValidateCouponSerializer,
    VerifyPaymentSerializer,
)
from modules.checkout.services import CheckoutService
from modules.core.exceptions import error_response, flatten_detail, validation_error_response
from modules.core.permissions import HasProfile
from modules.core.validation import validate_number, validate_pincode
from modules.coupons.constants import DiscountType
from modules.coupons.exceptions import CouponError
from modules.coupons.repositories.django_repository import CouponDjangoRepository
from modules.coupons.services import CouponService
from modules.delivery.geocoding import NominatimGeocoder
from modules.delivery.repositories.django_repository import DeliverySettingsDjangoRepository
from modules.delivery.serializers import DeliveryEstimateSerializer
from modules.delivery.services import DeliveryService
from modules.orders.constants import IDEMPOTENCY_KEY_MAX_LENGTH
from modules.orders.events import OrderPlaced
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import OrderSummarySerializer
from modules.orders.services import OrderService
from modules.payments.gateways import get_payment_gateway
from shared.domain.errors import DomainError
from shared.infrastructure.bus import event_bus

MAX_ORDER_SUBTOTAL = 10_000_000
ORDER_CREATED_MESSAGE = "Order created successfully"


def build_checkout_service() -> CheckoutService:
    """Wire the checkout collaborators.

    The gateway is resolved here, not at import time, so a missing
    credential surfaces as a ``PaymentConfigError`` on the request.
    """
    return CheckoutService(
        coupon_service=CouponService(coupon_repository=CouponDjangoRepository()),
        delivery_service=_delivery_service(),
        order_service=OrderService(order_repository=OrderDjangoRepository()),
        gateway=get_payment_gateway(),
    )


def _delivery_service() -> DeliveryService:
    return DeliveryService(
        settings_repository=DeliverySettingsDjangoRepository(),
        geocoder=NominatimGeocoder(),
    )


def _customer_id(request: Request) -> Optional[UUID]:
    user = request.user
    if not (user and user.is_authenticated):
        return None
    profile = getattr(user, "profile", None)
    return profile.id if profile is not None else None


def _coupon_description(coupon) -> str:
    if coupon.description:
        return coupon.description
    if coupon.discount_type == DiscountType.PERCENTAGE:
        return f"{coupon.discount_value.normalize():f}% off"
    return f"₹{coupon.discount_value.normalize():f} off"


def _order_created(placed: PlacedOrder) -> Response:
    order = placed.order
    if placed.created:
        event_bus.publish(OrderPlaced(aggregate_id=order.id, order_number=order.order_number))
    return Response(
        {
            "success": True,
            "order": OrderSummarySerializer(order).data,
            "message": ORDER_CREATED_MESSAGE,
        }
    )


class CalculateDeliveryView(APIView):
    """GET|POST /api/checkout/calculate-delivery

    Input (query string or body): ``pincode``, ``orderSubtotal``.
    """

    permission_classes = [AllowAny]
    throttle_scope = "delivery_calculation"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = _delivery_service()

    def get(self, request: Request) -> Response:
        return self._estimate(request.query_params)

    def post(self, request: Request) -> Response:
        if not isinstance(request.data, Mapping):
            return validation_error_response("Request body must be a JSON object")
        return self._estimate(request.data)

    def _estimate(self, params: Mapping[str, Any]) -> Response:
        pincode = validate_pincode(params.get("pincode"))
        if not pincode.is_valid:
            return validation_error_response(pincode.error)
        subtotal = validate_number(
            params.get("orderSubtotal"), "Order subtotal", 0, MAX_ORDER_SUBTOTAL
        )
        if not subtotal.is_valid:
            return validation_error_response(subtotal.error)

        try:
            estimate = self._service.quote(pincode.sanitized, subtotal.sanitized)
        except DomainError as exc:
            return error_response(exc)
        return Response(DeliveryEstimateSerializer(estimate).data)


class ValidateCouponView(APIView):
    """POST /api/checkout/validate-coupon

    Anonymous carts may validate coupons; per-customer limits apply only
    when the caller has a profile.
    """

    permission_classes = [AllowAny]
    throttle_scope = "coupon_validation"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CouponService(coupon_repository=CouponDjangoRepository())

    def post(self, request: Request) -> Response:
        serializer = ValidateCouponSerializer(data=request.data)
        if not serializer.is_valid():
            return validation_error_response(flatten_detail(serializer.errors), valid=False)
        code = serializer.validated_data["couponCode"]
        subtotal: Decimal = serializer.validated_data["orderSubtotal"]

        try:
            applied = self._service.validate_and_apply(code, subtotal, _customer_id(request))
        except CouponError as exc:
            return validation_error_response(exc.message, valid=False, code=exc.code.value)

        return Response(
            {
                "valid": True,
                "discount": applied.discount,
                "couponCode": applied.code,
                "description": _coupon_description(applied),
                "updatedTotal": subtotal - applied.discount,
            }
        )


class ActiveCouponsView(APIView):
    """GET /api/checkout/coupons (currently redeemable promotions)."""

    permission_classes = [AllowAny]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CouponService(coupon_repository=CouponDjangoRepository())

    def get(self, request: Request) -> Response:
        coupons = self._service.get_active_coupons()
        return Response(
            {
                "coupons": [
                    {
                        "code": coupon.code,
                        "description": _coupon_description(coupon),
                        "discountType": coupon.discount_type.value,
                        "discountValue": coupon.discount_value,
                        "minOrderValue": coupon.min_order_value,
                        "maxDiscount": coupon.max_discount,
                    }
                    for coupon in coupons
                ]
            }
        )


class CreatePaymentView(APIView):
    """POST /api/checkout/create-payment"""

    permission_classes = [HasProfile]
    throttle_scope = "payment_creation"

    def post(self, request: Request) -> Response:
        serializer = CreatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            intent = build_checkout_service().create_payment(
                amount=data["amount"],
                payment_method=data["paymentMethod"],
                currency=data["currency"],
                order_details=data["orderDetails"],
            )
        except DomainError as exc:
            return error_response(exc)

        body = {
            "orderId": intent.order_id,
            "amount": intent.amount,
            "currency": intent.currency,
            "keyId": intent.key_id,
            "paymentMethod": intent.payment_method.value,
        }
        if intent.message:
            body["message"] = intent.message
        return Response(body)


class VerifyPaymentView(APIView):
    """POST /api/checkout/verify-payment

    Body: ``razorpay_payment_id``, ``razorpay_order_id``,
    ``razorpay_signature``, ``orderData``.  Nothing is persisted unless
    the signature matches.  Resubmitting a payment that already has an
    order returns that order again.
    """

    permission_classes = [HasProfile]
    throttle_scope = "order_creation"

    def post(self, request: Request) -> Response:
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            placed = build_checkout_service().verify_and_place_order(
                payment_id=data["razorpay_payment_id"],
                gateway_order_id=data["razorpay_order_id"],
                signature=data["razorpay_signature"],
                order=serializer.to_dto(),
                customer_id=request.user.profile.id,
            )
        except DomainError as exc:
            return error_response(exc)
        return _order_created(placed)


class PlaceCodOrderView(APIView):
    """POST /api/checkout/place-cod-order

    An optional ``Idempotency-Key`` header makes a retried submission
    return the order it first created.
    """

    permission_classes = [HasProfile]
    throttle_scope = "order_creation"

    def post(self, request: Request) -> Response:
        serializer = PlaceCodOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        idempotency_key = (request.headers.get("Idempotency-Key") or "").strip() or None
        if idempotency_key and len(idempotency_key) > IDEMPOTENCY_KEY_MAX_LENGTH:
            return validation_error_response(
                f"Idempotency-Key must be at most {IDEMPOTENCY_KEY_MAX_LENGTH} characters"
            )

        try:
            placed = build_checkout_service().place_cod_order(
                serializer.to_dto(),
                customer_id=request.user.profile.id,
                idempotency_key=idempotency_key,
            )
        except DomainError as exc:
            return error_response(exc)
        return _order_created(placed)
