"""Checkout input serializers.

Field names follow the storefront client (``couponCode``,
``orderSubtotal``, ``orderData``, ``razorpay_*``).  Each serializer
exposes ``to_dto`` so views hand typed DTOs to the service layer.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.checkout.dtos import CheckoutOrderDTO
from modules.core import validation
from modules.orders.dtos import CreateOrderItemDTO, ShippingAddressDTO

MAX_ITEMS_PER_ORDER = 50
MAX_ITEM_QUANTITY = 100
NOTES_MAX_LENGTH = 500


def _raise_unless_valid(result) -> object:
    if not result.is_valid:
        raise serializers.ValidationError(result.error)
    return result.sanitized


class CheckoutItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    product_name = serializers.CharField(max_length=200)
    product_image = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    variant_id = serializers.UUIDField(required=False, allow_null=True)
    variant_name = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    quantity = serializers.IntegerField(min_value=1, max_value=MAX_ITEM_QUANTITY)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=Decimal("0"))

    def validate_product_name(self, value: str) -> str:
        return _raise_unless_valid(validation.sanitize_text(value, max_length=200))


class CheckoutOrderSerializer(serializers.Serializer):
    items = CheckoutItemSerializer(many=True, allow_empty=False, max_length=MAX_ITEMS_PER_ORDER)
    shipping_address = serializers.JSONField()
    payment_method = serializers.CharField()
    coupon_code = serializers.CharField(required=False, allow_blank=True, allow_null=True)
    total = serializers.DecimalField(
        max_digits=12, decimal_places=2, required=False, allow_null=True
    )
    notes = serializers.CharField(required=False, allow_blank=True, default="")

    def validate_shipping_address(self, value):
        return _raise_unless_valid(validation.validate_shipping_address(value))

    def validate_payment_method(self, value: str) -> str:
        return _raise_unless_valid(validation.validate_payment_method(value))

    def validate_coupon_code(self, value):
        if not value:
            return None
        return _raise_unless_valid(validation.validate_coupon_code(value))

    def validate_notes(self, value: str) -> str:
        if not value:
            return ""
        return _raise_unless_valid(validation.sanitize_text(value, max_length=NOTES_MAX_LENGTH))

    def to_dto(self) -> CheckoutOrderDTO:
        return to_checkout_order(self.validated_data)


def to_checkout_order(data) -> CheckoutOrderDTO:
    """Build the DTO from validated ``CheckoutOrderSerializer`` data."""
    return CheckoutOrderDTO(
        items=[
            CreateOrderItemDTO(
                product_id=item["product_id"],
                product_name=item["product_name"],
                product_image=item.get("product_image") or None,
                variant_id=item.get("variant_id"),
                variant_name=item.get("variant_name") or None,
                quantity=item["quantity"],
                price=item["price"],
                subtotal=item["price"] * item["quantity"],
            )
            for item in data["items"]
        ],
        shipping_address=ShippingAddressDTO(**data["shipping_address"]),
        payment_method=data["payment_method"],
        coupon_code=data.get("coupon_code"),
        total=data.get("total"),
        notes=data.get("notes", ""),
    )


class ValidateCouponSerializer(serializers.Serializer):
    couponCode = serializers.CharField(allow_blank=True)
    orderSubtotal = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0")
    )

    def validate_couponCode(self, value: str) -> str:
        return _raise_unless_valid(validation.validate_coupon_code(value))


class CreatePaymentSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    currency = serializers.CharField(required=False, default="INR", max_length=3)
    paymentMethod = serializers.CharField()
    orderDetails = serializers.DictField(required=False, default=dict)

    def validate_amount(self, value: Decimal) -> Decimal:
        if value <= 0:
            raise serializers.ValidationError("Amount must be a positive number")
        return value

    def validate_currency(self, value: str) -> str:
        return value.strip().upper()

    def validate_paymentMethod(self, value: str) -> str:
        return _raise_unless_valid(validation.validate_payment_method(value))


class VerifyPaymentSerializer(serializers.Serializer):
    razorpay_payment_id = serializers.CharField(max_length=100)
    razorpay_order_id = serializers.CharField(max_length=100)
    razorpay_signature = serializers.CharField(max_length=256)
    orderData = CheckoutOrderSerializer()

    def to_dto(self) -> CheckoutOrderDTO:
        return to_checkout_order(self.validated_data["orderData"])


class PlaceCodOrderSerializer(serializers.Serializer):
    orderData = CheckoutOrderSerializer()

    def validate_orderData(self, value):
        if value["payment_method"] != "cod":
            raise serializers.ValidationError("Payment method must be cod")
        return value

    def to_dto(self) -> CheckoutOrderDTO:
        return to_checkout_order(self.validated_data["orderData"])
