"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).  Business
logic lives in the Service Layer, which receives Pydantic DTOs from
``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class UpdateOrderStatusSerializer(serializers.Serializer):
    new_status = serializers.CharField()
    notes = serializers.CharField(required=False, allow_blank=True, default="")
    tracking_number = serializers.CharField(required=False, allow_blank=True, default="")
    tracking_url = serializers.CharField(required=False, allow_blank=True, default="")
    courier_name = serializers.CharField(required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, min_value=1, allow_null=True)


class UpdateTrackingSerializer(serializers.Serializer):
    tracking_number = serializers.CharField(required=False, allow_blank=True, default="")
    tracking_url = serializers.CharField(required=False, allow_blank=True, default="")
    courier_name = serializers.CharField(required=False, allow_blank=True, default="")
    expected_version = serializers.IntegerField(required=False, min_value=1, allow_null=True)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_image",
            "variant_id",
            "variant_name",
            "quantity",
            "price",
            "subtotal",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    timestamp = serializers.DateTimeField(source="created_at", read_only=True)

    class Meta:
        model = OrderStatusHistory
        fields = ["id", "old_status", "status", "updated_by_id", "notes", "timestamp"]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "status",
            "version",
            "subtotal",
            "discount",
            "coupon_code",
            "delivery_charge",
            "tax",
            "total",
            "shipping_address",
            "delivery_pincode",
            "estimated_delivery_date",
            "payment_method",
            "payment_status",
            "payment_id",
            "refund_required",
            "tracking_number",
            "tracking_url",
            "courier_name",
            "cancelled_at",
            "cancellation_reason",
            "notes",
            "created_at",
            "updated_at",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order lists (no nested relations)."""

    customer_name = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "customer_name",
            "status",
            "payment_method",
            "payment_status",
            "total",
            "version",
            "created_at",
        ]
        read_only_fields = fields

    def get_customer_name(self, obj: Order) -> str:
        return (obj.shipping_address or {}).get("name", "")


class OrderSummarySerializer(serializers.ModelSerializer):
    """Compact receipt returned right after checkout."""

    class Meta:
        model = Order
        fields = ["id", "order_number", "total", "status", "created_at"]
        read_only_fields = fields
