from __future__ import annotations

from rest_framework import serializers

from modules.delivery.models import DeliverySettings


class DeliverySettingsSerializer(serializers.ModelSerializer):
    class Meta:
        model = DeliverySettings
        fields = [
            "id",
            "business_pincode",
            "business_city",
            "business_state",
            "business_latitude",
            "business_longitude",
            "local_delivery_charge",
            "city_delivery_charge",
            "state_delivery_charge",
            "national_delivery_charge",
            "free_shipping_threshold",
            "free_shipping_enabled",
            "updated_by_id",
            "updated_at",
        ]
        read_only_fields = fields


class DeliveryEstimateSerializer(serializers.Serializer):
    deliveryCharge = serializers.DecimalField(
        max_digits=10, decimal_places=2, source="charge", coerce_to_string=False
    )
    isFreeShipping = serializers.BooleanField(source="is_free_shipping")
    zone = serializers.CharField()
    estimatedDeliveryDate = serializers.DateField(source="estimated_delivery_date")
    isStandardCharge = serializers.BooleanField(source="is_standard_charge")
