"""Admin delivery settings API."""

from __future__ import annotations

from typing import Any, Dict

from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.exceptions import error_response, validation_error_response
from modules.core.permissions import IsAdminRole
from modules.core.validation import validate_address_field, validate_number, validate_pincode
from modules.delivery.dtos import UpdateDeliverySettingsDTO
from modules.delivery.geocoding import NominatimGeocoder
from modules.delivery.repositories.django_repository import DeliverySettingsDjangoRepository
from modules.delivery.serializers import DeliverySettingsSerializer
from modules.delivery.services import DeliveryService
from shared.domain.errors import DomainError

CHARGE_FIELDS = (
    "local_delivery_charge",
    "city_delivery_charge",
    "state_delivery_charge",
    "national_delivery_charge",
)
MAX_DELIVERY_CHARGE = 10_000
MAX_FREE_SHIPPING_THRESHOLD = 1_000_000


def _parse_settings_update(body: Dict[str, Any]) -> tuple[Dict[str, Any], str | None]:
    """Validate the fields present in *body*: ``(changes, error)``."""
    changes: Dict[str, Any] = {}

    if "business_pincode" in body:
        result = validate_pincode(body["business_pincode"])
        if not result.is_valid:
            return {}, result.error
        changes["business_pincode"] = result.sanitized

    for field, label in (("business_city", "Business city"), ("business_state", "Business state")):
        if field in body:
            result = validate_address_field(body[field], label, 2, 50)
            if not result.is_valid:
                return {}, result.error
            changes[field] = result.sanitized

    for field, bound in (("business_latitude", 90), ("business_longitude", 180)):
        if field in body:
            result = validate_number(body[field], field, min_value=-bound, max_value=bound)
            if not result.is_valid:
                return {}, f"{field} must be between -{bound} and {bound}"
            changes[field] = float(result.sanitized)

    for field in CHARGE_FIELDS:
        if field in body:
            result = validate_number(body[field], field, 0, MAX_DELIVERY_CHARGE)
            if not result.is_valid:
                return {}, result.error
            changes[field] = result.sanitized

    if "free_shipping_threshold" in body:
        result = validate_number(
            body["free_shipping_threshold"],
            "Free shipping threshold",
            0,
            MAX_FREE_SHIPPING_THRESHOLD,
        )
        if not result.is_valid:
            return {}, result.error
        changes["free_shipping_threshold"] = result.sanitized

    if "free_shipping_enabled" in body:
        if not isinstance(body["free_shipping_enabled"], bool):
            return {}, "free_shipping_enabled must be a boolean"
        changes["free_shipping_enabled"] = body["free_shipping_enabled"]

    return changes, None


class DeliverySettingsView(APIView):
    """GET/PUT /api/admin/delivery-settings/"""

    permission_classes = [IsAdminRole]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = DeliveryService(
            settings_repository=DeliverySettingsDjangoRepository(),
            geocoder=NominatimGeocoder(),
        )

    def get(self, request: Request) -> Response:
        try:
            settings_row = self._service.get_settings()
        except DomainError as exc:
            return error_response(exc)
        return Response(DeliverySettingsSerializer(settings_row).data)

    def put(self, request: Request) -> Response:
        if not isinstance(request.data, dict):
            return validation_error_response("Request body must be a JSON object")
        changes, error = _parse_settings_update(request.data)
        if error:
            return validation_error_response(error)
        if not changes:
            return validation_error_response("No valid fields to update")

        try:
            settings_row = self._service.update_settings(
                UpdateDeliverySettingsDTO(**changes),
                updated_by=request.user.profile.id,
            )
        except DomainError as exc:
            return error_response(exc)
        return Response(DeliverySettingsSerializer(settings_row).data)
