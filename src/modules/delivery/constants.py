"""Delivery pricing constants."""

from django.db import models


class DeliveryZone(models.TextChoices):
    LOCAL = "local", "Local"
    CITY = "city", "City"
    STATE = "state", "State"
    NATIONAL = "national", "National"
    FREE_SHIPPING = "free_shipping", "Free shipping"
    STANDARD = "standard", "Standard"


# Lead time in days per zone; anything unlisted uses the default.
DELIVERY_LEAD_DAYS: dict[str, int] = {
    DeliveryZone.LOCAL: 1,
    DeliveryZone.CITY: 2,
    DeliveryZone.STATE: 3,
    DeliveryZone.NATIONAL: 5,
    DeliveryZone.FREE_SHIPPING: 2,
    DeliveryZone.STANDARD: 5,
}
DEFAULT_LEAD_DAYS = 3

EARTH_RADIUS_KM = 6371.0
DEFAULT_LOCAL_RADIUS_KM = 10.0

PINCODE_CACHE_TTL_SECONDS = 24 * 60 * 60
SETTINGS_CACHE_TTL_SECONDS = 10 * 60
SETTINGS_CACHE_KEY = "delivery:settings"
