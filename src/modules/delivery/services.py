"""Delivery pricing engine.

The charge depends on how far the destination pincode is from the
business origin:

- ``local``: same city and state, within ``DELIVERY_LOCAL_RADIUS_KM``
- ``city``: same city and state
- ``state``: same state
- ``national``: anywhere else

Free shipping, when enabled and met, short-circuits the lookup.  When the
pincode cannot be resolved, ``quote`` falls back to the national charge
under the ``standard`` zone instead of failing checkout.
"""

from __future__ import annotations

import math
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.core.cache import cache as default_cache
from django.core.exceptions import ValidationError
from django.utils import timezone

from modules.delivery.constants import (
    DEFAULT_LEAD_DAYS,
    DEFAULT_LOCAL_RADIUS_KM,
    DELIVERY_LEAD_DAYS,
    EARTH_RADIUS_KM,
    PINCODE_CACHE_TTL_SECONDS,
    SETTINGS_CACHE_KEY,
    SETTINGS_CACHE_TTL_SECONDS,
    DeliveryZone,
)
from modules.delivery.dtos import DeliveryEstimate, DeliveryQuote
from modules.delivery.exceptions import (
    DeliverySettingsMissing,
    InvalidDeliverySettings,
)
from shared.domain.errors import DomainError, ErrorKind

if TYPE_CHECKING:
    from modules.delivery.dtos import UpdateDeliverySettingsDTO
    from modules.delivery.geocoding import IGeocoder, PincodeLocation
    from modules.delivery.models import DeliverySettings
    from modules.delivery.repositories.interfaces import IDeliverySettingsRepository

logger = structlog.get_logger(__name__)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)
    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _same_place(left: str, right: str) -> bool:
    return (left or "").strip().casefold() == (right or "").strip().casefold()


def classify_zone(
    origin: DeliverySettings, destination: PincodeLocation, local_radius_km: float
) -> str:
    if not _same_place(destination.state, origin.business_state):
        return DeliveryZone.NATIONAL
    if not _same_place(destination.city, origin.business_city):
        return DeliveryZone.STATE
    distance = haversine_km(
        origin.business_latitude,
        origin.business_longitude,
        destination.latitude,
        destination.longitude,
    )
    return DeliveryZone.LOCAL if distance <= local_radius_km else DeliveryZone.CITY


def estimate_delivery_date(zone: str, now: Optional[datetime] = None) -> date:
    days = DELIVERY_LEAD_DAYS.get(zone, DEFAULT_LEAD_DAYS)
    start = timezone.localtime(now) if now is not None else timezone.localtime()
    return (start + timedelta(days=days)).date()


class DeliveryService:
    """Settings access and zone pricing.

    Collaborators are injected so the geocoder, cache and clock can be
    replaced in tests.
    """

    def __init__(
        self,
        settings_repository: IDeliverySettingsRepository,
        geocoder: IGeocoder,
        cache: Any = None,
        clock: Callable[[], datetime] = timezone.now,
    ) -> None:
        self._settings_repo = settings_repository
        self._geocoder = geocoder
        self._cache = cache if cache is not None else default_cache
        self._clock = clock

    @property
    def local_radius_km(self) -> float:
        return float(getattr(settings, "DELIVERY_LOCAL_RADIUS_KM", DEFAULT_LOCAL_RADIUS_KM))

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def get_settings(self) -> DeliverySettings:
        cached = self._cache.get(SETTINGS_CACHE_KEY)
        if cached is not None:
            return cached
        settings_row = self._settings_repo.get()
        if settings_row is None:
            logger.error("delivery.settings_missing")
            raise DeliverySettingsMissing("Delivery settings are not configured")
        self._cache.set(SETTINGS_CACHE_KEY, settings_row, SETTINGS_CACHE_TTL_SECONDS)
        return settings_row

    def update_settings(
        self, dto: UpdateDeliverySettingsDTO, updated_by: Optional[UUID] = None
    ) -> DeliverySettings:
        changes = dto.model_dump(exclude_none=True)
        try:
            settings_row = self._settings_repo.update(changes, updated_by=updated_by)
        except ValidationError as exc:
            raise InvalidDeliverySettings(
                "; ".join(exc.messages), fields=sorted(changes)
            ) from exc
        finally:
            self.clear_cache()

        logger.info(
            "delivery.settings_updated",
            fields=sorted(changes),
            updated_by=str(updated_by) if updated_by else None,
        )
        return settings_row

    def clear_cache(self) -> None:
        self._cache.delete(SETTINGS_CACHE_KEY)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    def resolve_pincode(self, pincode: str) -> PincodeLocation:
        key = f"pincode:{pincode}"
        location = self._cache.get(key)
        if location is None:
            location = self._geocoder.resolve(pincode)
            self._cache.set(key, location, PINCODE_CACHE_TTL_SECONDS)
        return location

    def calculate_delivery_charge(self, pincode: str, order_subtotal: Decimal) -> DeliveryQuote:
        """Price delivery to *pincode*.

        Raises:
            DeliverySettingsMissing: no settings row.
            GeocodingError: the pincode could not be resolved.
        """
        settings_row = self.get_settings()
        if settings_row.qualifies_for_free_shipping(Decimal(order_subtotal)):
            return DeliveryQuote(
                charge=Decimal("0.00"),
                is_free_shipping=True,
                zone=DeliveryZone.FREE_SHIPPING,
            )

        location = self.resolve_pincode(pincode)
        zone = classify_zone(settings_row, location, self.local_radius_km)
        return DeliveryQuote(
            charge=settings_row.charge_for_zone(zone),
            is_free_shipping=False,
            zone=zone,
        )

    def quote(self, pincode: str, order_subtotal: Decimal) -> DeliveryEstimate:
        """Price delivery, degrading to the standard charge on lookup failure.

        Only a missing settings row propagates; without it there is no
        standard charge to fall back to.
        """
        log = logger.bind(pincode=pincode, order_subtotal=str(order_subtotal))
        now = self._clock()
        try:
            result = self.calculate_delivery_charge(pincode, order_subtotal)
        except DeliverySettingsMissing:
            raise
        except DomainError as exc:
            if exc.kind not in (ErrorKind.UPSTREAM_ERROR, ErrorKind.NOT_FOUND):
                raise
            return self._standard_estimate(order_subtotal, now, log, exc)

        log.info("delivery.quoted", zone=result.zone, charge=str(result.charge))
        return DeliveryEstimate(
            charge=result.charge,
            is_free_shipping=result.is_free_shipping,
            zone=result.zone,
            estimated_delivery_date=estimate_delivery_date(result.zone, now),
        )

    def _standard_estimate(
        self, order_subtotal: Decimal, now: datetime, log: Any, exc: Exception
    ) -> DeliveryEstimate:
        settings_row = self.get_settings()
        is_free = settings_row.qualifies_for_free_shipping(Decimal(order_subtotal))
        charge = Decimal("0.00") if is_free else settings_row.national_delivery_charge
        log.warning("delivery.fallback_used", error=str(exc), charge=str(charge))
        return DeliveryEstimate(
            charge=charge,
            is_free_shipping=is_free,
            zone=DeliveryZone.STANDARD,
            estimated_delivery_date=estimate_delivery_date(DeliveryZone.STANDARD, now),
            is_standard_charge=True,
        )
