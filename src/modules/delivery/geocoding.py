"""Pincode geocoding.

``NominatimGeocoder`` resolves an Indian pincode to city, state and
coordinates through OpenStreetMap's Nominatim search API.  Any transport
or lookup failure surfaces as ``GeocodingError`` so the delivery engine
can fall back to the standard charge.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
import structlog
from django.conf import settings

from modules.delivery.exceptions import GeocodingError

logger = structlog.get_logger(__name__)

DEFAULT_GEOCODER_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_TIMEOUT_SECONDS = 5.0
USER_AGENT = "storefront-delivery/1.0"


@dataclass(frozen=True)
class PincodeLocation:
    pincode: str
    city: str
    state: str
    latitude: float
    longitude: float


class IGeocoder(ABC):
    @abstractmethod
    def resolve(self, pincode: str) -> PincodeLocation:
        """Resolve *pincode* or raise ``GeocodingError``."""
        ...


def _pick_city(address: Dict[str, Any]) -> str:
    for key in ("city", "town", "village", "municipality", "state_district", "county"):
        if address.get(key):
            return address[key]
    return ""


class NominatimGeocoder(IGeocoder):
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url or getattr(settings, "GEOCODER_URL", DEFAULT_GEOCODER_URL)
        self.timeout = timeout or getattr(settings, "GEOCODER_TIMEOUT", DEFAULT_TIMEOUT_SECONDS)
        self.session = session or requests.Session()

    def resolve(self, pincode: str) -> PincodeLocation:
        log = logger.bind(pincode=pincode)
        try:
            response = self.session.get(
                self.base_url,
                params={
                    "postalcode": pincode,
                    "country": "India",
                    "format": "json",
                    "addressdetails": 1,
                    "limit": 1,
                },
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
            response.raise_for_status()
            results = response.json()
        except (requests.RequestException, ValueError) as exc:
            log.warning("geocoder.request_failed", error=str(exc))
            raise GeocodingError("Geocoding service unavailable", pincode=pincode) from exc

        if not results:
            log.info("geocoder.not_found")
            raise GeocodingError("Location not found for pincode", pincode=pincode)

        match = results[0]
        address = match.get("address") or {}
        try:
            location = PincodeLocation(
                pincode=pincode,
                city=_pick_city(address),
                state=address.get("state", ""),
                latitude=float(match["lat"]),
                longitude=float(match["lon"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            log.warning("geocoder.malformed_response")
            raise GeocodingError("Malformed geocoder response", pincode=pincode) from exc

        log.info("geocoder.resolved", city=location.city, state=location.state)
        return location
