"""Delivery domain exceptions."""

from __future__ import annotations

from shared.domain.errors import DomainError, ErrorKind


class DeliverySettingsMissing(DomainError):
    """No delivery settings row has been configured yet."""

    kind = ErrorKind.CONFIG_ERROR


class GeocodingError(DomainError):
    """The pincode could not be resolved to a location."""

    kind = ErrorKind.UPSTREAM_ERROR


class InvalidDeliverySettings(DomainError):
    kind = ErrorKind.VALIDATION
