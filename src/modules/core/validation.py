"""Boundary validators for externally supplied values.

Every validator accepts an untyped value and returns a
``ValidationResult``.  Validators never raise and never return a
partially sanitised value on failure: ``sanitized`` is only set when
``is_valid`` is ``True``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

EMAIL_MAX_LENGTH = 254
DEFAULT_TEXT_MAX_LENGTH = 500
DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

ORDER_STATUSES = (
    "pending",
    "confirmed",
    "processing",
    "shipped",
    "delivered",
    "cancelled",
)
PAYMENT_METHODS = ("razorpay", "cod")
PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")

_EMAIL_RE = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9]"
    r"(?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$"
)
_PHONE_RE = re.compile(r"^[6-9]\d{9}$")
_PINCODE_RE = re.compile(r"^[1-9]\d{5}$")
_UUID_V4_RE = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$"
)
_COUPON_RE = re.compile(r"^[A-Z0-9-]{3,20}$")
_TAG_RE = re.compile(r"<[^>]*>")
# C0 controls except \t and \n, plus DEL.
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_NON_DIGIT_RE = re.compile(r"\D")


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None
    sanitized: Any = None

    @classmethod
    def ok(cls, sanitized: Any) -> ValidationResult:
        return cls(is_valid=True, sanitized=sanitized)

    @classmethod
    def fail(cls, error: str) -> ValidationResult:
        return cls(is_valid=False, error=error)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# Contact fields
# ---------------------------------------------------------------------------


def validate_email(value: Any) -> ValidationResult:
    if _is_blank(value) or not isinstance(value, str):
        return ValidationResult.fail("Email is required")
    email = value.strip().lower()
    if len(email) > EMAIL_MAX_LENGTH:
        return ValidationResult.fail("Email is too long")
    if not _EMAIL_RE.match(email):
        return ValidationResult.fail("Invalid email format")
    return ValidationResult.ok(email)


def validate_phone(value: Any) -> ValidationResult:
    """Indian mobile number: 10 digits starting with 6-9."""
    if _is_blank(value) or not isinstance(value, (str, int)):
        return ValidationResult.fail("Phone number is required")
    digits = _NON_DIGIT_RE.sub("", str(value))
    if len(digits) != 10:
        return ValidationResult.fail("Phone number must be exactly 10 digits")
    if not _PHONE_RE.match(digits):
        return ValidationResult.fail("Phone number must start with 6, 7, 8, or 9")
    return ValidationResult.ok(digits)


def validate_pincode(value: Any) -> ValidationResult:
    if _is_blank(value) or not isinstance(value, (str, int)):
        return ValidationResult.fail("Pincode is required")
    digits = _NON_DIGIT_RE.sub("", str(value))
    if len(digits) != 6:
        return ValidationResult.fail("Pincode must be exactly 6 digits")
    if not _PINCODE_RE.match(digits):
        return ValidationResult.fail("Invalid pincode format")
    return ValidationResult.ok(digits)


# ---------------------------------------------------------------------------
# Free text and addresses
# ---------------------------------------------------------------------------


def sanitize_text(
    value: Any, max_length: int = DEFAULT_TEXT_MAX_LENGTH
) -> ValidationResult:
    """Trim, strip HTML tags and control characters, then enforce a length cap."""
    if _is_blank(value) or not isinstance(value, str):
        return ValidationResult.fail("Text is required")
    text = _CONTROL_RE.sub("", _TAG_RE.sub("", value)).strip()
    if not text:
        return ValidationResult.fail("Text is required")
    if len(text) > max_length:
        return ValidationResult.fail(f"Text must be less than {max_length} characters")
    return ValidationResult.ok(text)


def validate_address_field(
    value: Any, field_name: str, min_length: int = 2, max_length: int = 100
) -> ValidationResult:
    if _is_blank(value) or not isinstance(value, str):
        return ValidationResult.fail(f"{field_name} is required")
    text = _CONTROL_RE.sub("", _TAG_RE.sub("", value)).strip()
    if not text:
        return ValidationResult.fail(f"{field_name} is required")
    if len(text) < min_length:
        return ValidationResult.fail(
            f"{field_name} must be at least {min_length} characters"
        )
    if len(text) > max_length:
        return ValidationResult.fail(
            f"{field_name} must be less than {max_length} characters"
        )
    return ValidationResult.ok(text)


def _validate_coordinate(value: Any, field_name: str, bound: int) -> ValidationResult:
    number = validate_number(value, field_name, min_value=-bound, max_value=bound)
    if not number.is_valid:
        return ValidationResult.fail(f"Invalid {field_name.lower()}")
    return ValidationResult.ok(float(number.sanitized))


def validate_shipping_address(value: Any) -> ValidationResult:
    """Validate a full shipping address, reporting every bad field at once."""
    if not isinstance(value, dict):
        return ValidationResult.fail("Shipping address is required")

    errors: list[str] = []
    address: dict[str, Any] = {}
    checks = (
        ("name", validate_address_field(value.get("name"), "Name", 1, 100)),
        ("phone", validate_phone(value.get("phone"))),
        ("street", validate_address_field(value.get("street"), "Street address", 5, 200)),
        ("city", validate_address_field(value.get("city"), "City", 2, 50)),
        ("state", validate_address_field(value.get("state"), "State", 2, 50)),
        ("pincode", validate_pincode(value.get("pincode"))),
    )
    for key, result in checks:
        if result.is_valid:
            address[key] = result.sanitized
        else:
            errors.append(result.error)

    country = value.get("country")
    if _is_blank(country):
        address["country"] = "India"
    else:
        result = validate_address_field(country, "Country", 2, 50)
        if result.is_valid:
            address["country"] = result.sanitized
        else:
            errors.append(result.error)

    for key, label, bound in (("latitude", "Latitude", 90), ("longitude", "Longitude", 180)):
        if value.get(key) is None:
            continue
        result = _validate_coordinate(value[key], label, bound)
        if result.is_valid:
            address[key] = result.sanitized
        else:
            errors.append(result.error)

    if errors:
        return ValidationResult.fail("; ".join(errors))
    return ValidationResult.ok(address)


# ---------------------------------------------------------------------------
# Identifiers and enums
# ---------------------------------------------------------------------------


def validate_uuid(value: Any, field_name: str = "ID") -> ValidationResult:
    if _is_blank(value) or not isinstance(value, str):
        return ValidationResult.fail(f"{field_name} is required")
    candidate = value.strip().lower()
    if not _UUID_V4_RE.match(candidate):
        return ValidationResult.fail(f"Invalid {field_name} format")
    return ValidationResult.ok(candidate)


def _validate_choice(value: Any, choices: tuple[str, ...], label: str) -> ValidationResult:
    if _is_blank(value) or not isinstance(value, str):
        return ValidationResult.fail(f"{label} is required")
    candidate = value.strip().lower()
    if candidate not in choices:
        return ValidationResult.fail(
            f"Invalid {label.lower()}. Must be one of: {', '.join(choices)}"
        )
    return ValidationResult.ok(candidate)


def validate_order_status(value: Any) -> ValidationResult:
    return _validate_choice(value, ORDER_STATUSES, "Order status")


def validate_payment_method(value: Any) -> ValidationResult:
    return _validate_choice(value, PAYMENT_METHODS, "Payment method")


def validate_payment_status(value: Any) -> ValidationResult:
    return _validate_choice(value, PAYMENT_STATUSES, "Payment status")


def validate_coupon_code(value: Any) -> ValidationResult:
    if _is_blank(value) or not isinstance(value, str):
        return ValidationResult.fail("Coupon code is required")
    code = value.strip().upper()
    if not _COUPON_RE.match(code):
        return ValidationResult.fail(
            "Coupon code must be 3-20 characters of letters, digits or hyphens"
        )
    return ValidationResult.ok(code)


# ---------------------------------------------------------------------------
# Numbers, pagination and dates
# ---------------------------------------------------------------------------


def validate_number(
    value: Any,
    field_name: str = "Value",
    min_value: Optional[float] = 0,
    max_value: Optional[float] = None,
) -> ValidationResult:
    """Finite, bounded number.  Numeric strings are parsed; booleans are rejected."""
    if value is None or isinstance(value, bool) or (isinstance(value, str) and not value.strip()):
        return ValidationResult.fail(f"{field_name} is required")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return ValidationResult.fail(f"{field_name} must be a valid number")
    if not number.is_finite():
        return ValidationResult.fail(f"{field_name} must be a valid number")
    if min_value is not None and number < Decimal(str(min_value)):
        return ValidationResult.fail(f"{field_name} must be at least {min_value}")
    if max_value is not None and number > Decimal(str(max_value)):
        return ValidationResult.fail(f"{field_name} must be at most {max_value}")
    return ValidationResult.ok(number)


def _parse_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def validate_pagination(page: Any = None, limit: Any = None) -> ValidationResult:
    """Return ``sanitized == (page, limit)`` with defaults 1/20."""
    page_number = DEFAULT_PAGE if _is_blank(page) else _parse_int(page)
    page_size = DEFAULT_PAGE_SIZE if _is_blank(limit) else _parse_int(limit)
    if page_number is None or page_number < 1:
        return ValidationResult.fail("Page must be a positive integer")
    if page_size is None or not 1 <= page_size <= MAX_PAGE_SIZE:
        return ValidationResult.fail(f"Limit must be between 1 and {MAX_PAGE_SIZE}")
    return ValidationResult.ok((page_number, page_size))


def _parse_iso(value: Any) -> Optional[datetime | date]:
    if isinstance(value, (datetime, date)):
        return value
    if not isinstance(value, str):
        return None
    try:
        return parse_date(value.strip()) or parse_datetime(value.strip())
    except ValueError:
        return None


def _as_datetime(value: datetime | date) -> datetime:
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)


def validate_date_range(date_from: Any = None, date_to: Any = None) -> ValidationResult:
    """Return ``sanitized == (from, to)``; either end may be ``None``."""
    parsed_from = parsed_to = None
    if not _is_blank(date_from):
        parsed_from = _parse_iso(date_from)
        if parsed_from is None:
            return ValidationResult.fail("Invalid start date")
    if not _is_blank(date_to):
        parsed_to = _parse_iso(date_to)
        if parsed_to is None:
            return ValidationResult.fail("Invalid end date")
    if parsed_from and parsed_to and _as_datetime(parsed_from) > _as_datetime(parsed_to):
        return ValidationResult.fail("Start date must be before end date")
    return ValidationResult.ok((parsed_from, parsed_to))


def as_aware_datetime(value: Any, end_of_day: bool = False) -> Optional[datetime]:
    """Widen a validated date bound to an aware datetime (inclusive end of day)."""
    if value is None:
        return None
    if not isinstance(value, datetime) and isinstance(value, date):
        value = datetime.combine(value, time.max if end_of_day else time.min)
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value
