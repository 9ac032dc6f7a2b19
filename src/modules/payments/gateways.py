"""Payment gateway adapter.

``PaymentGateway`` is the contract checkout depends on.  Amounts cross
the interface in rupees as ``Decimal``; ``RazorpayGateway`` converts to
and from paise at the SDK boundary.

Signature verification is an HMAC-SHA256 over ``"<order_id>|<payment_id>"``
keyed with the gateway secret and compared in constant time.  Anything
that is not a non-empty string verifies as ``False``.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache
from typing import Any, Callable, Dict, Optional

import razorpay
import requests
import structlog
from django.conf import settings as django_settings
from razorpay.errors import BadRequestError, GatewayError, ServerError

from modules.payments.exceptions import PaymentConfigError, PaymentGatewayError

logger = structlog.get_logger(__name__)

PAISE_PER_RUPEE = Decimal(100)
CENTS = Decimal("0.01")

_SDK_ERRORS = (BadRequestError, GatewayError, ServerError, requests.RequestException)


@dataclass(frozen=True)
class PaymentOrder:
    id: str
    amount: Decimal
    currency: str
    status: str
    receipt: Optional[str] = None


@dataclass(frozen=True)
class Refund:
    id: str
    amount: Decimal
    status: str
    payment_id: str


@dataclass(frozen=True)
class PaymentDetails:
    id: str
    amount: Decimal
    currency: str
    status: str
    method: Optional[str] = None
    email: Optional[str] = None
    contact: Optional[str] = None
    created_at: Optional[datetime] = None


def to_paise(amount: Decimal) -> int:
    return int((Decimal(amount) * PAISE_PER_RUPEE).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_paise(amount: Any) -> Decimal:
    return (Decimal(amount or 0) / PAISE_PER_RUPEE).quantize(CENTS)


def compute_signature(secret: str, gateway_order_id: str, payment_id: str) -> str:
    message = f"{gateway_order_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


def signature_matches(
    secret: str, payment_id: Any, gateway_order_id: Any, signature: Any
) -> bool:
    for value in (payment_id, gateway_order_id, signature):
        if not isinstance(value, str) or not value:
            return False
    expected = compute_signature(secret, gateway_order_id, payment_id)
    return hmac.compare_digest(expected, signature)


class PaymentGateway(ABC):
    """Contract for payment providers."""

    name: str = ""

    @property
    @abstractmethod
    def public_key(self) -> str:
        """Key the client-side checkout widget is initialised with."""
        ...

    @abstractmethod
    def create_order(
        self,
        amount: Decimal,
        currency: str = "INR",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrder: ...

    @abstractmethod
    def verify_payment(self, payment_id: str, gateway_order_id: str, signature: str) -> bool: ...

    @abstractmethod
    def refund_payment(self, payment_id: str, amount: Optional[Decimal] = None) -> Refund: ...

    @abstractmethod
    def get_payment_details(self, payment_id: str) -> PaymentDetails: ...


# ---------------------------------------------------------------------------
# Razorpay
# ---------------------------------------------------------------------------


class RazorpayGateway(PaymentGateway):
    name = "razorpay"

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        test_mode: bool = False,
        client: Optional[razorpay.Client] = None,
    ) -> None:
        if not key_id or not key_secret:
            raise PaymentConfigError("Razorpay key ID and secret are required")
        self._key_id = key_id
        self._key_secret = key_secret
        self.test_mode = test_mode
        self._client = client or razorpay.Client(auth=(key_id, key_secret))

    @property
    def public_key(self) -> str:
        return self._key_id

    def create_order(
        self,
        amount: Decimal,
        currency: str = "INR",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrder:
        metadata = metadata or {}
        payload = {
            "amount": to_paise(amount),
            "currency": currency,
            "receipt": metadata.get("receipt") or f"receipt_{secrets.token_hex(6)}",
            "notes": metadata.get("notes") or {},
        }
        try:
            order = self._client.order.create(data=payload)
        except _SDK_ERRORS as exc:
            logger.warning("payment.order_create_failed", gateway=self.name, error=str(exc))
            raise PaymentGatewayError(f"Failed to create Razorpay order: {exc}") from exc

        logger.info("payment.order_created", gateway=self.name, gateway_order_id=order["id"])
        return PaymentOrder(
            id=order["id"],
            amount=from_paise(order["amount"]),
            currency=order["currency"],
            status=order["status"],
            receipt=order.get("receipt"),
        )

    def verify_payment(self, payment_id: str, gateway_order_id: str, signature: str) -> bool:
        valid = signature_matches(self._key_secret, payment_id, gateway_order_id, signature)
        if not valid:
            logger.warning(
                "payment.signature_invalid", gateway=self.name, gateway_order_id=gateway_order_id
            )
        return valid

    def refund_payment(self, payment_id: str, amount: Optional[Decimal] = None) -> Refund:
        data: Dict[str, Any] = {}
        if amount:
            data["amount"] = to_paise(amount)
        try:
            refund = self._client.payment.refund(payment_id, data)
        except _SDK_ERRORS as exc:
            logger.warning("payment.refund_failed", gateway=self.name, payment_id=payment_id)
            raise PaymentGatewayError(f"Failed to refund payment: {exc}") from exc

        return Refund(
            id=refund["id"],
            amount=from_paise(refund.get("amount")),
            status=refund.get("status", ""),
            payment_id=refund.get("payment_id", payment_id),
        )

    def get_payment_details(self, payment_id: str) -> PaymentDetails:
        try:
            payment = self._client.payment.fetch(payment_id)
        except _SDK_ERRORS as exc:
            raise PaymentGatewayError(f"Failed to fetch payment details: {exc}") from exc

        created = payment.get("created_at")
        return PaymentDetails(
            id=payment["id"],
            amount=from_paise(payment["amount"]),
            currency=payment["currency"],
            status=payment["status"],
            method=payment.get("method"),
            email=payment.get("email"),
            contact=str(payment.get("contact") or ""),
            created_at=datetime.fromtimestamp(created, tz=dt_timezone.utc) if created else None,
        )


# ---------------------------------------------------------------------------
# Sandbox
# ---------------------------------------------------------------------------


@dataclass
class _SandboxPayment:
    order: PaymentOrder
    refunded: Decimal = field(default_factory=lambda: Decimal("0.00"))


class SandboxGateway(PaymentGateway):
    """In-process gateway for development, tests and as a fallback.

    Orders are kept in memory.  ``sign`` produces the signature a real
    client would receive, so verification follows the same HMAC path.
    """

    name = "sandbox"

    def __init__(self, secret: str) -> None:
        if not secret:
            raise PaymentConfigError("Sandbox gateway secret is required")
        self._secret = secret
        self._orders: Dict[str, _SandboxPayment] = {}
        self._payments: Dict[str, str] = {}
        self._lock = threading.Lock()

    @property
    def public_key(self) -> str:
        return "sandbox"

    def sign(self, gateway_order_id: str, payment_id: str) -> str:
        with self._lock:
            self._payments[payment_id] = gateway_order_id
        return compute_signature(self._secret, gateway_order_id, payment_id)

    def create_order(
        self,
        amount: Decimal,
        currency: str = "INR",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PaymentOrder:
        metadata = metadata or {}
        order = PaymentOrder(
            id=f"order_sandbox_{secrets.token_hex(8)}",
            amount=Decimal(amount).quantize(CENTS),
            currency=currency,
            status="created",
            receipt=metadata.get("receipt"),
        )
        with self._lock:
            self._orders[order.id] = _SandboxPayment(order=order)
        logger.info("payment.order_created", gateway=self.name, gateway_order_id=order.id)
        return order

    def verify_payment(self, payment_id: str, gateway_order_id: str, signature: str) -> bool:
        return signature_matches(self._secret, payment_id, gateway_order_id, signature)

    def refund_payment(self, payment_id: str, amount: Optional[Decimal] = None) -> Refund:
        with self._lock:
            order_id = self._payments.get(payment_id)
            payment = self._orders.get(order_id) if order_id else None
            if payment is None:
                raise PaymentGatewayError(f"Unknown payment {payment_id}")
            refund_amount = Decimal(amount) if amount else payment.order.amount - payment.refunded
            payment.refunded += refund_amount
        return Refund(
            id=f"rfnd_sandbox_{secrets.token_hex(8)}",
            amount=refund_amount.quantize(CENTS),
            status="processed",
            payment_id=payment_id,
        )

    def get_payment_details(self, payment_id: str) -> PaymentDetails:
        with self._lock:
            order_id = self._payments.get(payment_id)
            payment = self._orders.get(order_id) if order_id else None
        if payment is None:
            raise PaymentGatewayError(f"Unknown payment {payment_id}")
        return PaymentDetails(
            id=payment_id,
            amount=payment.order.amount,
            currency=payment.order.currency,
            status="refunded" if payment.refunded else "captured",
        )


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class PaymentGatewayFactory:
    """Builds and caches one gateway per name from settings.

    The fallback gateway is held separately; replacing it never touches
    the primary instance.
    """

    def __init__(self, settings: Any = None) -> None:
        self._settings = settings if settings is not None else django_settings
        self._builders: Dict[str, Callable[[], PaymentGateway]] = {
            "razorpay": self._build_razorpay,
            "sandbox": self._build_sandbox,
        }
        self._instances: Dict[str, PaymentGateway] = {}
        self._fallback: Optional[PaymentGateway] = None
        self._lock = threading.Lock()

    @property
    def default_name(self) -> str:
        return getattr(self._settings, "PAYMENT_GATEWAY", "razorpay")

    def get_gateway(self, name: Optional[str] = None) -> PaymentGateway:
        name = name or self.default_name
        with self._lock:
            gateway = self._instances.get(name)
            if gateway is None:
                builder = self._builders.get(name)
                if builder is None:
                    raise PaymentConfigError(f"Unsupported payment gateway: {name}")
                gateway = builder()
                self._instances[name] = gateway
                logger.info("payment.gateway_initialised", gateway=name)
        return gateway

    @property
    def fallback(self) -> Optional[PaymentGateway]:
        return self._fallback

    def set_fallback(self, gateway: Optional[PaymentGateway]) -> None:
        self._fallback = gateway

    def resolve(self, name: Optional[str] = None) -> PaymentGateway:
        """The configured gateway, or the fallback when it cannot be built."""
        try:
            return self.get_gateway(name)
        except PaymentConfigError as exc:
            if self._fallback is None:
                raise
            logger.warning(
                "payment.fallback_gateway_used",
                gateway=name or self.default_name,
                fallback=self._fallback.name,
                error=exc.message,
            )
            return self._fallback

    def reset(self) -> None:
        with self._lock:
            self._instances.clear()
        self._fallback = None

    def _build_razorpay(self) -> PaymentGateway:
        key_id = getattr(self._settings, "RAZORPAY_KEY_ID", "")
        key_secret = getattr(self._settings, "RAZORPAY_KEY_SECRET", "")
        if not key_id or not key_secret:
            raise PaymentConfigError("Razorpay credentials not configured")
        return RazorpayGateway(
            key_id,
            key_secret,
            test_mode=getattr(self._settings, "RAZORPAY_TEST_MODE", False),
        )

    def _build_sandbox(self) -> PaymentGateway:
        return SandboxGateway(getattr(self._settings, "PAYMENT_SANDBOX_SECRET", ""))


@lru_cache(maxsize=1)
def get_payment_gateway_factory() -> PaymentGatewayFactory:
    return PaymentGatewayFactory()


def get_payment_gateway() -> PaymentGateway:
    return get_payment_gateway_factory().resolve()
