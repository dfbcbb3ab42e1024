from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any


class CarrierError(Exception):
    """Carrier call failed.

    ``status_code`` is the carrier's own HTTP status, or None when no response
    arrived (timeout, connection error, misconfiguration).  The body is kept
    exactly as the carrier sent it.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        carrier_error_body: Any | None = None,
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.carrier_error_body = carrier_error_body
        super().__init__(message)

    @property
    def is_rejection(self) -> bool:
        return self.status_code is not None and 400 <= self.status_code < 500


@dataclass(slots=True)
class CarrierPolicyOutcome:
    plan_key: str | None
    submission_received: bool
    policy_no: str | None = None
    total_rate: Decimal | None = None
    effective_date: date | None = None
    errors: list[Any] = field(default_factory=list)


@dataclass(slots=True)
class CarrierResult:
    raw: Any
    policies: list[CarrierPolicyOutcome] = field(default_factory=list)


@dataclass(slots=True)
class RateQuoteRequest:
    plan_key: str
    product_code: str
    applicants: list[dict[str, Any]]
    zip_code: str
    state: str
    effective_date: str
    payment_frequency: str = "Monthly"


@dataclass(slots=True)
class RateQuote:
    success: bool
    price: Decimal | None = None
    error: str | None = None

    @classmethod
    def ok(cls, price: Decimal) -> "RateQuote":
        return cls(success=True, price=price)

    @classmethod
    def failed(cls, error: str) -> "RateQuote":
        return cls(success=False, error=error)


class RateEngine(ABC):
    @abstractmethod
    async def quote(self, request: RateQuoteRequest) -> RateQuote:
        """Return a definite price or a failed quote; never raises for carrier errors."""


class CarrierAdapter(ABC):
    slug: str = "unknown"
    display_name: str = "Unknown carrier"

    @property
    def rate_engine(self) -> RateEngine | None:
        return None

    @abstractmethod
    def build_wire_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Translate the internal enrollment payload to the carrier's schema."""

    @abstractmethod
    async def submit(self, payload: dict[str, Any]) -> CarrierResult:
        """Send one enrollment.  Raises ``CarrierError`` on any failure."""

    def is_configured(self) -> bool:
        return True
