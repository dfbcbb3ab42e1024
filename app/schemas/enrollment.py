from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    ACTIVE = "active"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    SUBMISSION_FAILED = "submission_failed"
    # Interim marker held while a submission is in flight.
    SUBMITTING = "submitting"


SUBMITTABLE_STATUSES = frozenset(
    {
        ApplicationStatus.PENDING_APPROVAL.value,
        ApplicationStatus.APPROVED.value,
        ApplicationStatus.SUBMISSION_FAILED.value,
    }
)


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    ACH = "ach"

    @property
    def is_card(self) -> bool:
        return self in {PaymentMethod.CREDIT_CARD, PaymentMethod.DEBIT_CARD}


def split_holder_name(full_name: str | None) -> tuple[str, str]:
    """Split a holder name on the first whitespace run.

    Multi-part surnames collapse into the last name ("Ana de la Cruz" ->
    "Ana", "de la Cruz"); carrier schemas only accept two name fields.
    """
    parts = (full_name or "").strip().split(None, 1)
    if not parts:
        return "", ""
    if len(parts) == 1:
        return parts[0], ""
    return parts[0], parts[1]


class CreditCardFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["card"] = "card"
    number: str = Field(repr=False)
    cvv: str = Field(repr=False)
    brand: str | None = None
    exp_month: str | None = None
    exp_year: str | None = None
    holder_first: str = ""
    holder_last: str = ""

    @property
    def masked_number(self) -> str:
        return f"****{self.number[-4:]}" if self.number else ""


class BankFields(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["bank"] = "bank"
    account_number: str = Field(repr=False)
    routing_number: str = Field(repr=False)
    account_type: str | None = None
    bank_name: str | None = None
    desired_draft_date: date | None = None
    holder_first: str = ""
    holder_last: str = ""

    @property
    def masked_number(self) -> str:
        return f"****{self.account_number[-4:]}" if self.account_number else ""


SensitivePaymentFields = Union[CreditCardFields, BankFields]


class SubmissionResultDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    plan_key: str | None = None
    carrier_slug: str | None = None
    submission_received: bool
    policy_no: str | None = None
    total_rate: Decimal | None = None
    effective_date: date | None = None
    submission_errors: list[Any] = Field(default_factory=list)
    created_at: datetime | None = None


class SubmissionResultListResponse(BaseModel):
    items: list[SubmissionResultDTO]
    total: int


class PriceChangeDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    plan_key: str
    source: str
    previous_price: Decimal | None = None
    price: Decimal | None = None


class EnrollmentSubmissionResponse(BaseModel):
    """Already enveloped: ``result`` is the carrier response, unchanged."""

    success: bool = True
    message: str
    application_id: UUID
    status: ApplicationStatus
    carrier: str
    result: Any = None
    pricing: list[PriceChangeDTO] = Field(default_factory=list)
