"""Merge an application's enrollment draft with resolved payment fields and final pricing.

Pure and synchronous.  The result holds plaintext card/bank numbers and lives
only in memory for the duration of one carrier call.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Sequence

from app.models.coverage import Coverage
from app.schemas.enrollment import BankFields, CreditCardFields, SensitivePaymentFields
from app.services.price_recalculation import LineRecalculation

logger = logging.getLogger(__name__)

PRICE_SOURCE_RECALCULATED = "recalculated"
PRICE_SOURCE_PERSISTED = "persisted"
PRICE_SOURCE_DRAFT = "draft"

_STRIPPED_KEYS = frozenset(
    {
        "vault_secret_id",
        "vaultSecretId",
        "user_payment_method_id",
        "userPaymentMethodId",
        "savedPaymentMethodId",
    }
)


@dataclass(frozen=True, slots=True)
class PriceChange:
    plan_key: str
    source: str
    previous_price: Decimal | None
    price: Decimal | None


@dataclass(slots=True)
class BuiltEnrollmentPayload:
    payload: dict[str, Any] = field(repr=False)
    price_changes: list[PriceChange] = field(default_factory=list)


def _as_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _strip_secret_references(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: _strip_secret_references(item)
            for key, item in value.items()
            if key not in _STRIPPED_KEYS
            and not key.endswith("_encrypted")
            and not key.endswith("Encrypted")
        }
    if isinstance(value, list):
        return [_strip_secret_references(item) for item in value]
    return value


def payment_information_block(fields: SensitivePaymentFields) -> dict[str, Any]:
    if isinstance(fields, CreditCardFields):
        return {
            "accountType": "CreditCard",
            "accountHolderFirstName": fields.holder_first,
            "accountHolderLastName": fields.holder_last,
            "creditCardNumber": fields.number,
            "cvv": fields.cvv,
            "cardBrand": fields.brand,
            "expirationMonth": fields.exp_month,
            "expirationYear": fields.exp_year,
        }
    if isinstance(fields, BankFields):
        draft_date = fields.desired_draft_date
        return {
            "accountType": "ACH",
            "accountHolderFirstName": fields.holder_first,
            "accountHolderLastName": fields.holder_last,
            "accountTypeBank": fields.account_type,
            "accountNumber": fields.account_number,
            "routingNumber": fields.routing_number,
            "bankName": fields.bank_name,
            "desiredDraftDate": draft_date.isoformat() if isinstance(draft_date, date) else draft_date,
        }
    raise TypeError(f"Unsupported payment fields: {type(fields).__name__}")


def choose_line_price(
    plan_key: str,
    draft_price: Any,
    recalculation: LineRecalculation | None,
    persisted: Coverage | None,
) -> PriceChange:
    """Pick one coverage line's premium.

    Order: recalculated price, then the persisted ``monthly_premium``, then
    whatever the draft already carried.
    """
    previous = _as_decimal(draft_price)
    if recalculation is not None and recalculation.price is not None:
        return PriceChange(plan_key, PRICE_SOURCE_RECALCULATED, previous, recalculation.price)

    persisted_price = _as_decimal(persisted.monthly_premium) if persisted is not None else None
    if persisted_price is not None:
        return PriceChange(plan_key, PRICE_SOURCE_PERSISTED, previous, persisted_price)

    logger.warning(
        "Plan %s has neither a recalculated nor a persisted premium; sending the draft price %s",
        plan_key,
        previous,
        extra={"step": "build"},
    )
    return PriceChange(plan_key, PRICE_SOURCE_DRAFT, previous, previous)


def build_enrollment_payload(
    enrollment_data: Mapping[str, Any] | None,
    *,
    payment: SensitivePaymentFields,
    recalculations: Mapping[str, LineRecalculation] | None = None,
    persisted_coverages: Sequence[Coverage] = (),
    enrollment_date: datetime | None = None,
) -> BuiltEnrollmentPayload:
    payload = _strip_secret_references(copy.deepcopy(dict(enrollment_data or {})))
    recalculations = recalculations or {}
    by_plan = {coverage.plan_key: coverage for coverage in persisted_coverages}

    price_changes: list[PriceChange] = []
    for line in payload.get("coverages") or []:
        if not isinstance(line, dict) or not line.get("planKey"):
            continue
        plan_key = str(line["planKey"])
        change = choose_line_price(
            plan_key,
            line.get("monthlyPremium"),
            recalculations.get(plan_key),
            by_plan.get(plan_key),
        )
        if change.price is not None:
            line["monthlyPremium"] = change.price
        if change.source != PRICE_SOURCE_DRAFT and change.previous_price != change.price:
            logger.info(
                "Plan %s premium %s -> %s (%s)",
                plan_key,
                change.previous_price,
                change.price,
                change.source,
                extra={"step": "build"},
            )
        price_changes.append(change)

    payload["paymentInformation"] = payment_information_block(payment)
    if not payload.get("enrollmentDate"):
        stamp = enrollment_date or datetime.now(timezone.utc)
        payload["enrollmentDate"] = stamp.isoformat()
    return BuiltEnrollmentPayload(payload=payload, price_changes=price_changes)
