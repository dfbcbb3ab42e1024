from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from app.schemas.enrollment import BankFields, CreditCardFields
from app.services.enrollment_payload import (
    PRICE_SOURCE_DRAFT,
    PRICE_SOURCE_PERSISTED,
    PRICE_SOURCE_RECALCULATED,
    build_enrollment_payload,
    choose_line_price,
    payment_information_block,
)
from app.services.price_recalculation import LineRecalculation, RecalculationStatus
from conftest import make_coverage, make_enrollment_data

CARD = CreditCardFields(
    number="4111111111111111",
    cvv="987",
    brand="Visa",
    exp_month="09",
    exp_year="2031",
    holder_first="Ana",
    holder_last="Cruz",
)


def _recalculated(plan_key, price):
    return LineRecalculation(plan_key, RecalculationStatus.RECALCULATED, price=Decimal(price))


def test_price_prefers_recalculation_then_persisted_then_draft():
    persisted = make_coverage(monthly_premium=Decimal("289.00"))

    first = choose_line_price("PLAN-A", 250, _recalculated("PLAN-A", "312.50"), persisted)
    second = choose_line_price(
        "PLAN-A", 250, LineRecalculation("PLAN-A", RecalculationStatus.FAILED), persisted
    )
    third = choose_line_price("PLAN-A", 250, None, make_coverage(monthly_premium=None))

    assert (first.source, first.price) == (PRICE_SOURCE_RECALCULATED, Decimal("312.50"))
    assert (second.source, second.price) == (PRICE_SOURCE_PERSISTED, Decimal("289.00"))
    assert (third.source, third.price) == (PRICE_SOURCE_DRAFT, Decimal("250"))


def test_build_sets_final_prices_and_payment_block():
    data = make_enrollment_data()
    persisted = [make_coverage(monthly_premium=Decimal("289.00"))]

    built = build_enrollment_payload(
        data,
        payment=CARD,
        recalculations={"PLAN-A": _recalculated("PLAN-A", "312.50")},
        persisted_coverages=persisted,
    )

    assert built.payload["coverages"][0]["monthlyPremium"] == Decimal("312.50")
    assert built.payload["paymentInformation"]["accountType"] == "CreditCard"
    assert built.payload["paymentInformation"]["creditCardNumber"] == "4111111111111111"
    assert built.price_changes[0].previous_price == Decimal("250.0")
    # the stored draft is left untouched
    assert data["coverages"][0]["monthlyPremium"] == 250.0
    assert "paymentInformation" not in data


def test_build_strips_secret_references():
    data = make_enrollment_data(
        payment={"user_payment_method_id": "xyz", "cvv_encrypted": "gAAAA", "brand": "Visa"},
    )
    data["demographics"]["savedPaymentMethodId"] = "abc"
    data["demographics"]["applicants"][0]["ssnEncrypted"] = "gAAAA"

    built = build_enrollment_payload(data, payment=CARD)

    assert built.payload["payment"] == {"brand": "Visa"}
    assert "savedPaymentMethodId" not in built.payload["demographics"]
    assert "ssnEncrypted" not in built.payload["demographics"]["applicants"][0]
    assert built.payload["demographics"]["applicants"][0]["ssn"] == "123456789"


def test_enrollment_date_defaults_to_now_but_keeps_existing():
    stamp = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)

    fresh = build_enrollment_payload(make_enrollment_data(), payment=CARD, enrollment_date=stamp)
    kept = build_enrollment_payload(
        make_enrollment_data(enrollmentDate="2029-12-31T00:00:00Z"), payment=CARD
    )

    assert fresh.payload["enrollmentDate"] == stamp.isoformat()
    assert kept.payload["enrollmentDate"] == "2029-12-31T00:00:00Z"


def test_bank_payment_block():
    block = payment_information_block(
        BankFields(
            account_number="000123456789",
            routing_number="021000021",
            account_type="Savings",
            bank_name="First Bank",
            desired_draft_date=date(2030, 1, 5),
            holder_first="Luis",
            holder_last="Perez",
        )
    )

    assert block["accountType"] == "ACH"
    assert block["accountTypeBank"] == "Savings"
    assert block["accountNumber"] == "000123456789"
    assert block["desiredDraftDate"] == "2030-01-05"


def test_unknown_payment_fields_are_rejected():
    with pytest.raises(TypeError):
        payment_information_block({"number": "4111"})
