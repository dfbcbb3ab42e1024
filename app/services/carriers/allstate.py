from __future__ import annotations

import json
import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from app.core.settings import settings
from app.services.carriers.adapter import (
    CarrierAdapter,
    CarrierError,
    CarrierPolicyOutcome,
    CarrierResult,
    RateEngine,
    RateQuote,
    RateQuoteRequest,
)

logger = logging.getLogger(__name__)

_DOB_MILLIS = re.compile(r"\.\d{3}Z$")
_RESULT_LIST_KEYS = ("submissionResults", "enrollmentResults", "policies", "coverages")
_PRICE_KEYS = ("insuranceRate", "monthlyPremium", "rate", "totalRate")


def _to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _to_date(value: Any) -> date | None:
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        return None


def _to_int(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return value
    return value


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (date,)):
        return value.isoformat()
    if isinstance(value, dict):
        return {key: _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return value


def map_relationship(value: str | None) -> str:
    if not value:
        return "Primary"
    lowered = value.lower()
    if lowered in {"primary", "self"}:
        return "Primary"
    if lowered in {"spouse", "wife", "husband"}:
        return "Spouse"
    return "Dependent"


def normalize_dob(value: Any) -> Any:
    """``2000-10-01T00:00:00.000Z`` -> ``2000-10-01T00:00:00Z``."""
    if isinstance(value, str):
        return _DOB_MILLIS.sub("Z", value)
    return value


def _applicant(applicant: dict[str, Any]) -> dict[str, Any]:
    return {
        "applicantId": applicant.get("applicantId"),
        "firstName": applicant.get("firstName"),
        "lastName": applicant.get("lastName"),
        "gender": applicant.get("gender"),
        "relationship": map_relationship(applicant.get("relationship")),
        "ssn": applicant.get("ssn"),
        "dob": normalize_dob(applicant.get("dob")),
        "smoker": applicant.get("smoker"),
        "weight": applicant.get("weight"),
        "heightFeet": applicant.get("heightFeet"),
        "heightInches": applicant.get("heightInches"),
        "phoneNumbers": applicant.get("phoneNumbers") or [],
        "questionResponses": applicant.get("questionResponses") or [],
    }


def _payment_information(payment: dict[str, Any] | None) -> dict[str, Any] | None:
    if not payment:
        return None
    block = {
        "accountHolderFirstName": payment.get("accountHolderFirstName"),
        "accountHolderLastName": payment.get("accountHolderLastName"),
        "accountType": payment.get("accountType"),
    }
    if payment.get("accountType") == "CreditCard":
        block.update(
            {
                "creditCardNumber": payment.get("creditCardNumber"),
                "expirationMonth": _to_int(payment.get("expirationMonth")),
                "expirationYear": _to_int(payment.get("expirationYear")),
                "cvv": payment.get("cvv"),
                "cardBrand": payment.get("cardBrand"),
            }
        )
    else:
        block.update(
            {
                "accountTypeBank": payment.get("accountTypeBank"),
                "accountNumber": payment.get("accountNumber"),
                "routingNumber": payment.get("routingNumber"),
                "bankName": payment.get("bankName"),
                "desiredDraftDate": payment.get("desiredDraftDate"),
            }
        )
    return block


def build_allstate_payload(payload: dict[str, Any]) -> dict[str, Any]:
    """Reshape an internal enrollment payload into the Allstate enrollment schema.

    Applicants are carried inside ``demographics``; the carrier rejects the
    extra address and phone fields, so they are dropped.  Effective dates are
    passed through as-is.
    """
    raw_demographics = dict(payload.get("demographics") or {})
    applicants = raw_demographics.pop("applicants", None) or payload.get("applicants") or []
    for dropped in ("address2", "alternatePhone", "zipCodePlus4"):
        raw_demographics.pop(dropped, None)

    address1 = raw_demographics.get("address1")
    if isinstance(address1, str):
        address1 = address1.strip()

    is_e_fulfillment = raw_demographics.get("isEFulfillment")
    demographics = {
        "zipCode": raw_demographics.get("zipCode"),
        "email": raw_demographics.get("email"),
        "address1": address1,
        "city": raw_demographics.get("city"),
        "state": raw_demographics.get("state"),
        "phone": raw_demographics.get("phone"),
        "applicants": [_applicant(applicant) for applicant in applicants],
        "isEFulfillment": True if is_e_fulfillment is None else is_e_fulfillment,
    }

    coverages = [
        {
            "planKey": coverage.get("planKey"),
            "monthlyPremium": coverage.get("monthlyPremium"),
            "effectiveDate": coverage.get("effectiveDate"),
            "paymentFrequency": coverage.get("paymentFrequency"),
            "applicants": coverage.get("applicants") or [],
        }
        for coverage in payload.get("coverages") or []
    ]

    top_level_e_fulfillment = payload.get("isEFulfillment")
    return _json_safe(
        {
            "demographics": demographics,
            "coverages": coverages,
            "paymentInformation": _payment_information(payload.get("paymentInformation")),
            "partnerInformation": payload.get("partnerInformation") or {},
            "attestationInformation": payload.get("attestationInformation") or {},
            "enrollmentDate": payload.get("enrollmentDate"),
            "isEFulfillment": True if top_level_e_fulfillment is None else top_level_e_fulfillment,
        }
    )


def extract_error_message(body: Any, status_code: int) -> str:
    """Readable message from an Allstate error body; the body itself is left untouched."""
    message = f"Allstate API error ({status_code})"
    if isinstance(body, list) and body:
        first = body[0] if isinstance(body[0], dict) else {}
        detail = first.get("errorDetail")
        if detail:
            try:
                parsed = json.loads(detail)
            except (TypeError, ValueError):
                return str(detail)
            if isinstance(parsed, dict):
                for value in parsed.values():
                    if isinstance(value, list):
                        if value:
                            return str(value[0])
                    elif value:
                        return str(value)
            return str(detail)
        if first.get("errorCode"):
            return f"Error {first['errorCode']}: Unknown error"
        return message
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return message


def _error_body(response: httpx.Response) -> Any:
    text = response.text
    try:
        return json.loads(text)
    except ValueError:
        return {"message": text, "rawResponse": text[:200]}


def parse_policy_outcomes(body: Any, payload: dict[str, Any]) -> list[CarrierPolicyOutcome]:
    coverages = payload.get("coverages") or []
    items = None
    if isinstance(body, list):
        items = body
    elif isinstance(body, dict):
        for key in _RESULT_LIST_KEYS:
            if isinstance(body.get(key), list):
                items = body[key]
                break

    if items:
        outcomes = []
        for item in items:
            if not isinstance(item, dict):
                continue
            errors = item.get("submissionErrors") or item.get("errors") or []
            outcomes.append(
                CarrierPolicyOutcome(
                    plan_key=item.get("planKey"),
                    submission_received=bool(item.get("submissionReceived", not errors)),
                    policy_no=item.get("policyNo") or item.get("policyNumber"),
                    total_rate=_to_decimal(item.get("totalRate")),
                    effective_date=_to_date(item.get("effectiveDate")),
                    errors=errors if isinstance(errors, list) else [errors],
                )
            )
        return outcomes

    policy_numbers = body.get("policyNumbers") if isinstance(body, dict) else None
    outcomes = []
    for index, coverage in enumerate(coverages):
        plan_key = coverage.get("planKey")
        policy_no = None
        if isinstance(policy_numbers, dict):
            policy_no = policy_numbers.get(plan_key)
        elif isinstance(policy_numbers, list) and index < len(policy_numbers):
            policy_no = policy_numbers[index]
        outcomes.append(
            CarrierPolicyOutcome(
                plan_key=plan_key,
                submission_received=True,
                policy_no=str(policy_no) if policy_no is not None else None,
                total_rate=_to_decimal(coverage.get("monthlyPremium")),
                effective_date=_to_date(coverage.get("effectiveDate")),
            )
        )
    return outcomes


class AllstateRateCartClient(RateEngine):
    def __init__(
        self,
        *,
        api_url: str | None = None,
        api_key: str | None = None,
        agent_id: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = (api_url or settings.allstate_api_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.allstate_api_key
        self.agent_id = agent_id or settings.allstate_agent_id
        self.timeout_seconds = timeout_seconds or settings.rate_engine_timeout_seconds
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/RateCartAPI/api/RateCart"

    @staticmethod
    def _birth_date(value: Any) -> Any:
        if isinstance(value, str) and value and "T" not in value:
            try:
                return f"{date.fromisoformat(value[:10]).isoformat()}T00:00:00.000Z"
            except ValueError:
                return value
        return value

    def _applicants(self, applicants: list[dict[str, Any]]) -> list[dict[str, Any]]:
        mapped = []
        for index, applicant in enumerate(applicants):
            entry = {
                "birthDate": self._birth_date(applicant.get("dob")),
                "gender": applicant.get("gender"),
                "relationshipType": applicant.get("relationship")
                or ("Primary" if index == 0 else "Dependent"),
                "isSmoker": bool(applicant.get("smoker")),
                "hasPriorCoverage": bool(applicant.get("hasPriorCoverage")),
                "rateTier": applicant.get("eligibleRateTier") or "Standard",
                "memberId": applicant.get("applicantId")
                or ("primary-001" if index == 0 else f"additional-{index:03d}"),
            }
            if applicant.get("dateLastSmoked"):
                entry["dateLastSmoked"] = applicant["dateLastSmoked"]
            mapped.append(entry)
        return mapped

    def build_request(self, request: RateQuoteRequest) -> dict[str, Any]:
        return {
            "agentId": self.agent_id,
            "effectiveDate": request.effective_date,
            "zipCode": request.zip_code,
            "state": request.state,
            "applicants": self._applicants(request.applicants),
            "paymentFrequency": request.payment_frequency,
            "plansToRate": [
                {
                    "planKey": request.plan_key,
                    "productCode": request.product_code,
                    "paymentFrequency": request.payment_frequency,
                }
            ],
        }

    async def quote(self, request: RateQuoteRequest) -> RateQuote:
        if not self.api_key:
            return RateQuote.failed("ALLSTATE_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(
                    self.endpoint,
                    json=_json_safe(self.build_request(request)),
                    headers={"x-api-key": self.api_key, "Content-Type": "application/json"},
                )
        except httpx.TimeoutException:
            return RateQuote.failed(f"Rate/Cart API timed out after {self.timeout_seconds:g}s")
        except httpx.HTTPError as exc:
            return RateQuote.failed(f"Rate/Cart API request failed: {exc}")

        if not response.is_success:
            return RateQuote.failed(f"Rate/Cart API error: {response.text[:200]}")

        try:
            body = response.json()
        except ValueError:
            return RateQuote.failed("Rate/Cart API returned a non-JSON body")

        plans = body.get("plans") if isinstance(body, dict) else None
        plan = next(
            (
                item
                for item in plans or []
                if isinstance(item, dict)
                and (
                    item.get("planKey") == request.plan_key
                    or item.get("productCode") == request.product_code
                )
            ),
            None,
        )
        if plan is None:
            return RateQuote.failed("Plan not found in Rate/Cart response")

        for key in _PRICE_KEYS:
            price = _to_decimal(plan.get(key))
            if price is not None and price > 0:
                return RateQuote.ok(price)
        return RateQuote.failed("Price not available in Rate/Cart response")


class AllstateEnrollmentAdapter(CarrierAdapter):
    slug = "allstate"
    display_name = "Allstate"

    def __init__(
        self,
        *,
        enrollment_url: str | None = None,
        auth_token: str | None = None,
        timeout_seconds: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        rate_engine: RateEngine | None = None,
    ) -> None:
        self.enrollment_url = enrollment_url or settings.allstate_enrollment_url
        self.auth_token = auth_token if auth_token is not None else settings.allstate_auth_token
        self.timeout_seconds = timeout_seconds or settings.carrier_timeout_seconds
        self.transport = transport
        self._rate_engine = rate_engine or AllstateRateCartClient(transport=transport)

    @property
    def rate_engine(self) -> RateEngine:
        return self._rate_engine

    def is_configured(self) -> bool:
        return bool(self.enrollment_url and self.auth_token)

    def build_wire_payload(self, payload: dict[str, Any]) -> dict[str, Any]:
        return build_allstate_payload(payload)

    async def submit(self, payload: dict[str, Any]) -> CarrierResult:
        if not self.auth_token:
            raise CarrierError("ALLSTATE_AUTH_TOKEN is not configured")

        wire_payload = self.build_wire_payload(payload)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self.transport
            ) as client:
                response = await client.post(
                    self.enrollment_url,
                    json=wire_payload,
                    headers={
                        "Authorization": f"Basic {self.auth_token}",
                        "Accept": "application/json",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as exc:
            raise CarrierError(
                f"Allstate enrollment timed out after {self.timeout_seconds:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise CarrierError(f"Allstate enrollment request failed: {exc}") from exc

        logger.info("Allstate enrollment responded status=%s", response.status_code)
        if not response.is_success:
            body = _error_body(response)
            raise CarrierError(
                extract_error_message(body, response.status_code),
                status_code=response.status_code,
                carrier_error_body=body,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise CarrierError(
                "Allstate enrollment returned a non-JSON body",
                carrier_error_body={"rawResponse": response.text[:200]},
            ) from exc
        return CarrierResult(raw=body, policies=parse_policy_outcomes(body, payload))
