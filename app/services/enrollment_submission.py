"""Submit an approved application to its carrier.

Steps: effective-date guard, claim (``submitting``), payment resolution,
per-line re-pricing, payload build, one carrier call, then the outcome is
persisted.  Every failure after the claim leaves the application in
``submission_failed`` with an ``api_error`` record an operator can act on.
The claim row is stamped ``carrier_submitted_at`` just before the carrier
call; a stamped ``submitting`` row is never taken over by a later request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Protocol, Sequence
from uuid import UUID

from app.core.context import set_application_id
from app.core.settings import settings
from app.models.application import Application
from app.models.application_payment_info import ApplicationPaymentInfo
from app.models.submission_result import SubmissionResult
from app.models.user_payment_method import UserPaymentMethod
from app.schemas.enrollment import SUBMITTABLE_STATUSES, ApplicationStatus
from app.services.carriers.adapter import (
    CarrierAdapter,
    CarrierError,
    CarrierPolicyOutcome,
    CarrierResult,
)
from app.services.carriers.registry import CarrierRegistry
from app.services.enrollment_errors import (
    ApplicationNotFoundError,
    CarrierRejectionError,
    CarrierUnavailableError,
    EnrollmentSubmissionError,
    EnrollmentValidationError,
    PaymentInfoNotFoundError,
    SubmissionConflictError,
    SubmissionInternalError,
    SubmissionUnrecordedError,
)
from app.services.enrollment_payload import PriceChange, build_enrollment_payload
from app.services.enrollment_store import stale_claim_cutoff
from app.services.payment_secrets import PaymentSecretResolver
from app.services.price_recalculation import LineRecalculation, PriceRecalculationClient

logger = logging.getLogger(__name__)


class SubmissionStore(Protocol):
    async def get_application(self, application_id: UUID) -> Application | None: ...

    async def get_current_payment_info(self, application_id: UUID) -> ApplicationPaymentInfo | None: ...

    async def get_saved_payment_method(self, method_id: UUID) -> UserPaymentMethod | None: ...

    async def claim_for_submission(
        self, application_id: UUID, *, expected_status: str, stale_before: datetime | None = None
    ) -> bool: ...

    async def mark_carrier_call_started(self, application_id: UUID) -> None: ...

    async def mark_submitted(self, application_id: UUID, api_response: Any) -> None: ...

    async def mark_failed(self, application_id: UUID, api_error: dict[str, Any]) -> None: ...

    def append_results(
        self,
        application_id: UUID,
        carrier_slug: str | None,
        outcomes: Sequence[CarrierPolicyOutcome],
    ) -> list[SubmissionResult]: ...

    def record_status_change(
        self,
        application_id: UUID,
        *,
        actor_id: UUID | None,
        old_status: str | None,
        new_status: str,
        carrier_slug: str | None,
        reason: str | None = None,
    ) -> None: ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


@dataclass(slots=True)
class SubmissionOutcome:
    application_id: UUID
    status: str
    carrier_slug: str
    carrier_response: Any
    price_changes: list[PriceChange] = field(default_factory=list)


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def effective_start_date(application: Application) -> date | None:
    """The application's own effective date, else the first coverage line's."""
    if application.effective_date:
        return _parse_date(application.effective_date)
    coverages = (application.enrollment_data or {}).get("coverages") or []
    if coverages and isinstance(coverages[0], dict):
        return _parse_date(coverages[0].get("effectiveDate"))
    return None


def coverage_effective_dates(application: Application) -> list[tuple[str | None, date]]:
    """Every line-level effective date, from the enrollment data and the coverage rows."""
    dates: list[tuple[str | None, date]] = []
    for line in (application.enrollment_data or {}).get("coverages") or []:
        if not isinstance(line, dict):
            continue
        value = _parse_date(line.get("effectiveDate"))
        if value is not None:
            dates.append((line.get("planKey"), value))
    for coverage in application.coverages or []:
        value = _parse_date(coverage.effective_date)
        if value is not None:
            dates.append((coverage.plan_key, value))
    return dates


def ensure_future_effective_date(application: Application, today: date) -> date:
    start = effective_start_date(application)
    if start is None:
        raise EnrollmentValidationError(
            "The application has no effective date",
            details="Set an effective date on the application before submitting the enrollment.",
        )
    if start <= today:
        raise EnrollmentValidationError(
            "The effective date must be at least one day after today",
            details=(
                f"The current effective date is {start.isoformat()}. Update the application's "
                "effective date before submitting the enrollment."
            ),
        )
    for plan_key, line_date in coverage_effective_dates(application):
        if line_date <= today:
            raise EnrollmentValidationError(
                f"The effective date of plan {plan_key} must be at least one day after today",
                details=(
                    f"Plan {plan_key} starts on {line_date.isoformat()}. Update the coverage's "
                    "effective date before submitting the enrollment."
                ),
            )
    return start


def classify_carrier_error(exc: CarrierError) -> EnrollmentSubmissionError:
    details = exc.carrier_error_body if exc.carrier_error_body is not None else exc.message
    if exc.is_rejection:
        return CarrierRejectionError(exc.message, status_code=exc.status_code, details=details)
    return CarrierUnavailableError(exc.message, details=details)


class EnrollmentSubmissionService:
    def __init__(
        self,
        store: SubmissionStore,
        resolver: PaymentSecretResolver,
        carriers: CarrierRegistry,
        *,
        today: Callable[[], date] = _utc_today,
        stale_claim_minutes: int | None = None,
        parallel_recalculation: bool | None = None,
    ) -> None:
        self.store = store
        self.resolver = resolver
        self.carriers = carriers
        self.today = today
        self.stale_claim_minutes = (
            settings.submission_claim_stale_minutes
            if stale_claim_minutes is None
            else stale_claim_minutes
        )
        self.parallel_recalculation = parallel_recalculation

    async def submit(self, application_id: UUID, *, actor_id: UUID | None = None) -> SubmissionOutcome:
        set_application_id(str(application_id))
        application = await self.store.get_application(application_id)
        if application is None:
            raise ApplicationNotFoundError("Application not found")

        start = ensure_future_effective_date(application, self.today())
        carrier_slug = application.carrier_slug or settings.default_carrier_slug
        adapter = self.carriers.get(carrier_slug)

        previous_status = await self._claim(application)
        logger.info(
            "Submission claimed carrier=%s previous_status=%s",
            carrier_slug,
            previous_status,
            extra={"step": "claim"},
        )

        try:
            result, price_changes = await self._run(application, adapter, start)
        except CarrierError as exc:
            logger.error(
                "Carrier %s rejected or failed the enrollment status=%s: %s",
                carrier_slug,
                exc.status_code,
                exc.message,
                exc_info=not exc.is_rejection,
                extra={"step": "submit"},
            )
            error = classify_carrier_error(exc)
            await self._record_failure(
                application.id,
                previous_status,
                carrier_slug,
                error,
                carrier_error_body=exc.carrier_error_body,
                outcomes=self._failed_outcomes(application, exc),
                actor_id=actor_id,
            )
            raise error from exc
        except EnrollmentSubmissionError as exc:
            await self._record_failure(
                application.id, previous_status, carrier_slug, exc, actor_id=actor_id
            )
            raise
        except Exception as exc:
            logger.exception("Enrollment submission failed unexpectedly", extra={"step": "submit"})
            error = SubmissionInternalError(
                "Enrollment submission failed",
                details=f"{exc.__class__.__name__} while submitting the enrollment",
            )
            await self._record_failure(
                application.id, previous_status, carrier_slug, error, actor_id=actor_id
            )
            raise error from exc

        await self._record_success(application.id, previous_status, carrier_slug, result, actor_id)
        logger.info("Enrollment submitted", extra={"step": "persist"})
        return SubmissionOutcome(
            application_id=application.id,
            status=ApplicationStatus.SUBMITTED.value,
            carrier_slug=carrier_slug,
            carrier_response=result.raw,
            price_changes=price_changes,
        )

    async def _claim(self, application: Application) -> str:
        status = application.status
        stale_before = None
        if status == ApplicationStatus.SUBMITTING.value:
            stale_before = stale_claim_cutoff(self.stale_claim_minutes)
            started = application.submission_started_at
            if started is not None and started >= stale_before:
                raise SubmissionConflictError(
                    "Another submission for this application is in progress",
                    details={"status": status},
                )
            if application.carrier_submitted_at is not None:
                raise SubmissionConflictError(
                    "The carrier already received this enrollment; the outcome needs manual review",
                    details={
                        "status": status,
                        "carrierSubmittedAt": application.carrier_submitted_at.isoformat(),
                    },
                )
        elif status not in SUBMITTABLE_STATUSES:
            raise SubmissionConflictError(
                f"Applications in status {status} cannot be submitted",
                details={"status": status, "allowed": sorted(SUBMITTABLE_STATUSES)},
            )

        claimed = await self.store.claim_for_submission(
            application.id, expected_status=status, stale_before=stale_before
        )
        if not claimed:
            raise SubmissionConflictError(
                "Another submission for this application is in progress",
                details={"status": status},
            )
        return status

    async def _run(
        self, application: Application, adapter: CarrierAdapter, start: date
    ) -> tuple[CarrierResult, list[PriceChange]]:
        payment_record = await self.store.get_current_payment_info(application.id)
        if payment_record is None:
            raise PaymentInfoNotFoundError("The application has no current payment information")
        payment = await self.resolver.resolve(payment_record)

        enrollment_data = application.enrollment_data or {}
        coverages = list(application.coverages or [])
        recalculations: dict[str, LineRecalculation] = {}
        if adapter.rate_engine is not None:
            recalculator = PriceRecalculationClient(
                adapter.rate_engine, parallel=self.parallel_recalculation
            )
            recalculations = await recalculator.recalculate_all(
                enrollment_data, coverages, default_effective_date=start.isoformat()
            )

        built = build_enrollment_payload(
            enrollment_data,
            payment=payment,
            recalculations=recalculations,
            persisted_coverages=coverages,
        )
        logger.info(
            "Sending enrollment to %s with %d coverage line(s)",
            adapter.slug,
            len(built.payload.get("coverages") or []),
            extra={"step": "submit"},
        )
        await self.store.mark_carrier_call_started(application.id)
        result = await adapter.submit(built.payload)
        return result, built.price_changes

    async def _record_success(
        self,
        application_id: UUID,
        previous_status: str,
        carrier_slug: str,
        result: CarrierResult,
        actor_id: UUID | None,
    ) -> None:
        """Persist an accepted enrollment, retrying once in a fresh transaction.

        If both attempts fail the row keeps ``carrier_submitted_at``, which blocks
        any takeover of the claim, and the policies are left in the error log.
        """
        policies = [
            {"planKey": outcome.plan_key, "policyNo": outcome.policy_no}
            for outcome in result.policies
        ]
        for attempt in (1, 2):
            try:
                await self.store.mark_submitted(application_id, result.raw)
                self.store.append_results(application_id, carrier_slug, result.policies)
                self.store.record_status_change(
                    application_id,
                    actor_id=actor_id,
                    old_status=previous_status,
                    new_status=ApplicationStatus.SUBMITTED.value,
                    carrier_slug=carrier_slug,
                )
                await self.store.commit()
                return
            except Exception as exc:
                logger.error(
                    "Carrier %s accepted the enrollment but saving it failed (attempt %d) policies=%s",
                    carrier_slug,
                    attempt,
                    policies,
                    exc_info=True,
                    extra={"step": "persist"},
                )
                try:
                    await self.store.rollback()
                except Exception:
                    logger.exception("Rollback after a failed save also failed", extra={"step": "persist"})
                if attempt == 2:
                    raise SubmissionUnrecordedError(
                        "The carrier accepted the enrollment but the result could not be saved",
                        details={"carrier": carrier_slug, "policies": policies},
                    ) from exc

    @staticmethod
    def _failed_outcomes(application: Application, exc: CarrierError) -> list[CarrierPolicyOutcome]:
        error = exc.carrier_error_body if exc.carrier_error_body is not None else exc.message
        lines = (application.enrollment_data or {}).get("coverages") or []
        return [
            CarrierPolicyOutcome(
                plan_key=line.get("planKey"),
                submission_received=False,
                effective_date=_parse_date(line.get("effectiveDate")),
                errors=[error],
            )
            for line in lines
            if isinstance(line, dict)
        ]

    async def _record_failure(
        self,
        application_id: UUID,
        previous_status: str,
        carrier_slug: str,
        error: EnrollmentSubmissionError,
        *,
        carrier_error_body: Any | None = None,
        outcomes: Sequence[CarrierPolicyOutcome] = (),
        actor_id: UUID | None = None,
    ) -> None:
        api_error = {
            "message": error.message,
            "code": error.code,
            "carrierErrorBody": carrier_error_body,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self.store.rollback()
            await self.store.mark_failed(application_id, api_error)
            if outcomes:
                self.store.append_results(application_id, carrier_slug, outcomes)
            self.store.record_status_change(
                application_id,
                actor_id=actor_id,
                old_status=previous_status,
                new_status=ApplicationStatus.SUBMISSION_FAILED.value,
                carrier_slug=carrier_slug,
                reason=error.code,
            )
            await self.store.commit()
        except Exception:
            # The caller still gets the original error.
            logger.exception(
                "Could not persist the submission failure record", extra={"step": "persist"}
            )
