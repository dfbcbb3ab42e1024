from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import and_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.application import Application
from app.models.application_payment_info import ApplicationPaymentInfo
from app.models.submission_result import SubmissionResult
from app.models.user_payment_method import UserPaymentMethod
from app.schemas.enrollment import ApplicationStatus
from app.services.audit import record_status_change
from app.services.carriers.adapter import CarrierPolicyOutcome


class EnrollmentStore:
    """Data-store access for the submission pipeline."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_application(self, application_id: UUID) -> Application | None:
        stmt = (
            select(Application)
            .options(selectinload(Application.coverages))
            .where(Application.id == application_id)
        )
        result = await self.db.execute(stmt)
        return result.scalars().unique().first()

    async def get_current_payment_info(self, application_id: UUID) -> ApplicationPaymentInfo | None:
        stmt = select(ApplicationPaymentInfo).where(
            ApplicationPaymentInfo.application_id == application_id,
            ApplicationPaymentInfo.is_current.is_(True),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_saved_payment_method(self, method_id: UUID) -> UserPaymentMethod | None:
        stmt = select(UserPaymentMethod).where(UserPaymentMethod.id == method_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def claim_for_submission(
        self,
        application_id: UUID,
        *,
        expected_status: str,
        stale_before: datetime | None = None,
    ) -> bool:
        """Atomically move the application to ``submitting``.

        Succeeds only if the row still has ``expected_status``; for a stale
        ``submitting`` claim the previous claim must also predate ``stale_before``
        and must not have reached the carrier.
        The claim is committed right away so concurrent requests observe it.
        """
        now = datetime.now(timezone.utc)
        conditions = [Application.id == application_id, Application.status == expected_status]
        if expected_status == ApplicationStatus.SUBMITTING.value:
            conditions.append(Application.submission_started_at < (stale_before or now))
            conditions.append(Application.carrier_submitted_at.is_(None))
        stmt = (
            update(Application)
            .where(and_(*conditions))
            .values(
                status=ApplicationStatus.SUBMITTING.value,
                submission_started_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return (result.rowcount or 0) == 1

    async def mark_carrier_call_started(self, application_id: UUID) -> None:
        """Stamp and commit ``carrier_submitted_at`` before the carrier is called."""
        now = datetime.now(timezone.utc)
        stmt = (
            update(Application)
            .where(Application.id == application_id)
            .values(carrier_submitted_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)
        await self.db.commit()

    async def _finish(
        self,
        application_id: UUID,
        *,
        status: str,
        values: dict[str, Any],
    ) -> None:
        now = datetime.now(timezone.utc)
        stmt = (
            update(Application)
            .where(Application.id == application_id)
            .values(status=status, submission_started_at=None, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        await self.db.execute(stmt)

    async def mark_submitted(self, application_id: UUID, api_response: Any) -> None:
        await self._finish(
            application_id,
            status=ApplicationStatus.SUBMITTED.value,
            values={"api_response": api_response},
        )

    async def mark_failed(self, application_id: UUID, api_error: dict[str, Any]) -> None:
        await self._finish(
            application_id,
            status=ApplicationStatus.SUBMISSION_FAILED.value,
            values={"api_error": api_error, "carrier_submitted_at": None},
        )

    def append_results(
        self,
        application_id: UUID,
        carrier_slug: str | None,
        outcomes: Sequence[CarrierPolicyOutcome],
    ) -> list[SubmissionResult]:
        rows = [
            SubmissionResult(
                application_id=application_id,
                carrier_slug=carrier_slug,
                plan_key=outcome.plan_key,
                submission_received=outcome.submission_received,
                policy_no=outcome.policy_no,
                total_rate=outcome.total_rate,
                effective_date=outcome.effective_date,
                submission_errors=list(outcome.errors),
            )
            for outcome in outcomes
        ]
        for row in rows:
            self.db.add(row)
        return rows

    def record_status_change(
        self,
        application_id: UUID,
        *,
        actor_id: UUID | None,
        old_status: str | None,
        new_status: str,
        carrier_slug: str | None,
        reason: str | None = None,
    ) -> None:
        record_status_change(
            self.db,
            actor_id=actor_id,
            application_id=application_id,
            old_status=old_status,
            new_status=new_status,
            carrier_slug=carrier_slug,
            reason=reason,
        )

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()

    async def list_results(self, application_id: UUID) -> list[SubmissionResult]:
        stmt = (
            select(SubmissionResult)
            .where(SubmissionResult.application_id == application_id)
            .order_by(SubmissionResult.created_at.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())


def stale_claim_cutoff(minutes: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)
