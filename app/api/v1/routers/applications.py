from uuid import UUID

from fastapi import APIRouter, Depends, Request

from app.api import deps
from app.core.limiter import limiter
from app.core.settings import settings
from app.schemas.enrollment import (
    EnrollmentSubmissionResponse,
    PriceChangeDTO,
    SubmissionResultDTO,
    SubmissionResultListResponse,
)
from app.services.enrollment_errors import ApplicationNotFoundError
from app.services.enrollment_store import EnrollmentStore
from app.services.enrollment_submission import EnrollmentSubmissionService

router = APIRouter(prefix="/applications", tags=["applications"])


@router.post(
    "/{application_id}/submit-enrollment",
    response_model=EnrollmentSubmissionResponse,
    summary="Submit an approved application to its carrier",
)
@limiter.limit(lambda: f"{settings.submission_rate_limit_per_minute}/minute")
async def submit_enrollment(
    request: Request,
    application_id: UUID,
    actor: deps.CurrentActor = Depends(deps.require_enrollment_submitter),
    service: EnrollmentSubmissionService = Depends(deps.get_submission_service),
) -> EnrollmentSubmissionResponse:
    outcome = await service.submit(application_id, actor_id=actor.id)
    return EnrollmentSubmissionResponse(
        message="Enrollment submitted successfully",
        application_id=outcome.application_id,
        status=outcome.status,
        carrier=outcome.carrier_slug,
        result=outcome.carrier_response,
        pricing=[PriceChangeDTO.model_validate(change) for change in outcome.price_changes],
    )


@router.get(
    "/{application_id}/submission-results",
    response_model=SubmissionResultListResponse,
    summary="List carrier submission results for an application, newest first",
)
async def list_submission_results(
    application_id: UUID,
    actor: deps.CurrentActor = Depends(deps.require_enrollment_submitter),
    store: EnrollmentStore = Depends(deps.get_enrollment_store),
) -> SubmissionResultListResponse:
    if await store.get_application(application_id) is None:
        raise ApplicationNotFoundError("Application not found")
    rows = await store.list_results(application_id)
    items = [SubmissionResultDTO.model_validate(row) for row in rows]
    return SubmissionResultListResponse(items=items, total=len(items))
