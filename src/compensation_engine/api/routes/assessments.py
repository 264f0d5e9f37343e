"""Self-assessment API endpoints."""

from dataclasses import asdict
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from compensation_engine.api.dependencies import AccessToken, ActorId, DbSession
from compensation_engine.api.schemas import (
    AssessmentListResponse,
    AssessmentReject,
    AssessmentResponse,
    AssessmentSubmit,
    AssessmentValidate,
    ErrorResponse,
    MissingSubmission,
    MissingSubmissionsResponse,
    ScorecardMetricResponse,
    ScorecardResponse,
)
from compensation_engine.calculators.periods import parse_quarter
from compensation_engine.errors import PermissionDeniedError
from compensation_engine.models import Payee
from compensation_engine.services.assessment_service import AssessmentService

router = APIRouter(prefix="/assessments", tags=["assessments"])


def _scorecard_response(payee: Payee, metrics) -> ScorecardResponse:
    return ScorecardResponse(
        payee_id=payee.payee_id,
        payee_name=payee.name,
        metrics=[ScorecardMetricResponse(**asdict(m)) for m in metrics],
    )


# ============================================================================
# Self-service
# ============================================================================


@router.get(
    "/form",
    response_model=ScorecardResponse,
    responses={403: {"model": ErrorResponse}},
)
async def get_submission_form(db: DbSession, access_token: AccessToken) -> ScorecardResponse:
    """Resolve the caller's token to their payee and scorecard."""
    service = AssessmentService(db)
    payee = await service.get_payee_by_token(access_token)
    if payee is None:
        raise PermissionDeniedError("Unknown access token")
    metrics = await service.get_scorecard(payee.payee_id)
    return _scorecard_response(payee, metrics)


@router.post(
    "",
    response_model=AssessmentResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def submit_assessment(
    db: DbSession,
    access_token: AccessToken,
    payload: AssessmentSubmit,
) -> AssessmentResponse:
    """Submit a quarterly self-assessment."""
    service = AssessmentService(db)
    record = await service.submit(
        payee_id=payload.payee_id,
        quarter=payload.quarter,
        scores=[s.model_dump() for s in payload.scores],
        access_token=access_token,
    )
    await db.commit()
    return AssessmentResponse.model_validate(record)


# ============================================================================
# Admin
# ============================================================================


@router.get("", response_model=AssessmentListResponse)
async def list_assessments(
    db: DbSession,
    status_filter: Annotated[str, Query(alias="status")] = "pending_validation",
    quarter: str | None = None,
    payee_id: UUID | None = None,
) -> AssessmentListResponse:
    """List assessments; defaults to the pending validation queue."""
    service = AssessmentService(db)
    if payee_id is not None:
        records = await service.list_for_payee(payee_id, status_filter, quarter)
    else:
        records = await service.list_by_status(status_filter, quarter)
    return AssessmentListResponse(
        items=[AssessmentResponse.model_validate(r) for r in records],
        total=len(records),
    )


@router.get("/missing", response_model=MissingSubmissionsResponse)
async def list_missing_submissions(
    db: DbSession,
    quarter: Annotated[str, Query()],
) -> MissingSubmissionsResponse:
    """Active payees who have not submitted for a quarter."""
    payees = await AssessmentService(db).find_missing_submissions(quarter)
    return MissingSubmissionsResponse(
        quarter=str(parse_quarter(quarter)),
        items=[MissingSubmission.model_validate(p) for p in payees],
        total=len(payees),
    )


@router.get(
    "/scorecard/{payee_id}",
    response_model=ScorecardResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_scorecard(
    db: DbSession,
    payee_id: Annotated[UUID, Path()],
) -> ScorecardResponse:
    """Scorecard a payee is assessed against."""
    service = AssessmentService(db)
    payee = await service.get_payee(payee_id)
    return _scorecard_response(payee, await service.get_scorecard(payee_id))


@router.get(
    "/{assessment_id}",
    response_model=AssessmentResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_assessment(
    db: DbSession,
    assessment_id: Annotated[UUID, Path()],
) -> AssessmentResponse:
    record = await AssessmentService(db).get_assessment(assessment_id)
    return AssessmentResponse.model_validate(record)


@router.post(
    "/{assessment_id}/validate",
    response_model=AssessmentResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def validate_assessment(
    db: DbSession,
    actor_id: ActorId,
    assessment_id: Annotated[UUID, Path()],
    payload: AssessmentValidate,
) -> AssessmentResponse:
    """Validate a pending assessment; admin scores override per metric."""
    record = await AssessmentService(db).validate(
        assessment_id,
        validator_id=actor_id,
        scores=[s.model_dump() for s in payload.scores],
        notes=payload.notes,
    )
    await db.commit()
    return AssessmentResponse.model_validate(record)


@router.post(
    "/{assessment_id}/reject",
    response_model=AssessmentResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def reject_assessment(
    db: DbSession,
    actor_id: ActorId,
    assessment_id: Annotated[UUID, Path()],
    payload: AssessmentReject,
) -> AssessmentResponse:
    """Reject a pending assessment. Rejection is final for the quarter."""
    record = await AssessmentService(db).reject(
        assessment_id, reviewer_id=actor_id, notes=payload.notes
    )
    await db.commit()
    return AssessmentResponse.model_validate(record)
