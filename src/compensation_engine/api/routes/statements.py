"""Compensation statement API endpoints."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from compensation_engine.api.dependencies import ActorId, DbSession, Generator
from compensation_engine.api.schemas import (
    ErrorResponse,
    GenerateRequest,
    StatementListResponse,
    StatementResponse,
    StatementStatusUpdate,
)
from compensation_engine.services.generation_service import GenerationRequest
from compensation_engine.services.statement_service import StatementService

router = APIRouter(prefix="/statements", tags=["statements"])


@router.post(
    "/generate",
    status_code=status.HTTP_200_OK,
    responses={400: {"model": ErrorResponse}},
)
async def generate_statements(
    generator: Generator,
    actor_id: ActorId,
    payload: GenerateRequest,
) -> dict[str, Any]:
    """Generate statements for a month. Re-running a month is a no-op."""
    result = await generator.generate(
        GenerationRequest(
            month=payload.month,
            payee_ids=payload.payee_ids,
            models=payload.models,
            actor_id=actor_id,
            deliver=payload.deliver,
        )
    )
    return result.to_dict()


@router.get("", response_model=StatementListResponse)
async def list_statements(
    db: DbSession,
    month: str | None = None,
    payee_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> StatementListResponse:
    statements = await StatementService(db).list_statements(
        month=month, payee_id=payee_id, status=status_filter
    )
    return StatementListResponse(
        items=[StatementResponse.model_validate(s) for s in statements],
        total=len(statements),
    )


@router.get(
    "/{statement_id}",
    response_model=StatementResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_statement(
    db: DbSession,
    statement_id: Annotated[UUID, Path()],
) -> StatementResponse:
    statement = await StatementService(db).get_statement(statement_id)
    return StatementResponse.model_validate(statement)


@router.patch(
    "/{statement_id}/status",
    response_model=StatementResponse,
    responses={
        400: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)
async def update_statement_status(
    db: DbSession,
    actor_id: ActorId,
    statement_id: Annotated[UUID, Path()],
    payload: StatementStatusUpdate,
) -> StatementResponse:
    """Advance a statement: draft -> sent -> paid (or draft -> paid)."""
    statement = await StatementService(db).update_status(
        statement_id, payload.status, actor_id=actor_id
    )
    await db.commit()
    return StatementResponse.model_validate(statement)
