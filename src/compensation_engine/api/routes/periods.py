"""Period arithmetic endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path

from compensation_engine.api.schemas import ErrorResponse, PeriodResponse
from compensation_engine.calculators.periods import (
    bonus_quarter_for,
    days_in_month,
    financial_year,
    parse_month,
    period_label,
    quarter_of,
)

router = APIRouter(prefix="/periods", tags=["periods"])


@router.get(
    "/{month}",
    response_model=PeriodResponse,
    responses={400: {"model": ErrorResponse}},
)
async def describe_month(month: Annotated[str, Path()]) -> PeriodResponse:
    """Quarter, bonus quarter and statement labels for a month."""
    parsed = parse_month(month)
    bonus_quarter = bonus_quarter_for(parsed)
    return PeriodResponse(
        month=str(parsed),
        quarter=str(quarter_of(parsed)),
        bonus_quarter=str(bonus_quarter) if bonus_quarter else None,
        is_bonus_month=bonus_quarter is not None,
        financial_year=financial_year(parsed),
        period_label=period_label(parsed),
        days_in_month=days_in_month(parsed),
    )
