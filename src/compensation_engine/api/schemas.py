"""Pydantic schemas for API request/response models."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    context: dict[str, Any] | None = None


# ============================================================================
# Scorecard / assessment schemas
# ============================================================================


class ScorecardMetricResponse(BaseModel):
    name: str
    description: str
    weight: Decimal
    min_score: Decimal
    max_score: Decimal


class ScorecardResponse(BaseModel):
    """Scorecard a payee is assessed against."""

    payee_id: UUID
    payee_name: str
    metrics: list[ScorecardMetricResponse]


class MetricScoreIn(BaseModel):
    metric_name: str = Field(min_length=1)
    score: Decimal
    notes: str | None = None


class AssessmentSubmit(BaseModel):
    """Self-service submission. The access token travels in a header."""

    payee_id: UUID
    quarter: str = Field(examples=["2026-Q1"])
    scores: list[MetricScoreIn]


class AssessmentValidate(BaseModel):
    """Admin review; metrics left out keep their self-reported score."""

    scores: list[MetricScoreIn] = Field(default_factory=list)
    notes: str | None = None


class AssessmentReject(BaseModel):
    notes: str | None = None


class AssessmentResponse(BaseModel):
    """Schema for assessment record response."""

    model_config = ConfigDict(from_attributes=True)

    assessment_id: UUID
    payee_id: UUID
    quarter: str
    self_scores: list[dict[str, Any]]
    self_calculated_score: Decimal
    submitted_at: datetime
    status: str
    validated_scores: list[dict[str, Any]] | None = None
    final_score: Decimal | None = None
    validated_by: str | None = None
    validated_at: datetime | None = None
    validation_notes: str | None = None
    bonus_paid: bool
    bonus_paid_in_month: str | None = None


class AssessmentListResponse(BaseModel):
    items: list[AssessmentResponse]
    total: int


class MissingSubmission(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    payee_id: UUID
    name: str
    email: str | None = None
    external_user_id: str | None = None


class MissingSubmissionsResponse(BaseModel):
    quarter: str
    items: list[MissingSubmission]
    total: int


# ============================================================================
# Statement schemas
# ============================================================================


class GenerateRequest(BaseModel):
    """Trigger a generation batch for a month."""

    month: str = Field(examples=["2026-03"])
    payee_ids: list[UUID] | None = None
    models: list[str] | None = None
    deliver: bool = True


class StatementResponse(BaseModel):
    """Schema for compensation statement response."""

    model_config = ConfigDict(from_attributes=True)

    statement_id: UUID
    payee_id: UUID
    month: str
    compensation_model: str
    breakdown: dict[str, Any]
    total_payout: Decimal
    assessment_id: UUID | None = None
    calculation_id: UUID
    status: str
    sent_at: datetime | None = None
    paid_at: datetime | None = None
    delivery_status: str
    delivery_errors: list[dict[str, Any]]
    delivery_refs: dict[str, str]
    created_by: str | None = None
    created_at: datetime


class StatementListResponse(BaseModel):
    items: list[StatementResponse]
    total: int


class StatementStatusUpdate(BaseModel):
    status: str = Field(examples=["sent", "paid"])


# ============================================================================
# Period schemas
# ============================================================================


class PeriodResponse(BaseModel):
    """Period arithmetic for a month."""

    month: str
    quarter: str
    bonus_quarter: str | None
    is_bonus_month: bool
    financial_year: str
    period_label: str
    days_in_month: int
