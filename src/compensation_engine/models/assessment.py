"""Quarterly self-assessment (scorecard) record."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compensation_engine.models.base import Base, JSONType, TimestampMixin, utcnow

if TYPE_CHECKING:
    from compensation_engine.models.payee import Payee


class AssessmentRecord(Base, TimestampMixin):
    """One scorecard submission per payee per quarter.

    Leaves ``pending_validation`` exactly once; afterwards only the payout
    pair (``bonus_paid``, ``bonus_paid_in_month``) may change, and only from
    unpaid to paid.
    """

    __tablename__ = "assessment_record"

    assessment_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payee.payee_id", ondelete="CASCADE"),
        nullable=False,
    )
    quarter: Mapped[str] = mapped_column(String(7), nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Self-assessment
    self_scores: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False)
    self_calculated_score: Mapped[Decimal] = mapped_column(Numeric(7, 6), nullable=False)
    submitted_at: Mapped[datetime] = mapped_column(nullable=False, default=utcnow)

    # Validation
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending_validation"
    )
    validated_scores: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSONType, nullable=True
    )
    final_score: Mapped[Decimal | None] = mapped_column(Numeric(7, 6), nullable=True)
    validated_by: Mapped[str | None] = mapped_column(String, nullable=True)
    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    validation_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Payout tracking
    bonus_paid_in_month: Mapped[str | None] = mapped_column(String(7), nullable=True)
    bonus_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("payee_id", "quarter", name="assessment_payee_quarter_unique"),
        CheckConstraint(
            "status IN ('pending_validation', 'validated', 'rejected')",
            name="assessment_status_check",
        ),
        CheckConstraint(
            "quarter_number BETWEEN 1 AND 4", name="assessment_quarter_number_check"
        ),
        CheckConstraint(
            "self_calculated_score >= 0 AND self_calculated_score <= 1",
            name="assessment_self_score_range",
        ),
        Index("ix_assessment_status_payee", "status", "payee_id"),
    )

    # Relationships
    payee: Mapped[Payee] = relationship(back_populates="assessments")
