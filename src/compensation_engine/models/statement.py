"""Monthly compensation statement model."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compensation_engine.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from compensation_engine.models.payee import Payee


class CompensationStatement(Base, TimestampMixin):
    """One statement per payee per calendar month.

    ``breakdown`` and ``total_payout`` are written once at creation; only
    ``status`` and the delivery metadata change afterwards.
    """

    __tablename__ = "compensation_statement"

    statement_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payee_id: Mapped[UUID] = mapped_column(
        ForeignKey("payee.payee_id", ondelete="RESTRICT"),
        nullable=False,
    )
    month: Mapped[str] = mapped_column(String(7), nullable=False)
    compensation_model: Mapped[str] = mapped_column(String, nullable=False)
    breakdown: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    total_payout: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    assessment_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("assessment_record.assessment_id"),
        nullable=True,
    )
    calculation_id: Mapped[UUID] = mapped_column(nullable=False)

    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    sent_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Delivery metadata (never affects monetary fields)
    delivery_status: Mapped[str] = mapped_column(
        String, nullable=False, default="pending"
    )
    delivery_errors: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )
    delivery_refs: Mapped[dict[str, str]] = mapped_column(
        JSONType, nullable=False, default=dict
    )

    created_by: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint("payee_id", "month", name="statement_payee_month_unique"),
        CheckConstraint(
            "status IN ('draft', 'sent', 'paid')",
            name="statement_status_check",
        ),
        CheckConstraint(
            "delivery_status IN ('pending', 'delivered', 'degraded', 'skipped')",
            name="statement_delivery_status_check",
        ),
        CheckConstraint(
            "compensation_model IN ('standard', 'senior', 'per_class')",
            name="statement_model_check",
        ),
        Index("ix_statement_month_status", "month", "status"),
    )

    # Relationships
    payee: Mapped[Payee] = relationship(back_populates="statements")
