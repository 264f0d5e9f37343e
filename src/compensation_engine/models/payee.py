"""Payee (staff member) model with compensation configuration."""

from __future__ import annotations

import secrets
from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from compensation_engine.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from compensation_engine.models.assessment import AssessmentRecord
    from compensation_engine.models.statement import CompensationStatement


def generate_access_token() -> str:
    """Generate a self-service capability token (64 hex chars)."""
    return secrets.token_hex(32)


class Payee(Base, TimestampMixin):
    """A staff member and the configuration of their pay model.

    Only the fields belonging to ``compensation_model`` are read when a
    statement is computed; the others are kept but ignored.
    """

    __tablename__ = "payee"

    payee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    employee_code: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    designation: Mapped[str] = mapped_column(String, nullable=False, default="Instructor")
    email: Mapped[str | None] = mapped_column(String, nullable=True)
    external_user_id: Mapped[str | None] = mapped_column(
        String, nullable=True, unique=True, index=True
    )
    join_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    compensation_model: Mapped[str] = mapped_column(
        String, nullable=False, default="standard"
    )

    # Standard
    base_salary: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    quarterly_bonus_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    # Senior: {"fixed": [...], "variable": [...]} plus current-period extras
    salary_components: Mapped[dict[str, Any] | None] = mapped_column(
        JSONType, nullable=True
    )
    senior_tds_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )
    travel_reimbursement: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0")
    )

    # Per-class: {"tds_rate": "0.10", "class_types": [...]}
    class_config: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    # Scorecard
    use_default_scorecard: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=True
    )
    scorecard_template: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONType, nullable=False, default=list
    )

    access_token: Mapped[str] = mapped_column(
        String, nullable=False, unique=True, default=generate_access_token
    )

    # Personalized links for the directory resolver
    links: Mapped[dict[str, str]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'inactive', 'on_leave')",
            name="payee_status_check",
        ),
        CheckConstraint("base_salary >= 0", name="payee_base_salary_check"),
        CheckConstraint(
            "quarterly_bonus_amount >= 0", name="payee_quarterly_bonus_check"
        ),
    )

    # Relationships
    assessments: Mapped[list[AssessmentRecord]] = relationship(back_populates="payee")
    statements: Mapped[list[CompensationStatement]] = relationship(
        back_populates="payee"
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"
