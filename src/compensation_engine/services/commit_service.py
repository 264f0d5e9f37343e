"""Idempotent commit service for compensation statements."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from compensation_engine.errors import ConflictError
from compensation_engine.models import AssessmentRecord, CompensationStatement
from compensation_engine.services.audit_service import AuditService
from compensation_engine.services.state_machine import AssessmentStatus

if TYPE_CHECKING:
    from compensation_engine.calculators.types import BonusContext, Breakdown


class BonusAlreadyPaidError(ConflictError):
    """Raised when the funding assessment was paid out by another writer."""

    def __init__(self, assessment_id: UUID, month: str):
        self.assessment_id = assessment_id
        self.month = month
        super().__init__(
            f"Bonus for assessment {assessment_id} was already paid; "
            f"statement for {month} not written",
            assessment_id=str(assessment_id),
        )


class CommitService:
    """Service for at-most-once statement persistence.

    Key invariants:
    1. One statement per (payee, month), enforced by unique constraint
    2. Retries are safe: an existing statement is returned, never rewritten
    3. A funded bonus is claimed with a conditional update in the same
       transaction as the statement; losing the claim aborts the whole write
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def find_statement(
        self, payee_id: UUID, month: str
    ) -> CompensationStatement | None:
        result = await self.session.execute(
            select(CompensationStatement).where(
                CompensationStatement.payee_id == payee_id,
                CompensationStatement.month == month,
            )
        )
        return result.scalar_one_or_none()

    async def commit_statement(
        self,
        payee_id: UUID,
        month: str,
        breakdown: Breakdown,
        bonus: BonusContext,
        calculation_id: UUID,
        actor_id: str,
        delivery_status: str = "pending",
    ) -> tuple[CompensationStatement, bool]:
        """Persist a statement unless one exists for (payee, month).

        Returns the statement and True if it was created by this call.

        Raises:
            BonusAlreadyPaidError: If the funding bonus was claimed concurrently;
                the caller must roll back.
        """
        stmt_insert = (
            self._insert(CompensationStatement)
            .values(
                payee_id=payee_id,
                month=month,
                compensation_model=breakdown.model.value,
                breakdown=breakdown.to_dict(),
                total_payout=breakdown.total_payout,
                assessment_id=breakdown.assessment_id,
                calculation_id=calculation_id,
                status="draft",
                delivery_status=delivery_status,
                created_by=actor_id,
            )
            .on_conflict_do_nothing(index_elements=["payee_id", "month"])
        )
        result = await self.session.execute(stmt_insert)
        statement = await self.find_statement(payee_id, month)
        if statement is None:
            raise ConflictError(f"Statement for {payee_id} {month} vanished after insert")

        if result.rowcount == 0:
            # Another writer got here first; its statement stands
            return statement, False

        await self.audit.record(
            actor_id=actor_id,
            action="statement_created",
            entity="statement",
            entity_id=statement.statement_id,
            after={
                "month": month,
                "compensation_model": statement.compensation_model,
                "total_payout": statement.total_payout,
                "calculation_id": calculation_id,
            },
        )

        if breakdown.assessment_id is not None:
            await self.claim_bonus(breakdown.assessment_id, month, actor_id, bonus)

        return statement, True

    async def claim_bonus(
        self,
        assessment_id: UUID,
        month: str,
        actor_id: str,
        bonus: BonusContext | None = None,
    ) -> None:
        """Flip the payout pair false -> true, exactly once."""
        result = await self.session.execute(
            update(AssessmentRecord)
            .where(
                AssessmentRecord.assessment_id == assessment_id,
                AssessmentRecord.status == AssessmentStatus.VALIDATED.value,
                AssessmentRecord.bonus_paid.is_(False),
            )
            .values(bonus_paid=True, bonus_paid_in_month=month)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise BonusAlreadyPaidError(assessment_id, month)

        await self.audit.record(
            actor_id=actor_id,
            action="bonus_paid",
            entity="assessment",
            entity_id=assessment_id,
            before={"bonus_paid": False, "bonus_paid_in_month": None},
            after={"bonus_paid": True, "bonus_paid_in_month": month},
            metadata={"bonus_quarter": bonus.bonus_quarter} if bonus else None,
        )

    def _insert(self, table):
        if self.session.get_bind().dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)
