"""Statement queries, status changes and delivery metadata."""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from compensation_engine.calculators.periods import parse_month
from compensation_engine.errors import NotFoundError, ValidationError
from compensation_engine.models import CompensationStatement
from compensation_engine.models.base import utcnow
from compensation_engine.services.audit_service import AuditService
from compensation_engine.services.delivery import DeliveryReport
from compensation_engine.services.state_machine import (
    InvalidTransitionError,
    StatementStateMachine,
    StatementStatus,
)

logger = logging.getLogger(__name__)


class StatementService:
    """Read and advance persisted statements.

    Monetary fields (``breakdown``, ``total_payout``) are never touched here.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    async def get_statement(self, statement_id: UUID) -> CompensationStatement:
        statement = await self.session.get(CompensationStatement, statement_id)
        if statement is None:
            raise NotFoundError("Statement", statement_id)
        return statement

    async def list_statements(
        self,
        month: str | None = None,
        payee_id: UUID | None = None,
        status: str | None = None,
    ) -> list[CompensationStatement]:
        query = select(CompensationStatement)
        if month is not None:
            query = query.where(CompensationStatement.month == str(parse_month(month)))
        if payee_id is not None:
            query = query.where(CompensationStatement.payee_id == payee_id)
        if status is not None:
            query = query.where(CompensationStatement.status == _status_value(status))
        result = await self.session.execute(
            query.order_by(CompensationStatement.month.desc(), CompensationStatement.created_at)
        )
        return list(result.scalars().all())

    async def update_status(
        self,
        statement_id: UUID,
        to_status: str,
        actor_id: str,
        actor_name: str | None = None,
    ) -> CompensationStatement:
        """Advance a statement: draft -> sent -> paid, or draft -> paid.

        Raises:
            NotFoundError: Unknown statement
            ValidationError: Unknown status value
            InvalidTransitionError: Transition not allowed
        """
        to_status = _status_value(to_status)
        statement = await self.get_statement(statement_id)
        from_status = statement.status
        StatementStateMachine.validate_transition(from_status, to_status)

        values = {"status": to_status}
        if to_status == StatementStatus.SENT:
            values["sent_at"] = utcnow()
        elif to_status == StatementStatus.PAID:
            values["paid_at"] = utcnow()

        # Conditional update: a concurrent change of status matches no row
        result = await self.session.execute(
            update(CompensationStatement)
            .where(
                CompensationStatement.statement_id == statement_id,
                CompensationStatement.status == from_status,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(statement)
        if result.rowcount == 0:
            raise InvalidTransitionError(
                statement.status, to_status, "Status changed during update"
            )

        await self.audit.record(
            actor_id=actor_id,
            actor_name=actor_name,
            action=f"status_change:{from_status}:{to_status}",
            entity="statement",
            entity_id=statement.statement_id,
            before={"status": from_status},
            after={"status": to_status},
        )
        await self.session.flush()
        return statement

    async def record_delivery(
        self, statement_id: UUID, report: DeliveryReport
    ) -> CompensationStatement:
        """Attach delivery outcome; the financial record is left as is."""
        statement = await self.get_statement(statement_id)
        statement.delivery_status = report.status
        statement.delivery_errors = list(report.errors)
        statement.delivery_refs = {**(statement.delivery_refs or {}), **report.refs}
        await self.session.flush()
        if report.degraded:
            logger.warning(
                "Statement %s delivered with errors: %s", statement_id, report.errors
            )
        return statement


def _status_value(status: str) -> str:
    try:
        return StatementStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown statement status '{status}'")
