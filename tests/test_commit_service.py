"""Tests for idempotent statement persistence and the bonus claim."""

from decimal import Decimal
from uuid import uuid4

import pytest

from compensation_engine.calculators.engine import CompensationCalculator
from compensation_engine.calculators.types import (
    BonusContext,
    BonusFunding,
    BonusStatus,
    StandardTerms,
)
from compensation_engine.models import AssessmentRecord
from compensation_engine.services.commit_service import BonusAlreadyPaidError, CommitService

TERMS = StandardTerms(base_salary=Decimal("50000"), quarterly_bonus_amount=Decimal("12000"))


def funded(assessment_id):
    return BonusContext(
        bonus_quarter="2025-Q4",
        status=BonusStatus.APPLIED,
        funding=BonusFunding(
            assessment_id=assessment_id, quarter="2025-Q4", final_score=Decimal("0.8")
        ),
    )


@pytest.fixture
def calculator(settings):
    return CompensationCalculator(settings)


async def commit(session_factory, calculator, payee_id, bonus, month="2026-03"):
    breakdown = calculator.calculate(TERMS, month, bonus)
    async with session_factory() as session, session.begin():
        return await CommitService(session).commit_statement(
            payee_id=payee_id,
            month=month,
            breakdown=breakdown,
            bonus=bonus,
            calculation_id=calculator.generate_calculation_id(payee_id, month, breakdown),
            actor_id="test",
        )


class TestCommitStatement:
    async def test_first_commit_creates(
        self, session_factory, calculator, make_payee, make_assessment
    ):
        payee = await make_payee()
        record = await make_assessment(payee.payee_id)

        statement, created = await commit(
            session_factory, calculator, payee.payee_id, funded(record.assessment_id)
        )

        assert created is True
        assert statement.total_payout == Decimal("59600.00")
        assert statement.assessment_id == record.assessment_id

    async def test_second_commit_returns_existing(
        self, session_factory, calculator, make_payee
    ):
        payee = await make_payee()
        none = BonusContext(bonus_quarter="2025-Q4", status=BonusStatus.NO_SUBMISSION)

        first, created_first = await commit(session_factory, calculator, payee.payee_id, none)
        second, created_second = await commit(session_factory, calculator, payee.payee_id, none)

        assert created_first is True
        assert created_second is False
        assert second.statement_id == first.statement_id

    async def test_claim_lost_rolls_back_statement(
        self, session_factory, calculator, make_payee, make_assessment
    ):
        payee = await make_payee()
        record = await make_assessment(
            payee.payee_id, bonus_paid=True, bonus_paid_in_month="2026-03"
        )

        with pytest.raises(BonusAlreadyPaidError) as exc_info:
            await commit(
                session_factory, calculator, payee.payee_id, funded(record.assessment_id)
            )

        assert exc_info.value.code == "CONFLICT"
        assert exc_info.value.assessment_id == record.assessment_id
        async with session_factory() as session:
            assert await CommitService(session).find_statement(payee.payee_id, "2026-03") is None
            stored = await session.get(AssessmentRecord, record.assessment_id)
            assert stored.bonus_paid_in_month == "2026-03"

    async def test_unvalidated_record_cannot_be_claimed(
        self, session_factory, make_payee, make_assessment
    ):
        payee = await make_payee()
        record = await make_assessment(payee.payee_id, status="rejected")

        with pytest.raises(BonusAlreadyPaidError):
            async with session_factory() as session, session.begin():
                await CommitService(session).claim_bonus(record.assessment_id, "2026-03", "test")

    async def test_claim_unknown_assessment(self, session_factory):
        with pytest.raises(BonusAlreadyPaidError):
            async with session_factory() as session, session.begin():
                await CommitService(session).claim_bonus(uuid4(), "2026-03", "test")
