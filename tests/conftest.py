"""Pytest fixtures for compensation engine tests."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import UUID

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from compensation_engine.calculators.scorecard import DEFAULT_SCORECARD
from compensation_engine.config import Settings
from compensation_engine.database import create_schema, create_session_factory, get_engine
from compensation_engine.models import AssessmentRecord, Payee


def per_class_config() -> dict[str, Any]:
    """MAT at 500 per session, PRIVATE billed only through its sub-types."""
    return {
        "tds_rate": "0.10",
        "class_types": [
            {"name": "MAT", "category": "group", "billing_rate": 500},
            {
                "name": "PRIVATE",
                "category": "private",
                "billing_rate": 1000,
                "sub_types": [
                    {"name": "A", "billing_rate": 800},
                    {"name": "B", "billing_rate": 600},
                ],
            },
        ],
    }


def senior_components() -> dict[str, Any]:
    return {
        "fixed": [
            {
                "id": "basic",
                "name": "Basic",
                "annual_amount": 600000,
                "monthly_amount": 50000,
                "frequency": "Monthly",
            },
            {
                "id": "hra",
                "name": "HRA",
                "annual_amount": 240000,
                "monthly_amount": 20000,
                "frequency": "Monthly",
            },
        ],
        "variable": [
            {
                "id": "perf",
                "name": "Performance Bonus",
                "annual_amount": 120000,
                "monthly_amount": 10000,
                "frequency": "Quarterly",
            },
            {
                "id": "fuel",
                "name": "Fuel Allowance",
                "annual_amount": 24000,
                "monthly_amount": 2000,
                "frequency": "Monthly",
            },
        ],
    }


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Test settings with a per-test SQLite file."""
    return Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        engine_version="test",
        default_tds_rate=Decimal("0.10"),
        delivery_timeout_seconds=0.2,
        directory_file=None,
        log_level="DEBUG",
        host="127.0.0.1",
        port=8000,
        debug=False,
    )


@pytest.fixture
async def engine(settings):
    """Create test database engine with all tables."""
    engine = get_engine(settings.database_url)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


PayeeFactory = Callable[..., Awaitable[Payee]]
AssessmentFactory = Callable[..., Awaitable[AssessmentRecord]]


@pytest.fixture
def make_payee(session_factory) -> PayeeFactory:
    """Insert a payee in its own committed transaction."""
    counter = {"n": 0}

    async def factory(**overrides: Any) -> Payee:
        counter["n"] += 1
        n = counter["n"]
        values: dict[str, Any] = {
            "name": f"Payee {n:02d}",
            "employee_code": f"EMP{n:03d}",
            "email": f"payee{n}@example.com",
            "external_user_id": f"U{n:06d}",
            "compensation_model": "standard",
            "base_salary": Decimal("50000"),
            "quarterly_bonus_amount": Decimal("12000"),
        }
        values.update(overrides)
        async with session_factory() as session, session.begin():
            payee = Payee(**values)
            session.add(payee)
        return payee

    return factory


@pytest.fixture
def make_assessment(session_factory) -> AssessmentFactory:
    """Insert an assessment record directly, bypassing submission."""

    async def factory(
        payee_id: UUID,
        quarter: str = "2025-Q4",
        status: str = "validated",
        final_score: Decimal | None = Decimal("0.8"),
        bonus_paid: bool = False,
        bonus_paid_in_month: str | None = None,
    ) -> AssessmentRecord:
        year, number = quarter.split("-Q")
        async with session_factory() as session, session.begin():
            record = AssessmentRecord(
                payee_id=payee_id,
                quarter=quarter,
                year=int(year),
                quarter_number=int(number),
                self_scores=[],
                self_calculated_score=final_score or Decimal("0"),
                status=status,
                final_score=final_score if status == "validated" else None,
                validated_by="admin" if status != "pending_validation" else None,
                bonus_paid=bonus_paid,
                bonus_paid_in_month=bonus_paid_in_month,
            )
            session.add(record)
        return record

    return factory


def full_scores(value: int | str = 8) -> list[dict[str, Any]]:
    """The same score for every metric on the default scorecard."""
    return [{"metric_name": m.name, "score": value} for m in DEFAULT_SCORECARD]
