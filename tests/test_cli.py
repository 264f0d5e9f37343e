"""CLI tests.

The CLI drives its own event loop, so these tests are synchronous and seed
the database through a separate engine.
"""

import asyncio
import json
from decimal import Decimal
from uuid import uuid4

import pytest

from compensation_engine.cli import CompensationCli
from compensation_engine.database import create_session_factory, get_engine
from compensation_engine.models import AssessmentRecord, Payee


def seed(database_url, *rows):
    async def runner():
        engine = get_engine(database_url)
        try:
            async with create_session_factory(engine)() as session, session.begin():
                session.add_all(rows)
        finally:
            await engine.dispose()

    asyncio.run(runner())


def squash(text):
    """Collapse column padding so assertions do not depend on alignment."""
    return " ".join(text.split())


def payee(n, **overrides):
    values = {
        "name": f"Cli Payee {n}",
        "employee_code": f"CLI{n:03d}",
        "email": f"cli{n}@example.com",
        "compensation_model": "standard",
        "base_salary": Decimal("50000"),
        "quarterly_bonus_amount": Decimal("12000"),
    }
    values.update(overrides)
    return Payee(**values)


@pytest.fixture
def cli(settings):
    cli = CompensationCli(settings)
    assert cli.run(["init-db"]) == 0
    return cli


class TestQuarterCommand:
    def test_bonus_month(self, settings, capsys):
        assert CompensationCli(settings).run(["quarter", "--month", "2026-03"]) == 0
        out = capsys.readouterr().out
        assert "Quarter: 2026-Q1" in squash(out)
        assert "Bonus payout: 2025-Q4 (Q4 2025)" in squash(out)

    def test_non_bonus_month(self, settings, capsys):
        assert CompensationCli(settings).run(["quarter", "--month", "2026-02"]) == 0
        assert "none this month" in capsys.readouterr().out

    def test_malformed_month(self, settings, capsys):
        assert CompensationCli(settings).run(["quarter", "--month", "2026-2"]) == 2
        assert "Error:" in capsys.readouterr().err

    def test_no_command(self, settings):
        assert CompensationCli(settings).run([]) == 1


class TestGenerateCommand:
    def test_generate_json(self, cli, settings, capsys):
        seed(settings.database_url, payee(1))
        capsys.readouterr()

        assert cli.run(["generate", "--month", "2026-02", "--json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["counts"]["persisted"] == 1
        assert data["persisted"][0]["total_payout"] == "50000.00"

    def test_rerun_skips(self, cli, settings, capsys):
        seed(settings.database_url, payee(1))
        assert cli.run(["generate", "--month", "2026-02"]) == 0
        capsys.readouterr()

        assert cli.run(["generate", "--month", "2026-02"]) == 0
        out = capsys.readouterr().out
        assert "skipped 1" in squash(out)

    def test_unknown_payee_fails(self, cli, capsys):
        assert cli.run(["generate", "--month", "2026-02", "--payee-id", str(uuid4())]) == 1
        assert "FAILED" in capsys.readouterr().out

    def test_model_choices(self, cli):
        with pytest.raises(SystemExit):
            cli.run(["generate", "--month", "2026-02", "--model", "hourly"])


class TestQueueCommands:
    def test_pending_empty(self, cli, capsys):
        assert cli.run(["pending"]) == 0
        assert "No assessments pending validation." in capsys.readouterr().out

    def test_pending_and_missing(self, cli, settings, capsys):
        submitted = payee(1)
        seed(settings.database_url, submitted, payee(2))
        seed(
            settings.database_url,
            AssessmentRecord(
                payee_id=submitted.payee_id,
                quarter="2025-Q4",
                year=2025,
                quarter_number=4,
                self_scores=[],
                self_calculated_score=Decimal("0.7"),
            ),
        )
        capsys.readouterr()

        assert cli.run(["pending", "--quarter", "2025-Q4"]) == 0
        out = capsys.readouterr().out
        assert "1 assessment(s) pending validation" in out
        assert "Cli Payee 1" in out

        assert cli.run(["missing-submissions", "--quarter", "2025-Q4"]) == 0
        out = capsys.readouterr().out
        assert "1 payee(s) missing a submission for 2025-Q4" in out
        assert "cli2@example.com" in out
