"""Compensation engine command line interface.

Provides operational tools for:
- Statement generation for a month (scheduled or manual)
- The pending validation queue
- Missing-submission reminders
- Period lookups

Usage:
    compensation-engine generate --month 2026-03
    compensation-engine pending --quarter 2025-Q4
    compensation-engine missing-submissions --quarter 2026-Q1
    compensation-engine quarter --month 2026-03
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Awaitable, Callable, TypeVar
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from compensation_engine.calculators.periods import (
    bonus_quarter_for,
    current_month,
    current_quarter,
    financial_year,
    parse_month,
    period_label,
    quarter_of,
)
from compensation_engine.config import Settings, get_settings
from compensation_engine.database import create_schema, create_session_factory, get_engine
from compensation_engine.errors import EngineError
from compensation_engine.services.assessment_service import AssessmentService
from compensation_engine.services.generation_service import (
    GenerationRequest,
    GenerationService,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def parse_uuid(s: str) -> UUID:
    """Parse UUID string."""
    return UUID(s)


class CompensationCli:
    """Compensation engine command line interface."""

    def __init__(self, settings: Settings | None = None, database_url: str | None = None):
        self.settings = settings or get_settings()
        self.database_url = database_url or self.settings.database_url
        self.parser = self._build_parser()

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="compensation-engine",
            description="Compensation statement and bonus lifecycle tools",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        generate = subparsers.add_parser(
            "generate",
            help="Generate statements for a month",
        )
        generate.add_argument(
            "--month",
            type=str,
            default=None,
            help="Month to generate (YYYY-MM, default: current month)",
        )
        generate.add_argument(
            "--payee-id",
            type=parse_uuid,
            action="append",
            dest="payee_ids",
            help="Limit to a payee (repeatable)",
        )
        generate.add_argument(
            "--model",
            action="append",
            dest="models",
            choices=["standard", "senior", "per_class"],
            help="Limit to a compensation model (repeatable)",
        )
        generate.add_argument(
            "--actor",
            type=str,
            default="scheduler",
            help="Actor recorded on statements and audit rows",
        )
        generate.add_argument(
            "--json",
            action="store_true",
            help="Print the batch result as JSON",
        )

        pending = subparsers.add_parser(
            "pending",
            help="List assessments waiting for validation",
        )
        pending.add_argument("--quarter", type=str, help="Filter by quarter (YYYY-Qn)")

        missing = subparsers.add_parser(
            "missing-submissions",
            help="List active payees without a submission for a quarter",
        )
        missing.add_argument(
            "--quarter",
            type=str,
            default=None,
            help="Quarter (YYYY-Qn, default: current quarter)",
        )

        quarter = subparsers.add_parser(
            "quarter",
            help="Show quarter and bonus payout details for a month",
        )
        quarter.add_argument("--month", type=str, default=None, help="YYYY-MM")

        subparsers.add_parser("init-db", help="Create tables (development only)")

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "generate": self._cmd_generate,
            "pending": self._cmd_pending,
            "missing-submissions": self._cmd_missing_submissions,
            "quarter": self._cmd_quarter,
            "init-db": self._cmd_init_db,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        try:
            return handler(parsed)
        except EngineError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 2

    def _with_db(
        self, work: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]]
    ) -> T:
        async def runner() -> T:
            engine = get_engine(self.database_url)
            try:
                return await work(create_session_factory(engine))
            finally:
                await engine.dispose()

        return asyncio.run(runner())

    def _cmd_generate(self, args: argparse.Namespace) -> int:
        """Generate statements and print the batch summary."""
        month = str(parse_month(args.month)) if args.month else str(current_month())
        request = GenerationRequest(
            month=month,
            payee_ids=args.payee_ids,
            models=args.models,
            actor_id=args.actor,
        )

        async def work(factory: async_sessionmaker[AsyncSession]):
            return await GenerationService(factory, settings=self.settings).generate(request)

        result = self._with_db(work)

        if args.json:
            print(json.dumps(result.to_dict(), indent=2))
        else:
            print(f"Generation for {month} ({result.duration_ms}ms)")
            for category, count in result.counts.items():
                print(f"  {category:<18} {count}")
            for outcome in result.failed:
                print(f"  FAILED {outcome.payee_id}: [{outcome.error_code}] {outcome.error}")
            for warning in result.warnings:
                print(f"  WARNING {warning}")

        return 1 if result.failed else 0

    def _cmd_pending(self, args: argparse.Namespace) -> int:
        """List the pending validation queue."""

        async def work(factory: async_sessionmaker[AsyncSession]) -> list[dict[str, Any]]:
            async with factory() as session:
                service = AssessmentService(session)
                rows = []
                for record in await service.list_pending(args.quarter):
                    payee = await service.get_payee(record.payee_id)
                    rows.append(
                        {
                            "assessment_id": str(record.assessment_id),
                            "payee": payee.name,
                            "quarter": record.quarter,
                            "self_score": str(record.self_calculated_score),
                            "submitted_at": record.submitted_at.isoformat(),
                        }
                    )
                return rows

        rows = self._with_db(work)
        if not rows:
            print("No assessments pending validation.")
            return 0

        print(f"{len(rows)} assessment(s) pending validation:")
        for row in rows:
            print(
                f"  {row['quarter']}  {row['payee']:<24} score {row['self_score']}"
                f"  {row['assessment_id']}"
            )
        return 0

    def _cmd_missing_submissions(self, args: argparse.Namespace) -> int:
        """List reminder targets for a quarter."""
        quarter = args.quarter or str(current_quarter())

        async def work(factory: async_sessionmaker[AsyncSession]) -> list[tuple[str, str | None]]:
            async with factory() as session:
                payees = await AssessmentService(session).find_missing_submissions(quarter)
                return [(p.name, p.email) for p in payees]

        rows = self._with_db(work)
        print(f"{len(rows)} payee(s) missing a submission for {quarter}")
        for name, email in rows:
            print(f"  {name:<24} {email or '-'}")
        return 0

    def _cmd_quarter(self, args: argparse.Namespace) -> int:
        """Show period arithmetic for a month."""
        month = parse_month(args.month) if args.month else current_month()
        bonus_quarter = bonus_quarter_for(month)
        print(f"Month:           {month} ({period_label(month)})")
        print(f"Quarter:         {quarter_of(month)}")
        print(f"Financial year:  {financial_year(month)}")
        if bonus_quarter is None:
            print("Bonus payout:    none this month")
        else:
            print(f"Bonus payout:    {bonus_quarter} ({bonus_quarter.label})")
        return 0

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        """Create all tables."""

        async def runner() -> None:
            engine = get_engine(self.database_url)
            try:
                await create_schema(engine)
            finally:
                await engine.dispose()

        asyncio.run(runner())
        print("Schema created.")
        return 0


def main(args: list[str] | None = None) -> int:
    """CLI entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cli = CompensationCli(settings)
    return cli.run(args)


if __name__ == "__main__":
    sys.exit(main())
