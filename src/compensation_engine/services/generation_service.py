"""Batch statement generation with at-most-once semantics per (payee, month).

Each payee is processed in its own transaction:

1. take the in-process key lock and, on PostgreSQL, an advisory lock
2. skip if a statement already exists for (payee, month)
3. resolve terms, bonus funding and (per-class) session counts
4. calculate the breakdown
5. insert the statement and claim the bonus in the same transaction
6. after commit, run delivery channels and record their outcome

Failures are recorded per payee and never abort the batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from compensation_engine.calculators.engine import (
    CompensationCalculator,
    bonus_context_for,
    wants_bonus_funding,
)
from compensation_engine.calculators.periods import bonus_quarter_for, parse_month
from compensation_engine.calculators.types import (
    CompensationModel,
    PerClassTerms,
    RawSessionCounts,
    serialize,
)
from compensation_engine.config import Settings, get_settings
from compensation_engine.database import acquire_generation_lock
from compensation_engine.errors import ConflictError, EngineError, ValidationError
from compensation_engine.models import Payee
from compensation_engine.models.base import utcnow
from compensation_engine.services.assessment_service import AssessmentService
from compensation_engine.services.commit_service import CommitService
from compensation_engine.services.delivery import (
    DeliveryChannel,
    DeliveryDispatcher,
    DeliveryPayload,
    DeliveryReport,
)
from compensation_engine.services.statement_service import StatementService
from compensation_engine.sources.session_source import SessionSource

logger = logging.getLogger(__name__)


class KeyedLock:
    """In-process asyncio locks keyed by string, dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]


_default_locks = KeyedLock()


@dataclass
class GenerationRequest:
    """Trigger for a generation batch.

    Omitting ``payee_ids`` targets every payee; inactive ones are reported
    as excluded. ``models`` optionally restricts the batch to pay models.
    """

    month: str
    payee_ids: list[UUID] | None = None
    models: list[str] | None = None
    actor_id: str = "system"
    deliver: bool = True


@dataclass
class PayeeOutcome:
    """What happened to one payee in a batch."""

    payee_id: UUID
    payee_name: str | None = None
    statement_id: UUID | None = None
    compensation_model: str | None = None
    total_payout: Decimal | None = None
    bonus_status: str | None = None
    delivery_status: str | None = None
    delivery_errors: list[dict[str, str]] = field(default_factory=list)
    error_code: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return serialize(self)


@dataclass
class BatchResult:
    """Outcome of a generation batch.

    Categories are disjoint:
    - persisted: computed, stored, delivery fine or not configured
    - delivery_degraded: computed and stored, a delivery channel failed
    - skipped: a statement already existed for the month
    - excluded: payee not active
    - failed: nothing stored for the payee
    """

    month: str
    started_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None
    duration_ms: int = 0
    persisted: list[PayeeOutcome] = field(default_factory=list)
    delivery_degraded: list[PayeeOutcome] = field(default_factory=list)
    skipped: list[PayeeOutcome] = field(default_factory=list)
    excluded: list[PayeeOutcome] = field(default_factory=list)
    failed: list[PayeeOutcome] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return {
            "persisted": len(self.persisted),
            "delivery_degraded": len(self.delivery_degraded),
            "skipped": len(self.skipped),
            "excluded": len(self.excluded),
            "failed": len(self.failed),
        }

    @property
    def money_safe(self) -> bool:
        """True when nothing needs manual reconciliation."""
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "month": self.month,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_ms": self.duration_ms,
            "counts": self.counts,
            "persisted": [o.to_dict() for o in self.persisted],
            "delivery_degraded": [o.to_dict() for o in self.delivery_degraded],
            "skipped": [o.to_dict() for o in self.skipped],
            "excluded": [o.to_dict() for o in self.excluded],
            "failed": [o.to_dict() for o in self.failed],
            "warnings": list(self.warnings),
        }


class GenerationService:
    """Generates monthly statements for a batch of payees."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        session_source: SessionSource | None = None,
        channels: Sequence[DeliveryChannel] = (),
        settings: Settings | None = None,
        locks: KeyedLock | None = None,
    ):
        self.session_factory = session_factory
        self.session_source = session_source
        self.settings = settings or get_settings()
        self.calculator = CompensationCalculator(self.settings)
        self.dispatcher = DeliveryDispatcher(channels, self.settings.delivery_timeout_seconds)
        self.locks = locks or _default_locks

    async def generate(self, request: GenerationRequest) -> BatchResult:
        """Run a batch. Raises ValidationError only for a malformed request."""
        month = str(parse_month(request.month))
        models = self._parse_models(request.models)
        result = BatchResult(month=month)
        started = time.monotonic()

        targets = await self._load_targets(request.payee_ids, models, result)
        for payee_id, payee_name in targets:
            await self._generate_one(payee_id, payee_name, month, request, result)

        result.finished_at = utcnow()
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "Generation for %s finished in %dms: %s (%d warnings)",
            month,
            result.duration_ms,
            result.counts,
            len(result.warnings),
        )
        return result

    async def generate_one(
        self, payee_id: UUID, month: str, actor_id: str = "system"
    ) -> BatchResult:
        return await self.generate(
            GenerationRequest(month=month, payee_ids=[payee_id], actor_id=actor_id)
        )

    @staticmethod
    def _parse_models(models: list[str] | None) -> set[str] | None:
        if not models:
            return None
        try:
            return {CompensationModel(m).value for m in models}
        except ValueError as e:
            raise ValidationError(f"Unknown compensation model filter: {e}")

    async def _load_targets(
        self,
        payee_ids: list[UUID] | None,
        models: set[str] | None,
        result: BatchResult,
    ) -> list[tuple[UUID, str]]:
        """Resolve the batch to active payee ids, recording exclusions."""
        async with self.session_factory() as session:
            query = select(Payee)
            if payee_ids is not None:
                query = query.where(Payee.payee_id.in_(payee_ids))
            payees = {p.payee_id: p for p in (await session.execute(query)).scalars()}

        ordered_ids = payee_ids if payee_ids is not None else sorted(
            payees, key=lambda pid: (payees[pid].name, str(pid))
        )

        targets: list[tuple[UUID, str]] = []
        for payee_id in dict.fromkeys(ordered_ids):
            payee = payees.get(payee_id)
            if payee is None:
                result.failed.append(
                    PayeeOutcome(
                        payee_id=payee_id,
                        error_code="NOT_FOUND",
                        error=f"Payee not found: {payee_id}",
                    )
                )
                continue
            if models is not None and payee.compensation_model not in models:
                continue
            if not payee.is_active:
                result.excluded.append(
                    PayeeOutcome(
                        payee_id=payee_id,
                        payee_name=payee.name,
                        compensation_model=payee.compensation_model,
                        error=f"Payee status is '{payee.status}'",
                    )
                )
                continue
            targets.append((payee_id, payee.name))
        return targets

    async def _generate_one(
        self,
        payee_id: UUID,
        payee_name: str,
        month: str,
        request: GenerationRequest,
        result: BatchResult,
    ) -> None:
        outcome = PayeeOutcome(payee_id=payee_id, payee_name=payee_name)
        deliver = request.deliver and bool(self.dispatcher.channels)

        try:
            async with self.locks.hold(f"{payee_id}:{month}"):
                payload, created = await self._compute_and_commit(
                    payee_id, month, request.actor_id, deliver, outcome, result
                )
        except EngineError as e:
            outcome.error_code = e.code
            outcome.error = e.message
            logger.warning("Generation failed for payee %s %s: %s", payee_id, month, e)
            result.failed.append(outcome)
            return
        except IntegrityError as e:
            outcome.error_code = ConflictError.code
            outcome.error = f"Statement already exists for {month}"
            logger.warning("Generation conflict for payee %s %s: %s", payee_id, month, e)
            result.failed.append(outcome)
            return
        except Exception as e:
            logger.exception("Unexpected error generating payee %s %s", payee_id, month)
            outcome.error_code = "INTERNAL_ERROR"
            outcome.error = str(e) or type(e).__name__
            result.failed.append(outcome)
            return

        if not created:
            result.skipped.append(outcome)
            return

        if payload is None:
            result.persisted.append(outcome)
            return

        report = await self._deliver(payload)
        outcome.delivery_status = report.status
        outcome.delivery_errors = list(report.errors)
        if report.degraded:
            result.delivery_degraded.append(outcome)
        else:
            result.persisted.append(outcome)

    async def _compute_and_commit(
        self,
        payee_id: UUID,
        month: str,
        actor_id: str,
        deliver: bool,
        outcome: PayeeOutcome,
        result: BatchResult,
    ) -> tuple[DeliveryPayload | None, bool]:
        async with self.session_factory() as session, session.begin():
            await acquire_generation_lock(session, f"statement:{payee_id}:{month}")

            commit_service = CommitService(session)
            existing = await commit_service.find_statement(payee_id, month)
            if existing is not None:
                self._fill_outcome(outcome, existing)
                return None, False

            payee = await session.get(Payee, payee_id)
            if payee is None or not payee.is_active:
                raise ConflictError(f"Payee {payee_id} is no longer active")

            terms = self.calculator.build_terms(payee)

            record = None
            bonus_quarter = bonus_quarter_for(month)
            if bonus_quarter is not None and wants_bonus_funding(terms):
                record = await AssessmentService(session).find_for_quarter(
                    payee_id, str(bonus_quarter)
                )
            bonus = bonus_context_for(month, terms, record)

            counts = None
            if isinstance(terms, PerClassTerms):
                counts = await self._fetch_sessions(payee_id, month, result)

            breakdown = self.calculator.calculate(terms, month, bonus, counts)
            calculation_id = self.calculator.generate_calculation_id(
                payee_id, month, breakdown
            )

            statement, created = await commit_service.commit_statement(
                payee_id=payee_id,
                month=month,
                breakdown=breakdown,
                bonus=bonus,
                calculation_id=calculation_id,
                actor_id=actor_id,
                delivery_status="pending" if deliver else "skipped",
            )
            self._fill_outcome(outcome, statement)
            if not created:
                return None, False

            logger.info(
                "Statement %s created for payee %s %s: %s %s (bonus %s)",
                statement.statement_id,
                payee_id,
                month,
                statement.compensation_model,
                statement.total_payout,
                outcome.bonus_status,
            )
            if not deliver:
                return None, True

            payload = DeliveryPayload(
                statement_id=statement.statement_id,
                payee_id=payee_id,
                payee_name=payee.name,
                email=payee.email,
                month=month,
                compensation_model=statement.compensation_model,
                total_payout=statement.total_payout,
                breakdown=dict(statement.breakdown),
                links=dict(payee.links or {}),
            )
            return payload, True

    async def _fetch_sessions(
        self, payee_id: UUID, month: str, result: BatchResult
    ) -> RawSessionCounts | None:
        """Read raw counts; any failure degrades to ``None`` with a warning."""
        if self.session_source is None:
            result.warnings.append(
                f"No session source configured; per-class statement for "
                f"{payee_id} {month} is zeroed"
            )
            return None
        try:
            return await self.session_source.fetch(payee_id, month)
        except Exception as e:
            logger.warning(
                "Session source unavailable for payee %s %s: %s", payee_id, month, e
            )
            result.warnings.append(
                f"Session source unavailable for {payee_id} {month}: {e}"
            )
            return None

    async def _deliver(self, payload: DeliveryPayload) -> DeliveryReport:
        report = await self.dispatcher.dispatch(payload)
        try:
            async with self.session_factory() as session, session.begin():
                await StatementService(session).record_delivery(payload.statement_id, report)
        except Exception:
            logger.exception(
                "Could not record delivery outcome for statement %s", payload.statement_id
            )
            report.status = "degraded"
            report.errors.append({"channel": "metadata", "error": "delivery outcome not recorded"})
        return report

    @staticmethod
    def _fill_outcome(outcome: PayeeOutcome, statement: Any) -> None:
        outcome.statement_id = statement.statement_id
        outcome.compensation_model = statement.compensation_model
        outcome.total_payout = Decimal(statement.total_payout)
        outcome.bonus_status = (statement.breakdown or {}).get("bonus_status")
        outcome.delivery_status = statement.delivery_status
