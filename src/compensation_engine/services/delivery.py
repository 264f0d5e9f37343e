"""Delivery collaborators invoked after a statement commits.

A channel renders or sends a finished statement (document, email draft,
chat notification). Channels never affect the financial result: their
failures are logged and recorded on the statement as metadata.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol, Sequence
from uuid import UUID

from compensation_engine.calculators.periods import financial_year, period_label
from compensation_engine.errors import DeliveryError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryPayload:
    """Structured statement handed to delivery channels."""

    statement_id: UUID
    payee_id: UUID
    payee_name: str
    email: str | None
    month: str
    compensation_model: str
    total_payout: Decimal
    breakdown: dict[str, Any]
    links: dict[str, str] = field(default_factory=dict)

    @property
    def period_label(self) -> str:
        return period_label(self.month)

    @property
    def financial_year(self) -> str:
        return financial_year(self.month)


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome reported by a single channel."""

    reference: str | None = None
    message: str = ""


class DeliveryChannel(Protocol):
    """Protocol for delivery collaborators."""

    name: str

    async def deliver(self, payload: DeliveryPayload) -> DeliveryResult:
        """Deliver a statement, raising on failure."""
        ...


@dataclass
class DeliveryReport:
    """Aggregated outcome across channels for one statement."""

    status: str = "skipped"  # delivered/degraded/skipped
    errors: list[dict[str, str]] = field(default_factory=list)
    refs: dict[str, str] = field(default_factory=dict)

    @property
    def degraded(self) -> bool:
        return self.status == "degraded"


class DeliveryDispatcher:
    """Runs every channel for a payload with a per-channel timeout.

    A failing or slow channel is isolated: the remaining channels still
    run and the failure is reported, never raised.
    """

    def __init__(self, channels: Sequence[DeliveryChannel], timeout_seconds: float):
        self.channels = list(channels)
        self.timeout_seconds = timeout_seconds

    async def dispatch(self, payload: DeliveryPayload) -> DeliveryReport:
        if not self.channels:
            return DeliveryReport(status="skipped")

        report = DeliveryReport(status="delivered")
        for channel in self.channels:
            try:
                result = await asyncio.wait_for(
                    channel.deliver(payload), timeout=self.timeout_seconds
                )
            except asyncio.TimeoutError:
                error = DeliveryError(
                    channel.name, f"timed out after {self.timeout_seconds}s"
                )
                logger.warning(
                    "Delivery of statement %s: %s", payload.statement_id, error.message
                )
                report.errors.append({"channel": channel.name, "error": error.reason})
            except Exception as e:
                logger.exception(
                    "Delivery channel %s failed for statement %s",
                    channel.name,
                    payload.statement_id,
                )
                reason = e.reason if isinstance(e, DeliveryError) else str(e) or type(e).__name__
                report.errors.append({"channel": channel.name, "error": reason})
            else:
                if result is not None and result.reference:
                    report.refs[channel.name] = result.reference

        if report.errors:
            report.status = "degraded"
        return report
