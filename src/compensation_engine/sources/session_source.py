"""Session source protocol and an in-memory implementation."""

from __future__ import annotations

from typing import Mapping, Protocol, runtime_checkable
from uuid import UUID

from compensation_engine.calculators.periods import parse_month
from compensation_engine.calculators.session_billing import counts_from_mapping
from compensation_engine.calculators.types import ClassSessionCount, RawSessionCounts
from compensation_engine.errors import UpstreamDegradedError


@runtime_checkable
class SessionSource(Protocol):
    """Supplies raw session counts for one payee and month.

    Implementations raise ``UpstreamDegradedError`` (or any exception) when
    the underlying store cannot be read; the generation batch then falls
    back to a zeroed, degraded breakdown for that payee.
    """

    async def fetch(self, payee_id: UUID, month: str) -> RawSessionCounts:
        ...


class StaticSessionSource:
    """Session counts held in memory, keyed by (payee, month).

    Used for manual entry and tests. A payee/month with nothing recorded
    yields zero sessions, which is not a degraded read.
    """

    def __init__(
        self,
        counts: Mapping[tuple[UUID, str], RawSessionCounts] | None = None,
        unavailable: bool = False,
    ):
        self._counts: dict[tuple[UUID, str], RawSessionCounts] = dict(counts or {})
        self.unavailable = unavailable

    def set(
        self,
        payee_id: UUID,
        month: str,
        counts: RawSessionCounts | Mapping[str, int | dict[str, int]],
    ) -> None:
        if all(isinstance(v, ClassSessionCount) for v in counts.values()):
            raw = dict(counts)
        else:
            raw = counts_from_mapping(dict(counts))
        self._counts[(payee_id, str(parse_month(month)))] = raw

    async def fetch(self, payee_id: UUID, month: str) -> RawSessionCounts:
        if self.unavailable:
            raise UpstreamDegradedError(
                "Session source is unavailable", payee_id=str(payee_id), month=month
            )
        return self._counts.get((payee_id, str(parse_month(month))), {})
