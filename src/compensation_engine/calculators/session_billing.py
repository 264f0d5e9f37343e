"""Derive per-class billing from raw session counts."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from compensation_engine.calculators.types import (
    ClassSessionCount,
    ClassType,
    RawSessionCounts,
    SessionBilling,
    SessionEntry,
    SubTypeEntry,
)

CENTS = Decimal("0.01")
EMPTY_COUNT = ClassSessionCount()


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


def derive_session_billing(
    class_types: Sequence[ClassType],
    counts: RawSessionCounts | None,
) -> SessionBilling:
    """Build the session breakdown for one payee and month.

    Billing rules:
    - A class type with sub-types bills Σ(sub sessions × sub rate); the
      parent rate is never applied to it.
    - Otherwise sessions × the class type's own rate.
    - No-shows are carried for display and never billed.

    ``counts=None`` means the source was unavailable; every configured class
    type is emitted with zero sessions and the result is marked degraded.
    """
    degraded = counts is None
    counts = counts or {}

    entries: list[SessionEntry] = []
    total_sessions = 0
    gross_billing = Decimal("0")

    for class_type in class_types:
        raw = counts.get(class_type.name, EMPTY_COUNT)

        if class_type.sub_types:
            sub_entries: list[SubTypeEntry] = []
            for sub_type in class_type.sub_types:
                sub_sessions = int(raw.sub_types.get(sub_type.name, 0))
                sub_entries.append(
                    SubTypeEntry(
                        name=sub_type.name,
                        sessions=sub_sessions,
                        billing_rate=sub_type.billing_rate,
                        total_billing=_money(sub_type.billing_rate * sub_sessions),
                    )
                )
            sessions = sum(s.sessions for s in sub_entries)
            billing = sum((s.total_billing for s in sub_entries), Decimal("0"))
            entry = SessionEntry(
                class_type=class_type.name,
                sessions=sessions,
                no_show_sessions=int(raw.no_shows),
                billing_rate=class_type.billing_rate,
                total_billing=billing,
                sub_type_breakdown=sub_entries,
            )
        else:
            sessions = int(raw.sessions)
            entry = SessionEntry(
                class_type=class_type.name,
                sessions=sessions,
                no_show_sessions=int(raw.no_shows),
                billing_rate=class_type.billing_rate,
                total_billing=_money(class_type.billing_rate * sessions),
            )

        entries.append(entry)
        total_sessions += entry.sessions
        gross_billing += entry.total_billing

    return SessionBilling(
        entries=entries,
        total_sessions=total_sessions,
        gross_billing=gross_billing,
        source_degraded=degraded,
    )


def counts_from_mapping(
    data: dict[str, int | dict[str, int]],
) -> dict[str, ClassSessionCount]:
    """Build raw counts from a manual-entry mapping.

    ``{"XPRESS": 10, "PRIVATE": {"MVP": 3, "QVP": 2}}``; a nested mapping
    holds sub-type counts.
    """
    counts: dict[str, ClassSessionCount] = {}
    for name, value in data.items():
        if isinstance(value, dict):
            counts[name] = ClassSessionCount(sub_types=dict(value))
        else:
            counts[name] = ClassSessionCount(sessions=int(value))
    return counts
