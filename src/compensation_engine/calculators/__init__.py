"""Compensation calculation engine."""

from compensation_engine.calculators.engine import (
    CompensationCalculator,
    bonus_context_for,
    wants_bonus_funding,
)
from compensation_engine.calculators.periods import (
    Month,
    Quarter,
    bonus_quarter_for,
    parse_month,
    parse_quarter,
    quarter_of,
)
from compensation_engine.calculators.scorecard import (
    DEFAULT_SCORECARD,
    resolve_scorecard,
    weighted_score,
)
from compensation_engine.calculators.session_billing import derive_session_billing

__all__ = [
    "CompensationCalculator",
    "bonus_context_for",
    "wants_bonus_funding",
    "Month",
    "Quarter",
    "bonus_quarter_for",
    "parse_month",
    "parse_quarter",
    "quarter_of",
    "DEFAULT_SCORECARD",
    "resolve_scorecard",
    "weighted_score",
    "derive_session_billing",
]
