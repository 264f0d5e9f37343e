"""Scorecard resolution and weighted scoring."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Sequence

from compensation_engine.calculators.types import MetricScore, ScorecardMetric
from compensation_engine.errors import ValidationError

SCORE_PRECISION = Decimal("0.000001")

DEFAULT_SCORECARD: tuple[ScorecardMetric, ...] = (
    ScorecardMetric(
        name="Session Fill Rates",
        description="Fill rates for Group sessions, benchmark >75% good",
        weight=Decimal("15"),
    ),
    ScorecardMetric(
        name="Buddy Trainer Activity",
        description="M1 retention >75%, M2 >50%, form fill >80%",
        weight=Decimal("20"),
    ),
    ScorecardMetric(
        name="DS Conversions",
        description="Discovery session conversion, target 75%+",
        weight=Decimal("15"),
    ),
    ScorecardMetric(
        name="Team Focus",
        description="Substitutions, upselling, cross-selling",
        weight=Decimal("10"),
    ),
    ScorecardMetric(
        name="Special Projects",
        description="Customer onboarding, retention efforts",
        weight=Decimal("40"),
    ),
)


def resolve_scorecard(
    use_default: bool,
    template: Sequence[Mapping[str, Any] | ScorecardMetric] | None,
) -> list[ScorecardMetric]:
    """Return the scorecard a payee is assessed against.

    Default flag wins; otherwise the custom template, falling back to the
    default set when the template is empty. Never returns an empty list.

    Raises:
        ValidationError: If the custom template is malformed.
    """
    if use_default or not template:
        return list(DEFAULT_SCORECARD)

    metrics = [
        m if isinstance(m, ScorecardMetric) else _metric_from_config(m)
        for m in template
    ]
    validate_scorecard(metrics)
    return metrics


def _metric_from_config(data: Mapping[str, Any]) -> ScorecardMetric:
    try:
        return ScorecardMetric.from_dict(data)
    except (KeyError, ArithmeticError, TypeError) as e:
        raise ValidationError(f"Malformed scorecard metric {dict(data)!r}: {e}")


def validate_scorecard(metrics: Sequence[ScorecardMetric]) -> None:
    """Check a scorecard is usable for weighting."""
    names: set[str] = set()
    for metric in metrics:
        if metric.name in names:
            raise ValidationError(f"Duplicate scorecard metric: {metric.name}")
        names.add(metric.name)
        if not Decimal("0") <= metric.weight <= Decimal("100"):
            raise ValidationError(
                f"Weight for {metric.name} must be between 0 and 100"
            )
        if metric.max_score <= 0 or metric.max_score <= metric.min_score:
            raise ValidationError(
                f"Metric {metric.name} has an invalid score range "
                f"[{metric.min_score}, {metric.max_score}]"
            )
    if sum((m.weight for m in metrics), Decimal("0")) <= 0:
        raise ValidationError("Scorecard total weight must be positive")


def check_scores(
    scorecard: Sequence[ScorecardMetric],
    scores: Iterable[MetricScore],
    require_all: bool = True,
) -> dict[str, MetricScore]:
    """Validate scores against a scorecard, keyed by metric name.

    Raises ValidationError for unknown or repeated metrics, scores outside
    a metric's [min, max], and (when ``require_all``) missing metrics.
    """
    by_name = {m.name: m for m in scorecard}
    checked: dict[str, MetricScore] = {}

    for score in scores:
        metric = by_name.get(score.metric_name)
        if metric is None:
            raise ValidationError(f"Invalid metric: {score.metric_name}")
        if score.metric_name in checked:
            raise ValidationError(f"Duplicate score for metric: {score.metric_name}")
        if score.score < metric.min_score or score.score > metric.max_score:
            raise ValidationError(
                f"Score for {metric.name} must be between "
                f"{metric.min_score} and {metric.max_score}"
            )
        checked[score.metric_name] = score

    if require_all:
        missing = [m.name for m in scorecard if m.name not in checked]
        if missing:
            raise ValidationError(f"Missing scores for metrics: {', '.join(missing)}")

    return checked


def weighted_score(
    scorecard: Sequence[ScorecardMetric],
    scores: Mapping[str, MetricScore],
) -> Decimal:
    """Σ(score/max × weight) / Σ(weight) over the scored metrics, in [0, 1]."""
    total_weight = Decimal("0")
    weighted_sum = Decimal("0")

    for metric in scorecard:
        score = scores.get(metric.name)
        if score is None:
            continue
        weighted_sum += score.score / metric.max_score * metric.weight
        total_weight += metric.weight

    if total_weight <= 0:
        raise ValidationError("Cannot compute a weighted score with zero total weight")

    result = (weighted_sum / total_weight).quantize(SCORE_PRECISION, rounding=ROUND_HALF_UP)
    return min(max(result, Decimal("0")), Decimal("1"))
