"""Compensation calculator - dispatches on the payee's pay model."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Protocol, assert_never
from uuid import UUID

from compensation_engine.calculators.periods import bonus_quarter_for, parse_month
from compensation_engine.calculators.session_billing import derive_session_billing
from compensation_engine.calculators.types import (
    ZERO,
    BonusContext,
    BonusFunding,
    BonusStatus,
    Breakdown,
    ClassType,
    CompensationModel,
    CompensationTerms,
    ComponentLine,
    PerClassBreakdown,
    PerClassTerms,
    RawSessionCounts,
    SalaryComponent,
    SeniorBreakdown,
    SeniorTerms,
    StandardBreakdown,
    StandardTerms,
    serialize,
)
from compensation_engine.config import get_settings
from compensation_engine.errors import ValidationError

if TYPE_CHECKING:
    from compensation_engine.config import Settings
    from compensation_engine.models import Payee

CENTS = Decimal("0.01")
WHOLE = Decimal("1")


class AssessmentSnapshot(Protocol):
    """The assessment fields the bonus lookup reads."""

    assessment_id: UUID
    quarter: str
    status: str
    final_score: Decimal | None
    bonus_paid: bool
    bonus_paid_in_month: str | None


def wants_bonus_funding(terms: CompensationTerms) -> bool:
    """Whether a validated assessment would change this payee's statement."""
    if isinstance(terms, StandardTerms):
        return terms.quarterly_bonus_amount > 0
    if isinstance(terms, SeniorTerms):
        return terms.has_quarterly_variable
    if isinstance(terms, PerClassTerms):
        return False
    assert_never(terms)


def bonus_context_for(
    month: str,
    terms: CompensationTerms,
    record: AssessmentSnapshot | None,
) -> BonusContext:
    """Decide whether ``record`` funds a bonus in ``month`` and, if not, why."""
    # services imports this module; a module-level import would be circular
    from compensation_engine.services.state_machine import (
        AssessmentStateMachine,
        AssessmentStatus,
    )

    bonus_quarter = bonus_quarter_for(month)
    if bonus_quarter is None:
        return BonusContext(bonus_quarter=None, status=BonusStatus.NOT_BONUS_MONTH)

    quarter = str(bonus_quarter)
    if not wants_bonus_funding(terms):
        return BonusContext(bonus_quarter=quarter, status=BonusStatus.NO_BONUS_CONFIGURED)
    if record is None:
        return BonusContext(bonus_quarter=quarter, status=BonusStatus.NO_SUBMISSION)
    if record.status == AssessmentStatus.PENDING_VALIDATION:
        return BonusContext(bonus_quarter=quarter, status=BonusStatus.PENDING_VALIDATION)
    if not AssessmentStateMachine.can_fund_bonus(record.status):
        return BonusContext(bonus_quarter=quarter, status=BonusStatus.REJECTED)
    if record.bonus_paid:
        return BonusContext(
            bonus_quarter=quarter,
            status=BonusStatus.ALREADY_PAID,
            paid_in_month=record.bonus_paid_in_month,
        )

    return BonusContext(
        bonus_quarter=quarter,
        status=BonusStatus.APPLIED,
        funding=BonusFunding(
            assessment_id=record.assessment_id,
            quarter=record.quarter,
            final_score=Decimal(record.final_score or 0),
        ),
    )


class CompensationCalculator:
    """Produces the monetary breakdown for one payee and month.

    The calculator is pure: it never reads or writes storage. Callers
    resolve the bonus context and raw session counts first and persist
    the result afterwards.
    """

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    # === Terms ===

    def build_terms(self, payee: Payee) -> CompensationTerms:
        """Read the active model's configuration from a payee record.

        Raises:
            ValidationError: If the model is unknown or its configuration
                is missing.
        """
        try:
            model = CompensationModel(payee.compensation_model)
        except ValueError:
            raise ValidationError(
                f"Unknown compensation model '{payee.compensation_model}' "
                f"for payee {payee.payee_id}"
            )

        if model is CompensationModel.STANDARD:
            return StandardTerms(
                base_salary=Decimal(payee.base_salary or 0),
                quarterly_bonus_amount=Decimal(payee.quarterly_bonus_amount or 0),
            )

        if model is CompensationModel.SENIOR:
            components = payee.salary_components or {}
            fixed = [SalaryComponent.from_dict(c) for c in components.get("fixed") or []]
            variable = [
                SalaryComponent.from_dict(c) for c in components.get("variable") or []
            ]
            if not fixed and not variable:
                raise ValidationError(
                    f"Senior payee {payee.payee_id} has no salary components configured"
                )
            return SeniorTerms(
                fixed=tuple(fixed),
                variable=tuple(variable),
                tds_amount=Decimal(payee.senior_tds_amount or 0),
                travel_reimbursement=Decimal(payee.travel_reimbursement or 0),
            )

        if model is CompensationModel.PER_CLASS:
            config = payee.class_config or {}
            class_types = [ClassType.from_dict(c) for c in config.get("class_types") or []]
            if not class_types:
                raise ValidationError(
                    f"Per-class payee {payee.payee_id} has no class types configured"
                )
            tds_rate = config.get("tds_rate")
            rate = (
                Decimal(str(tds_rate))
                if tds_rate not in (None, "")
                else self.settings.default_tds_rate
            )
            if not ZERO <= rate <= WHOLE:
                raise ValidationError(f"TDS rate must be between 0 and 1, got {rate}")
            return PerClassTerms(class_types=tuple(class_types), tds_rate=rate)

        assert_never(model)

    # === Calculation ===

    def calculate(
        self,
        terms: CompensationTerms,
        month: str,
        bonus: BonusContext | None = None,
        session_counts: RawSessionCounts | None = None,
    ) -> Breakdown:
        """Calculate the breakdown for one month.

        ``session_counts`` is only read for per-class terms, where ``None``
        means the source was unavailable.
        """
        month = str(parse_month(month))
        bonus = bonus or BonusContext(
            bonus_quarter=None, status=BonusStatus.NOT_BONUS_MONTH
        )

        if isinstance(terms, StandardTerms):
            return self._calculate_standard(terms, month, bonus)
        if isinstance(terms, SeniorTerms):
            return self._calculate_senior(terms, month, bonus)
        if isinstance(terms, PerClassTerms):
            return self._calculate_per_class(terms, month, session_counts)
        assert_never(terms)

    def _calculate_standard(
        self, terms: StandardTerms, month: str, bonus: BonusContext
    ) -> StandardBreakdown:
        score = ZERO
        calculated_bonus = ZERO
        assessment_id = None

        if bonus.status is BonusStatus.APPLIED and bonus.funding is not None:
            score = bonus.funding.final_score
            calculated_bonus = (terms.quarterly_bonus_amount * score).quantize(
                CENTS, rounding=ROUND_HALF_UP
            )
            assessment_id = bonus.funding.assessment_id

        annual_ctc = terms.base_salary * 12 + terms.quarterly_bonus_amount * 4
        return StandardBreakdown(
            month=month,
            base_salary=terms.base_salary,
            quarterly_bonus_amount=terms.quarterly_bonus_amount,
            bonus_quarter=bonus.bonus_quarter,
            bonus_status=bonus.status,
            score=score,
            calculated_bonus=calculated_bonus,
            total_salary=terms.base_salary + calculated_bonus,
            bonus_remarks=self._bonus_remarks(bonus),
            annual_ctc=annual_ctc,
            monthly_ctc=(annual_ctc / 12).quantize(CENTS, rounding=ROUND_HALF_UP),
            assessment_id=assessment_id,
        )

    def _calculate_senior(
        self, terms: SeniorTerms, month: str, bonus: BonusContext
    ) -> SeniorBreakdown:
        funded = bonus.status is BonusStatus.APPLIED and bonus.funding is not None
        score = bonus.funding.final_score if funded and bonus.funding else ZERO

        fixed = [
            self._component_line(c, default=c.monthly_amount) for c in terms.fixed
        ]
        variable = [
            self._component_line(c, default=self._variable_default(c, funded, score))
            for c in terms.variable
        ]

        effective = sum((c.current_amount for c in fixed + variable), ZERO)
        return SeniorBreakdown(
            month=month,
            fixed=fixed,
            variable=variable,
            effective_compensation=effective,
            tds=terms.tds_amount,
            travel_reimbursement=terms.travel_reimbursement,
            bank_transfer=effective - terms.tds_amount + terms.travel_reimbursement,
            bonus_quarter=bonus.bonus_quarter,
            bonus_status=bonus.status,
            score=score,
            assessment_id=bonus.funding.assessment_id if funded and bonus.funding else None,
        )

    def _calculate_per_class(
        self,
        terms: PerClassTerms,
        month: str,
        session_counts: RawSessionCounts | None,
    ) -> PerClassBreakdown:
        billing = derive_session_billing(terms.class_types, session_counts)
        tds = (billing.gross_billing * terms.tds_rate).quantize(WHOLE, rounding=ROUND_HALF_UP)
        return PerClassBreakdown(
            month=month,
            entries=billing.entries,
            total_sessions=billing.total_sessions,
            gross_billing=billing.gross_billing,
            tds_rate=terms.tds_rate,
            tds=tds,
            net_payout=billing.gross_billing - tds,
            source_degraded=billing.source_degraded,
        )

    @staticmethod
    def _variable_default(
        component: SalaryComponent, funded: bool, score: Decimal
    ) -> Decimal:
        if component.frequency == "Monthly":
            return component.monthly_amount
        if component.frequency == "Quarterly" and funded:
            return (component.annual_amount / 4 * score).quantize(
                WHOLE, rounding=ROUND_HALF_UP
            )
        return ZERO

    @staticmethod
    def _component_line(component: SalaryComponent, default: Decimal) -> ComponentLine:
        overridden = component.current_amount is not None
        return ComponentLine(
            component_id=component.component_id,
            name=component.name,
            annual_amount=component.annual_amount,
            monthly_amount=component.monthly_amount,
            frequency=component.frequency,
            current_amount=component.current_amount if overridden else default,
            remarks=component.current_remarks or component.remarks,
            overridden=overridden,
        )

    @staticmethod
    def _bonus_remarks(bonus: BonusContext) -> str:
        quarter = bonus.bonus_quarter
        if bonus.status is BonusStatus.APPLIED and bonus.funding is not None:
            return f"BSC Score: {bonus.funding.final_score * 10:.1f}/10"
        if bonus.status is BonusStatus.NOT_BONUS_MONTH:
            return "Bonus follows the quarterly payout cycle"
        if bonus.status is BonusStatus.NO_BONUS_CONFIGURED:
            return "No variable component"
        if bonus.status is BonusStatus.NO_SUBMISSION:
            return f"BSC awaited for {quarter}"
        if bonus.status is BonusStatus.PENDING_VALIDATION:
            return f"BSC for {quarter} pending validation"
        if bonus.status is BonusStatus.REJECTED:
            return f"BSC for {quarter} was rejected"
        if bonus.status is BonusStatus.ALREADY_PAID:
            return f"BSC bonus for {quarter} already paid in {bonus.paid_in_month}"
        assert_never(bonus.status)

    # === Fingerprints ===

    def generate_calculation_id(
        self, payee_id: UUID, month: str, breakdown: Breakdown
    ) -> UUID:
        """Deterministic ID for a calculation (same inputs, same ID)."""
        data = {
            "payee_id": str(payee_id),
            "month": month,
            "engine_version": self.settings.engine_version,
            "breakdown_fingerprint": self.compute_fingerprint(breakdown.to_dict()),
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])

    @staticmethod
    def compute_fingerprint(data: dict[str, Any]) -> str:
        json_str = json.dumps(serialize(data), sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]
