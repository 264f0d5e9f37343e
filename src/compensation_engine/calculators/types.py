"""Type definitions for the compensation calculation pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, is_dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Literal, Mapping
from uuid import UUID

ZERO = Decimal("0")


class CompensationModel(str, Enum):
    """Pay models. A closed set; the calculator dispatches exhaustively."""

    STANDARD = "standard"
    SENIOR = "senior"
    PER_CLASS = "per_class"


class PayeeStatus(str, Enum):
    """Employment status values."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    ON_LEAVE = "on_leave"


class BonusStatus(str, Enum):
    """Why a statement does or does not carry a quarterly bonus."""

    APPLIED = "applied"
    NOT_BONUS_MONTH = "not_bonus_month"
    NO_BONUS_CONFIGURED = "no_bonus_configured"
    NO_SUBMISSION = "no_submission"
    PENDING_VALIDATION = "pending_validation"
    REJECTED = "rejected"
    ALREADY_PAID = "already_paid"


# ===== Scorecards =====


@dataclass(frozen=True)
class ScorecardMetric:
    """A weighted metric on a payee's scorecard."""

    name: str
    description: str
    weight: Decimal
    min_score: Decimal = Decimal("0")
    max_score: Decimal = Decimal("10")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ScorecardMetric:
        return cls(
            name=data["name"],
            description=data.get("description", ""),
            weight=Decimal(str(data["weight"])),
            min_score=Decimal(str(data.get("min_score", 0))),
            max_score=Decimal(str(data.get("max_score", 10))),
        )

    def to_dict(self) -> dict[str, Any]:
        return serialize(asdict(self))


@dataclass(frozen=True)
class MetricScore:
    """A score entered for one metric (self-reported or validated)."""

    metric_name: str
    score: Decimal
    notes: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MetricScore:
        return cls(
            metric_name=data["metric_name"],
            score=Decimal(str(data["score"])),
            notes=data.get("notes"),
        )

    def to_dict(self) -> dict[str, Any]:
        return serialize(asdict(self))


# ===== Compensation terms (one variant per model) =====


@dataclass(frozen=True)
class StandardTerms:
    """Base salary plus a quarterly bonus pool scaled by the validated score."""

    base_salary: Decimal
    quarterly_bonus_amount: Decimal
    model: Literal[CompensationModel.STANDARD] = CompensationModel.STANDARD


@dataclass(frozen=True)
class SalaryComponent:
    """An itemized senior component with an optional current-period override."""

    component_id: str
    name: str
    annual_amount: Decimal
    monthly_amount: Decimal
    frequency: str = ""  # 'Monthly', 'Quarterly', 'Annual' or ''
    remarks: str = ""
    current_amount: Decimal | None = None
    current_remarks: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SalaryComponent:
        current = data.get("current_amount")
        return cls(
            component_id=str(data.get("id", "")),
            name=data["name"],
            annual_amount=Decimal(str(data.get("annual_amount", 0))),
            monthly_amount=Decimal(str(data.get("monthly_amount", 0))),
            frequency=data.get("frequency", "") or "",
            remarks=data.get("remarks", "") or "",
            current_amount=Decimal(str(current)) if current is not None else None,
            current_remarks=data.get("current_remarks"),
        )


@dataclass(frozen=True)
class SeniorTerms:
    """Itemized fixed and variable components."""

    fixed: tuple[SalaryComponent, ...]
    variable: tuple[SalaryComponent, ...]
    tds_amount: Decimal = ZERO
    travel_reimbursement: Decimal = ZERO
    model: Literal[CompensationModel.SENIOR] = CompensationModel.SENIOR

    @property
    def has_quarterly_variable(self) -> bool:
        return any(c.frequency == "Quarterly" for c in self.variable)


@dataclass(frozen=True)
class ClassSubType:
    name: str
    billing_rate: Decimal


@dataclass(frozen=True)
class ClassType:
    """A billable class type; sub-type rates replace the parent rate."""

    name: str
    billing_rate: Decimal
    category: str = "group"
    sub_types: tuple[ClassSubType, ...] = ()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ClassType:
        return cls(
            name=data["name"],
            billing_rate=Decimal(str(data.get("billing_rate", 0))),
            category=data.get("category", "group"),
            sub_types=tuple(
                ClassSubType(name=s["name"], billing_rate=Decimal(str(s["billing_rate"])))
                for s in data.get("sub_types") or []
            ),
        )


@dataclass(frozen=True)
class PerClassTerms:
    """Session billing with TDS withheld from the gross."""

    class_types: tuple[ClassType, ...]
    tds_rate: Decimal
    model: Literal[CompensationModel.PER_CLASS] = CompensationModel.PER_CLASS


CompensationTerms = StandardTerms | SeniorTerms | PerClassTerms


# ===== Bonus funding =====


@dataclass(frozen=True)
class BonusFunding:
    """Snapshot of a validated, unpaid assessment that funds a bonus."""

    assessment_id: UUID
    quarter: str
    final_score: Decimal


@dataclass(frozen=True)
class BonusContext:
    """Outcome of the bonus lookup for one payee and month."""

    bonus_quarter: str | None
    status: BonusStatus
    funding: BonusFunding | None = None
    paid_in_month: str | None = None


# ===== Session billing =====


@dataclass(frozen=True)
class ClassSessionCount:
    """Raw counts for one class type in one month."""

    sessions: int = 0
    no_shows: int = 0
    sub_types: Mapping[str, int] = field(default_factory=dict)


RawSessionCounts = Mapping[str, ClassSessionCount]


@dataclass
class SubTypeEntry:
    name: str
    sessions: int
    billing_rate: Decimal
    total_billing: Decimal


@dataclass
class SessionEntry:
    """Derived billing for one class type."""

    class_type: str
    sessions: int
    no_show_sessions: int
    billing_rate: Decimal
    total_billing: Decimal
    sub_type_breakdown: list[SubTypeEntry] | None = None


@dataclass
class SessionBilling:
    entries: list[SessionEntry]
    total_sessions: int
    gross_billing: Decimal
    source_degraded: bool = False


# ===== Breakdowns (one variant per model) =====


@dataclass
class StandardBreakdown:
    month: str
    base_salary: Decimal
    quarterly_bonus_amount: Decimal
    bonus_quarter: str | None
    bonus_status: BonusStatus
    score: Decimal
    calculated_bonus: Decimal
    total_salary: Decimal
    bonus_remarks: str
    annual_ctc: Decimal
    monthly_ctc: Decimal
    assessment_id: UUID | None = None
    model: Literal[CompensationModel.STANDARD] = CompensationModel.STANDARD

    @property
    def total_payout(self) -> Decimal:
        return self.total_salary

    def to_dict(self) -> dict[str, Any]:
        return serialize(asdict(self))


@dataclass
class ComponentLine:
    """A senior component as carried into the statement."""

    component_id: str
    name: str
    annual_amount: Decimal
    monthly_amount: Decimal
    frequency: str
    current_amount: Decimal
    remarks: str
    overridden: bool = False


@dataclass
class SeniorBreakdown:
    month: str
    fixed: list[ComponentLine]
    variable: list[ComponentLine]
    effective_compensation: Decimal
    tds: Decimal
    travel_reimbursement: Decimal
    bank_transfer: Decimal
    bonus_quarter: str | None
    bonus_status: BonusStatus
    score: Decimal
    assessment_id: UUID | None = None
    model: Literal[CompensationModel.SENIOR] = CompensationModel.SENIOR

    @property
    def total_payout(self) -> Decimal:
        return self.bank_transfer

    def to_dict(self) -> dict[str, Any]:
        return serialize(asdict(self))


@dataclass
class PerClassBreakdown:
    month: str
    entries: list[SessionEntry]
    total_sessions: int
    gross_billing: Decimal
    tds_rate: Decimal
    tds: Decimal
    net_payout: Decimal
    source_degraded: bool = False
    model: Literal[CompensationModel.PER_CLASS] = CompensationModel.PER_CLASS

    @property
    def total_payout(self) -> Decimal:
        return self.net_payout

    @property
    def assessment_id(self) -> UUID | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return serialize(asdict(self))


Breakdown = StandardBreakdown | SeniorBreakdown | PerClassBreakdown


def serialize(obj: Any) -> Any:
    """Recursively convert values for JSON storage."""
    if isinstance(obj, dict):
        return {k: serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, UUID):
        return str(obj)
    if is_dataclass(obj) and not isinstance(obj, type):
        return serialize(asdict(obj))
    return obj
