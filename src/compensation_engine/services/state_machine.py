"""Assessment and statement state machines with transition validation."""

from __future__ import annotations

from enum import Enum

from compensation_engine.errors import ConflictError


class AssessmentStatus(str, Enum):
    """Assessment record status values."""

    PENDING_VALIDATION = "pending_validation"
    VALIDATED = "validated"
    REJECTED = "rejected"


class StatementStatus(str, Enum):
    """Compensation statement status values."""

    DRAFT = "draft"
    SENT = "sent"
    PAID = "paid"


class InvalidTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(getattr(from_status, "value", from_status))
        self.to_status = str(getattr(to_status, "value", to_status))
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg, from_status=self.from_status, to_status=self.to_status)


class _StateMachine:
    VALID_TRANSITIONS: dict[str, list[str]] = {}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(
        cls, from_status: str, to_status: str, reason: str | None = None
    ) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return not cls.get_next_statuses(status)


class AssessmentStateMachine(_StateMachine):
    """State machine for self-assessment records.

    Allowed transitions:
    - pending_validation → validated
    - pending_validation → rejected

    Both targets are terminal. After validation only the payout pair
    (``bonus_paid``, ``bonus_paid_in_month``) may change.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        AssessmentStatus.PENDING_VALIDATION: [
            AssessmentStatus.VALIDATED,
            AssessmentStatus.REJECTED,
        ],
        AssessmentStatus.VALIDATED: [],  # Terminal state
        AssessmentStatus.REJECTED: [],  # Terminal state
    }

    @classmethod
    def can_fund_bonus(cls, status: str) -> bool:
        """Only validated records fund a bonus."""
        return status == AssessmentStatus.VALIDATED


class StatementStateMachine(_StateMachine):
    """State machine for compensation statements.

    Allowed transitions:
    - draft → sent
    - draft → paid
    - sent → paid
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        StatementStatus.DRAFT: [StatementStatus.SENT, StatementStatus.PAID],
        StatementStatus.SENT: [StatementStatus.PAID],
        StatementStatus.PAID: [],  # Terminal state
    }
