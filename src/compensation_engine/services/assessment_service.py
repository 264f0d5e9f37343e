"""Self-assessment service - submission, validation and rejection."""

from __future__ import annotations

import logging
import secrets
from typing import Any, Iterable, Mapping
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from compensation_engine.calculators.periods import parse_quarter
from compensation_engine.calculators.scorecard import (
    check_scores,
    resolve_scorecard,
    weighted_score,
)
from compensation_engine.calculators.types import MetricScore, ScorecardMetric
from compensation_engine.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from compensation_engine.models import AssessmentRecord, Payee
from compensation_engine.models.base import utcnow
from compensation_engine.services.audit_service import AuditService
from compensation_engine.services.state_machine import (
    AssessmentStateMachine,
    AssessmentStatus,
    InvalidTransitionError,
)

logger = logging.getLogger(__name__)

ScoreInput = MetricScore | Mapping[str, Any]


def _as_metric_scores(scores: Iterable[ScoreInput]) -> list[MetricScore]:
    parsed = []
    for score in scores:
        if isinstance(score, MetricScore):
            parsed.append(score)
            continue
        try:
            parsed.append(MetricScore.from_dict(score))
        except (KeyError, ArithmeticError, TypeError) as e:
            raise ValidationError(f"Malformed score entry {dict(score)!r}: {e}")
    return parsed


def _status_value(status: str) -> str:
    try:
        return AssessmentStatus(status).value
    except ValueError:
        raise ValidationError(f"Unknown assessment status '{status}'")


def _snapshot(record: AssessmentRecord) -> dict[str, Any]:
    return {
        "status": record.status,
        "final_score": record.final_score,
        "validated_by": record.validated_by,
        "bonus_paid": record.bonus_paid,
        "bonus_paid_in_month": record.bonus_paid_in_month,
    }


class AssessmentService:
    """Drives one assessment record per (payee, quarter) through its lifecycle.

    Operations:
    - submit: self-service submission, authorized by the payee's access token
    - validate: admin scores override per metric, final score recomputed
    - reject: terminal, no resubmission for the quarter
    - queries: by (payee, quarter), by status, by payee, missing submissions
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.audit = AuditService(session)

    # === Lookups ===

    async def get_payee(self, payee_id: UUID) -> Payee:
        payee = await self.session.get(Payee, payee_id)
        if payee is None:
            raise NotFoundError("Payee", payee_id)
        return payee

    async def get_payee_by_token(self, access_token: str) -> Payee | None:
        """Resolve the self-service capability token to its payee."""
        if not access_token:
            return None
        result = await self.session.execute(
            select(Payee).where(Payee.access_token == access_token)
        )
        return result.scalar_one_or_none()

    async def get_scorecard(self, payee_id: UUID) -> list[ScorecardMetric]:
        payee = await self.get_payee(payee_id)
        return resolve_scorecard(payee.use_default_scorecard, payee.scorecard_template)

    async def get_assessment(self, assessment_id: UUID) -> AssessmentRecord:
        record = await self.session.get(AssessmentRecord, assessment_id)
        if record is None:
            raise NotFoundError("Assessment", assessment_id)
        return record

    async def find_for_quarter(
        self, payee_id: UUID, quarter: str
    ) -> AssessmentRecord | None:
        result = await self.session.execute(
            select(AssessmentRecord).where(
                AssessmentRecord.payee_id == payee_id,
                AssessmentRecord.quarter == str(parse_quarter(quarter)),
            )
        )
        return result.scalar_one_or_none()

    async def list_by_status(
        self, status: str, quarter: str | None = None
    ) -> list[AssessmentRecord]:
        """Records in a status, oldest submission first."""
        query = select(AssessmentRecord).where(
            AssessmentRecord.status == _status_value(status)
        )
        if quarter is not None:
            query = query.where(AssessmentRecord.quarter == str(parse_quarter(quarter)))
        result = await self.session.execute(query.order_by(AssessmentRecord.submitted_at))
        return list(result.scalars().all())

    async def list_pending(self, quarter: str | None = None) -> list[AssessmentRecord]:
        return await self.list_by_status(AssessmentStatus.PENDING_VALIDATION, quarter)

    async def list_for_payee(
        self,
        payee_id: UUID,
        status: str | None = None,
        quarter: str | None = None,
    ) -> list[AssessmentRecord]:
        """A payee's records, newest quarter first."""
        query = select(AssessmentRecord).where(AssessmentRecord.payee_id == payee_id)
        if status is not None:
            query = query.where(AssessmentRecord.status == _status_value(status))
        if quarter is not None:
            query = query.where(AssessmentRecord.quarter == str(parse_quarter(quarter)))
        result = await self.session.execute(
            query.order_by(
                AssessmentRecord.year.desc(), AssessmentRecord.quarter_number.desc()
            )
        )
        return list(result.scalars().all())

    async def find_missing_submissions(self, quarter: str) -> list[Payee]:
        """Active payees with no record for ``quarter`` (reminder targets).

        Per-class payees carry no quarterly bonus and are never reminded.
        """
        q = str(parse_quarter(quarter))
        submitted = select(AssessmentRecord.payee_id).where(AssessmentRecord.quarter == q)
        result = await self.session.execute(
            select(Payee)
            .where(
                Payee.status == "active",
                Payee.compensation_model != "per_class",
                Payee.payee_id.not_in(submitted),
            )
            .order_by(Payee.name)
        )
        return list(result.scalars().all())

    # === Transitions ===

    async def submit(
        self,
        payee_id: UUID,
        quarter: str,
        scores: Iterable[ScoreInput],
        access_token: str,
    ) -> AssessmentRecord:
        """Store a self-assessment for (payee, quarter).

        Raises:
            NotFoundError: Unknown payee
            PermissionDeniedError: Token does not belong to the payee
            ValidationError: Malformed quarter, missing/unknown/out-of-range scores
            ConflictError: A record already exists for (payee, quarter)
        """
        payee = await self.get_payee(payee_id)
        if not access_token or not secrets.compare_digest(
            payee.access_token.encode(), access_token.encode()
        ):
            logger.warning("Rejected submission with mismatched token for payee %s", payee_id)
            raise PermissionDeniedError(
                "Access token does not match the payee", payee_id=str(payee_id)
            )

        parsed_quarter = parse_quarter(quarter)
        scorecard = resolve_scorecard(payee.use_default_scorecard, payee.scorecard_template)
        checked = check_scores(scorecard, _as_metric_scores(scores), require_all=True)
        self_score = weighted_score(scorecard, checked)

        if await self.find_for_quarter(payee_id, str(parsed_quarter)) is not None:
            raise ConflictError(
                f"Scorecard already submitted for {parsed_quarter}",
                payee_id=str(payee_id),
                quarter=str(parsed_quarter),
            )

        record = AssessmentRecord(
            payee_id=payee_id,
            quarter=str(parsed_quarter),
            year=parsed_quarter.year,
            quarter_number=parsed_quarter.number,
            self_scores=[checked[m.name].to_dict() for m in scorecard],
            self_calculated_score=self_score,
            status=AssessmentStatus.PENDING_VALIDATION.value,
        )
        self.session.add(record)
        try:
            await self.session.flush()
        except IntegrityError as e:
            # Concurrent submission won the unique constraint
            raise ConflictError(
                f"Scorecard already submitted for {parsed_quarter}",
                payee_id=str(payee_id),
                quarter=str(parsed_quarter),
            ) from e

        await self.audit.record(
            actor_id=str(payee_id),
            actor_name=payee.name,
            action="submit",
            entity="assessment",
            entity_id=record.assessment_id,
            after={"quarter": record.quarter, "self_calculated_score": self_score},
        )
        logger.info(
            "Assessment %s submitted for payee %s quarter %s (self score %s)",
            record.assessment_id, payee_id, record.quarter, self_score,
        )
        return record

    async def validate(
        self,
        assessment_id: UUID,
        validator_id: str,
        scores: Iterable[ScoreInput],
        notes: str | None = None,
        validator_name: str | None = None,
    ) -> AssessmentRecord:
        """Validate a pending record; a second call always fails.

        Metrics the validator scores replace the self-reported score;
        the rest keep the self-reported score.
        """
        record = await self.get_assessment(assessment_id)
        AssessmentStateMachine.validate_transition(
            record.status,
            AssessmentStatus.VALIDATED,
            "Assessment has already been reviewed",
        )

        payee = await self.get_payee(record.payee_id)
        scorecard = resolve_scorecard(payee.use_default_scorecard, payee.scorecard_template)
        overrides = check_scores(scorecard, _as_metric_scores(scores), require_all=False)

        merged = {s["metric_name"]: MetricScore.from_dict(s) for s in record.self_scores}
        merged.update(overrides)
        # Self scores stored against a since-edited template may fall outside it
        merged = check_scores(
            scorecard,
            [merged[m.name] for m in scorecard if m.name in merged],
            require_all=True,
        )
        final_score = weighted_score(scorecard, merged)

        before = _snapshot(record)
        await self._review(
            record,
            AssessmentStatus.VALIDATED,
            validated_scores=[merged[m.name].to_dict() for m in scorecard],
            final_score=final_score,
            validated_by=validator_id,
            validated_at=utcnow(),
            validation_notes=notes,
        )

        await self.audit.record(
            actor_id=validator_id,
            actor_name=validator_name,
            action="validate",
            entity="assessment",
            entity_id=record.assessment_id,
            before=before,
            after=_snapshot(record),
            metadata={"overridden_metrics": sorted(overrides)},
        )
        await self.session.flush()
        logger.info(
            "Assessment %s validated by %s (final score %s)",
            record.assessment_id, validator_id, final_score,
        )
        return record

    async def reject(
        self,
        assessment_id: UUID,
        reviewer_id: str,
        notes: str | None = None,
        reviewer_name: str | None = None,
    ) -> AssessmentRecord:
        """Reject a pending record. Rejected is terminal."""
        record = await self.get_assessment(assessment_id)
        AssessmentStateMachine.validate_transition(
            record.status,
            AssessmentStatus.REJECTED,
            "Assessment has already been reviewed",
        )

        before = _snapshot(record)
        await self._review(
            record,
            AssessmentStatus.REJECTED,
            validated_by=reviewer_id,
            validated_at=utcnow(),
            validation_notes=notes,
        )

        await self.audit.record(
            actor_id=reviewer_id,
            actor_name=reviewer_name,
            action="reject",
            entity="assessment",
            entity_id=record.assessment_id,
            before=before,
            after=_snapshot(record),
        )
        await self.session.flush()
        logger.info("Assessment %s rejected by %s", record.assessment_id, reviewer_id)
        return record

    async def _review(
        self, record: AssessmentRecord, to_status: AssessmentStatus, **values: Any
    ) -> None:
        """Move a pending record to ``to_status`` with a conditional update.

        The status guard is part of the UPDATE, so of two concurrent
        reviewers only one matches the row; the other gets
        InvalidTransitionError and the record is left as the winner wrote it.
        """
        result = await self.session.execute(
            update(AssessmentRecord)
            .where(
                AssessmentRecord.assessment_id == record.assessment_id,
                AssessmentRecord.status == AssessmentStatus.PENDING_VALIDATION.value,
            )
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(record)
        if result.rowcount == 0:
            logger.warning(
                "Assessment %s was reviewed concurrently (now %s)",
                record.assessment_id, record.status,
            )
            raise InvalidTransitionError(
                record.status, to_status, "Assessment has already been reviewed"
            )
