"""Tests for the self-assessment lifecycle."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from compensation_engine.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from compensation_engine.services.assessment_service import AssessmentService
from compensation_engine.services.audit_service import AuditService
from compensation_engine.services.state_machine import InvalidTransitionError

from conftest import full_scores, senior_components

CUSTOM_TEMPLATE = [
    {"name": "Retention", "weight": 70, "max_score": 5},
    {"name": "Attendance", "weight": 30},
]


@pytest.fixture
def service(session):
    return AssessmentService(session)


@pytest.fixture
async def payee(make_payee):
    return await make_payee()


class TestSubmit:
    async def test_submit_creates_pending_record(self, service, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
        )

        assert record.status == "pending_validation"
        assert record.quarter == "2025-Q4"
        assert (record.year, record.quarter_number) == (2025, 4)
        assert record.self_calculated_score == Decimal("0.800000")
        assert record.final_score is None
        assert record.bonus_paid is False
        assert [s["metric_name"] for s in record.self_scores][0] == "Session Fill Rates"

    async def test_token_mismatch_is_rejected(self, service, payee, make_payee):
        other = await make_payee()
        with pytest.raises(PermissionDeniedError):
            await service.submit(
                payee.payee_id, "2025-Q4", full_scores(8), other.access_token
            )
        assert await service.find_for_quarter(payee.payee_id, "2025-Q4") is None

    async def test_empty_token_is_rejected(self, service, payee):
        with pytest.raises(PermissionDeniedError):
            await service.submit(payee.payee_id, "2025-Q4", full_scores(8), "")

    async def test_unknown_payee(self, service):
        with pytest.raises(NotFoundError):
            await service.submit(uuid4(), "2025-Q4", full_scores(8), "token")

    async def test_out_of_range_score_stores_nothing(self, service, payee):
        scores = full_scores(8)
        scores[2]["score"] = 11
        with pytest.raises(ValidationError, match="DS Conversions"):
            await service.submit(payee.payee_id, "2025-Q4", scores, payee.access_token)
        assert await service.find_for_quarter(payee.payee_id, "2025-Q4") is None

    async def test_missing_metric(self, service, payee):
        with pytest.raises(ValidationError, match="Missing scores"):
            await service.submit(
                payee.payee_id, "2025-Q4", full_scores(8)[:4], payee.access_token
            )

    async def test_malformed_quarter(self, service, payee):
        with pytest.raises(ValidationError):
            await service.submit(payee.payee_id, "2025-Q5", full_scores(8), payee.access_token)

    async def test_malformed_score_entry(self, service, payee):
        scores = full_scores(8)
        scores[0] = {"metric_name": "Session Fill Rates", "score": "high"}
        with pytest.raises(ValidationError):
            await service.submit(payee.payee_id, "2025-Q4", scores, payee.access_token)

    async def test_duplicate_submission(self, service, payee):
        await service.submit(payee.payee_id, "2025-Q4", full_scores(8), payee.access_token)
        with pytest.raises(ConflictError):
            await service.submit(
                payee.payee_id, "2025-Q4", full_scores(9), payee.access_token
            )

    async def test_custom_scorecard(self, service, make_payee):
        payee = await make_payee(
            use_default_scorecard=False, scorecard_template=CUSTOM_TEMPLATE
        )
        scores = [
            {"metric_name": "Retention", "score": 5},
            {"metric_name": "Attendance", "score": 5},
        ]
        record = await service.submit(payee.payee_id, "2026-Q1", scores, payee.access_token)
        # 5/5*70 + 5/10*30 = 85
        assert record.self_calculated_score == Decimal("0.850000")


class TestValidate:
    async def test_validate_merges_overrides(self, service, session, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
        )
        validated = await service.validate(
            record.assessment_id,
            "admin-1",
            [{"metric_name": "Special Projects", "score": 10}],
            notes="Strong quarter",
        )

        assert validated.status == "validated"
        # (8/10 * 60 + 10/10 * 40) / 100
        assert validated.final_score == Decimal("0.880000")
        assert validated.validated_by == "admin-1"
        assert validated.validated_at is not None
        assert validated.validation_notes == "Strong quarter"
        scores = {s["metric_name"]: s["score"] for s in validated.validated_scores}
        assert scores["Special Projects"] == "10"
        assert scores["Team Focus"] == "8"

    async def test_validate_without_overrides_keeps_self_score(self, service, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(7), payee.access_token
        )
        validated = await service.validate(record.assessment_id, "admin-1", [])
        assert validated.final_score == Decimal("0.700000")

    async def test_second_validate_fails(self, service, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
        )
        await service.validate(record.assessment_id, "admin-1", [])

        with pytest.raises(InvalidTransitionError):
            await service.validate(record.assessment_id, "admin-2", [])
        with pytest.raises(InvalidTransitionError):
            await service.reject(record.assessment_id, "admin-2")

    async def test_override_out_of_range_leaves_record_pending(self, service, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
        )
        with pytest.raises(ValidationError):
            await service.validate(
                record.assessment_id,
                "admin-1",
                [{"metric_name": "Team Focus", "score": -1}],
            )
        assert record.status == "pending_validation"

    async def test_unknown_assessment(self, service):
        with pytest.raises(NotFoundError):
            await service.validate(uuid4(), "admin-1", [])

    async def test_audit_trail(self, service, session, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
        )
        await service.validate(
            record.assessment_id,
            "admin-1",
            [{"metric_name": "Team Focus", "score": 10}],
            validator_name="Admin One",
        )
        await session.flush()

        entries = await AuditService(session).list_for_entity(
            "assessment", record.assessment_id
        )
        by_action = {e.action: e for e in entries}
        assert set(by_action) == {"submit", "validate"}

        validate_entry = by_action["validate"]
        assert validate_entry.actor_name == "Admin One"
        assert validate_entry.changes["before"]["status"] == "pending_validation"
        assert validate_entry.changes["after"]["status"] == "validated"
        assert validate_entry.metadata_json == {"overridden_metrics": ["Team Focus"]}


class TestReject:
    async def test_reject_is_terminal(self, service, payee):
        record = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(3), payee.access_token
        )
        rejected = await service.reject(record.assessment_id, "admin-1", notes="Incomplete")

        assert rejected.status == "rejected"
        assert rejected.final_score is None
        with pytest.raises(InvalidTransitionError):
            await service.validate(record.assessment_id, "admin-1", [])
        # No resubmission for the quarter
        with pytest.raises(ConflictError):
            await service.submit(
                payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
            )


class TestQueries:
    async def test_list_pending(self, service, payee, make_payee):
        other = await make_payee()
        first = await service.submit(
            payee.payee_id, "2025-Q4", full_scores(8), payee.access_token
        )
        second = await service.submit(
            other.payee_id, "2025-Q4", full_scores(6), other.access_token
        )
        await service.validate(second.assessment_id, "admin-1", [])
        await service.session.flush()

        pending = await service.list_pending("2025-Q4")
        assert [r.assessment_id for r in pending] == [first.assessment_id]
        validated = await service.list_by_status("validated")
        assert [r.assessment_id for r in validated] == [second.assessment_id]

    async def test_unknown_status(self, service):
        with pytest.raises(ValidationError):
            await service.list_by_status("approved")

    async def test_list_for_payee_newest_first(self, service, payee):
        await service.submit(payee.payee_id, "2025-Q3", full_scores(8), payee.access_token)
        await service.submit(payee.payee_id, "2025-Q4", full_scores(8), payee.access_token)
        records = await service.list_for_payee(payee.payee_id)
        assert [r.quarter for r in records] == ["2025-Q4", "2025-Q3"]

    async def test_missing_submissions(self, service, payee, make_payee):
        senior = await make_payee(
            compensation_model="senior", salary_components=senior_components()
        )
        await make_payee(compensation_model="per_class", class_config={})
        await make_payee(status="inactive")
        await service.submit(payee.payee_id, "2025-Q4", full_scores(8), payee.access_token)
        await service.session.flush()

        missing = await service.find_missing_submissions("2025-Q4")
        assert [p.payee_id for p in missing] == [senior.payee_id]

    async def test_payee_by_token(self, service, payee):
        found = await service.get_payee_by_token(payee.access_token)
        assert found.payee_id == payee.payee_id
        assert await service.get_payee_by_token("nope") is None
        assert await service.get_payee_by_token("") is None

    async def test_get_scorecard(self, service, make_payee):
        payee = await make_payee(
            use_default_scorecard=False, scorecard_template=CUSTOM_TEMPLATE
        )
        scorecard = await service.get_scorecard(payee.payee_id)
        assert [m.name for m in scorecard] == ["Retention", "Attendance"]

    async def test_list_for_payee_filters(self, service, payee):
        first = await service.submit(
            payee.payee_id, "2025-Q3", full_scores(8), payee.access_token
        )
        await service.submit(payee.payee_id, "2025-Q4", full_scores(8), payee.access_token)
        await service.validate(first.assessment_id, "admin-1", [])

        validated = await service.list_for_payee(payee.payee_id, status="validated")
        assert [r.quarter for r in validated] == ["2025-Q3"]
        pending = await service.list_for_payee(
            payee.payee_id, status="pending_validation", quarter="2025-Q4"
        )
        assert [r.quarter for r in pending] == ["2025-Q4"]
        with pytest.raises(ValidationError):
            await service.list_for_payee(payee.payee_id, status="approved")


async def submit_committed(session_factory, payee, value=8):
    async with session_factory() as session, session.begin():
        record = await AssessmentService(session).submit(
            payee.payee_id, "2025-Q4", full_scores(value), payee.access_token
        )
        return record.assessment_id


async def review(session_factory, assessment_id, reviewer_id, special_projects=None):
    """Validate (or reject, when no score is given) in a session of its own."""
    async with session_factory() as session:
        service = AssessmentService(session)
        try:
            if special_projects is None:
                record = await service.reject(assessment_id, reviewer_id)
            else:
                record = await service.validate(
                    assessment_id,
                    reviewer_id,
                    [{"metric_name": "Special Projects", "score": special_projects}],
                )
        except InvalidTransitionError:
            await session.rollback()
            return None
        await session.commit()
        return reviewer_id, record.status, record.final_score


async def reviewed_state(session_factory, assessment_id):
    async with session_factory() as session:
        record = await AssessmentService(session).get_assessment(assessment_id)
        entries = await AuditService(session).list_for_entity("assessment", assessment_id)
        return record, sorted(e.action for e in entries)


class TestConcurrentReview:
    async def test_concurrent_validations_apply_once(self, session_factory, payee):
        assessment_id = await submit_committed(session_factory, payee)

        results = await asyncio.gather(
            review(session_factory, assessment_id, "admin-a", 10),
            review(session_factory, assessment_id, "admin-b", 2),
        )

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        winner_id, _, winner_score = winners[0]
        record, actions = await reviewed_state(session_factory, assessment_id)
        assert record.validated_by == winner_id
        assert record.final_score == winner_score
        assert actions == ["submit", "validate"]

    async def test_validate_and_reject_race_has_one_outcome(self, session_factory, payee):
        assessment_id = await submit_committed(session_factory, payee)

        results = await asyncio.gather(
            review(session_factory, assessment_id, "admin-a", 10),
            review(session_factory, assessment_id, "admin-b"),
        )

        winners = [r for r in results if r is not None]
        assert len(winners) == 1
        winner_id, winner_status, _ = winners[0]
        record, actions = await reviewed_state(session_factory, assessment_id)
        assert (record.validated_by, record.status) == (winner_id, winner_status)
        assert len(actions) == 2
        assert actions.count("submit") == 1

    async def test_stale_read_cannot_validate_again(self, session_factory, payee):
        assessment_id = await submit_committed(session_factory, payee)

        async with session_factory() as late:
            stale = await AssessmentService(late).get_assessment(assessment_id)
            assert stale.status == "pending_validation"

            assert await review(session_factory, assessment_id, "admin-a", 10) is not None

            with pytest.raises(InvalidTransitionError) as exc_info:
                await AssessmentService(late).validate(
                    assessment_id,
                    "admin-b",
                    [{"metric_name": "Special Projects", "score": 2}],
                )
            assert exc_info.value.from_status == "validated"
            await late.rollback()

        record, actions = await reviewed_state(session_factory, assessment_id)
        assert record.validated_by == "admin-a"
        assert record.final_score == Decimal("0.88")
        assert actions == ["submit", "validate"]

    async def test_stale_read_cannot_reject_validated(self, session_factory, payee):
        assessment_id = await submit_committed(session_factory, payee)

        async with session_factory() as late:
            await AssessmentService(late).get_assessment(assessment_id)
            assert await review(session_factory, assessment_id, "admin-a", 10) is not None

            with pytest.raises(InvalidTransitionError):
                await AssessmentService(late).reject(assessment_id, "admin-b")
            await late.rollback()

        record, _ = await reviewed_state(session_factory, assessment_id)
        assert record.status == "validated"
