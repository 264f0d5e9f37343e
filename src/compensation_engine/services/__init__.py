"""Compensation engine services."""

from compensation_engine.services.state_machine import (
    AssessmentStateMachine,
    AssessmentStatus,
    InvalidTransitionError,
    StatementStateMachine,
    StatementStatus,
)
from compensation_engine.services.audit_service import AuditService
from compensation_engine.services.assessment_service import AssessmentService
from compensation_engine.services.commit_service import BonusAlreadyPaidError, CommitService
from compensation_engine.services.statement_service import StatementService
from compensation_engine.services.directory_resolver import (
    DirectoryResolver,
    ResolvedDirectoryEntry,
)
from compensation_engine.services.generation_service import (
    BatchResult,
    GenerationRequest,
    GenerationService,
)

__all__ = [
    "AssessmentStateMachine",
    "AssessmentStatus",
    "InvalidTransitionError",
    "StatementStateMachine",
    "StatementStatus",
    "AuditService",
    "AssessmentService",
    "BonusAlreadyPaidError",
    "CommitService",
    "StatementService",
    "DirectoryResolver",
    "ResolvedDirectoryEntry",
    "BatchResult",
    "GenerationRequest",
    "GenerationService",
]
