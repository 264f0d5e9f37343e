"""ORM models."""

from compensation_engine.models.base import Base, TimestampMixin
from compensation_engine.models.payee import Payee, generate_access_token
from compensation_engine.models.assessment import AssessmentRecord
from compensation_engine.models.statement import CompensationStatement
from compensation_engine.models.audit import AuditLog

__all__ = [
    "Base",
    "TimestampMixin",
    "Payee",
    "generate_access_token",
    "AssessmentRecord",
    "CompensationStatement",
    "AuditLog",
]
