"""Error taxonomy for the compensation engine.

Every error raised by an engine operation derives from ``EngineError`` and
carries a stable ``code`` so callers (HTTP layer, CLI, batch reports) can
classify failures without string matching:

- ValidationError: malformed input, rejected before any mutation
- ConflictError: duplicate submission/statement, already-paid bonus
- NotFoundError: unknown payee or record id
- PermissionDeniedError: self-service capability does not match the payee
- UpstreamDegradedError: session source unavailable (non-fatal)
- DeliveryError: document/email/notification collaborator failure
"""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base class for all engine errors."""

    code = "ENGINE_ERROR"

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details = details
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "detail": self.message, **self.details}


class ValidationError(EngineError):
    """Raised when input fails validation."""

    code = "VALIDATION_ERROR"


class ConflictError(EngineError):
    """Raised when an operation would violate a uniqueness or once-only rule."""

    code = "CONFLICT"


class NotFoundError(EngineError):
    """Raised when a referenced entity does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}", entity=entity)


class PermissionDeniedError(EngineError):
    """Raised when a caller's capability does not match the target payee."""

    code = "PERMISSION_DENIED"


class UpstreamDegradedError(EngineError):
    """Raised when raw session data cannot be read for a payee/month."""

    code = "UPSTREAM_DEGRADED"


class DeliveryError(EngineError):
    """Raised when a delivery collaborator fails."""

    code = "DELIVERY_FAILED"

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Delivery via '{channel}' failed: {reason}", channel=channel)
