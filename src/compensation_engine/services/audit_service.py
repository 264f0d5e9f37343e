"""Audit sink - one append-only row per state transition."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from compensation_engine.calculators.types import serialize
from compensation_engine.models import AuditLog


class AuditService:
    """Writes audit rows in the caller's transaction.

    The row is added to the same session as the mutation it describes, so
    it commits or rolls back together with it.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def record(
        self,
        actor_id: str,
        action: str,
        entity: str,
        entity_id: UUID | str,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
        actor_name: str | None = None,
    ) -> AuditLog:
        changes = None
        if before is not None or after is not None:
            changes = serialize({"before": before, "after": after})

        entry = AuditLog(
            actor_id=actor_id,
            actor_name=actor_name,
            action=action,
            entity=entity,
            entity_id=str(entity_id),
            changes=changes,
            metadata_json=serialize(metadata) if metadata else None,
        )
        self.session.add(entry)
        return entry

    async def list_for_entity(self, entity: str, entity_id: UUID | str) -> list[AuditLog]:
        result = await self.session.execute(
            select(AuditLog)
            .where(AuditLog.entity == entity, AuditLog.entity_id == str(entity_id))
            .order_by(AuditLog.timestamp)
        )
        return list(result.scalars().all())
