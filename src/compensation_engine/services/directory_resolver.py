"""Payee directory lookup with an explicit, ordered fallback chain.

Sources are tried in order (database, static directory file, built-in
default). The first source that knows the external user id wins and the
result records which source that was. A source that raises is logged and
skipped.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from compensation_engine.config import Settings
from compensation_engine.errors import ValidationError
from compensation_engine.models import Payee

logger = logging.getLogger(__name__)

DEFAULT_LINKS: dict[str, str] = {
    "scorecard": "",
    "session_logs": "",
    "payment_advice": "",
    "leave_records": "",
}


@dataclass(frozen=True)
class DirectoryEntry:
    """Display data and personalized links for a payee."""

    name: str
    links: dict[str, str] = field(default_factory=dict)
    payee_id: UUID | None = None
    employee_code: str | None = None
    access_token: str | None = None


@dataclass(frozen=True)
class ResolvedDirectoryEntry:
    entry: DirectoryEntry
    source: str


class DirectorySource(Protocol):
    name: str

    async def lookup(self, external_user_id: str) -> DirectoryEntry | None:
        ...


class DatabaseDirectorySource:
    """Active payees from the payee table."""

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def lookup(self, external_user_id: str) -> DirectoryEntry | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Payee).where(
                    Payee.external_user_id == external_user_id,
                    Payee.status == "active",
                )
            )
            payee = result.scalar_one_or_none()
        if payee is None:
            return None
        return DirectoryEntry(
            name=payee.name,
            links=dict(payee.links or {}),
            payee_id=payee.payee_id,
            employee_code=payee.employee_code,
            access_token=payee.access_token,
        )


class StaticDirectorySource:
    """Entries from configuration, keyed by external user id."""

    name = "config"

    def __init__(self, entries: Mapping[str, Mapping[str, Any]]):
        self._entries = {
            user_id: DirectoryEntry(
                name=data["name"],
                links=dict(data.get("links") or {}),
                employee_code=data.get("employee_code"),
            )
            for user_id, data in entries.items()
        }

    @classmethod
    def from_file(cls, path: str | Path) -> StaticDirectorySource:
        """Load ``{"U123": {"name": ..., "links": {...}}}`` from a JSON file."""
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationError(f"Cannot read directory file {path}: {e}")
        if not isinstance(data, dict):
            raise ValidationError(f"Directory file {path} must hold a JSON object")
        return cls(data)

    async def lookup(self, external_user_id: str) -> DirectoryEntry | None:
        return self._entries.get(external_user_id)


class DirectoryResolver:
    """Resolves an external user id through the ordered sources."""

    def __init__(
        self,
        sources: Sequence[DirectorySource],
        default: DirectoryEntry | None = None,
        default_links: Mapping[str, str] | None = None,
    ):
        self.sources = list(sources)
        self.default_links = dict(DEFAULT_LINKS if default_links is None else default_links)
        self.default = default or DirectoryEntry(name="Staff member")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> DirectoryResolver:
        """Database first, then the directory file when one is configured."""
        sources: list[DirectorySource] = [DatabaseDirectorySource(session_factory)]
        if settings.directory_file:
            sources.append(StaticDirectorySource.from_file(settings.directory_file))
        return cls(sources)

    async def resolve(self, external_user_id: str) -> ResolvedDirectoryEntry:
        for source in self.sources:
            try:
                entry = await source.lookup(external_user_id)
            except Exception as e:
                logger.warning(
                    "Directory source %s failed for %s, trying next: %s",
                    source.name,
                    external_user_id,
                    e,
                )
                continue
            if entry is not None:
                return ResolvedDirectoryEntry(self._with_default_links(entry), source.name)

        return ResolvedDirectoryEntry(self._with_default_links(self.default), "default")

    def _with_default_links(self, entry: DirectoryEntry) -> DirectoryEntry:
        links = {**self.default_links, **{k: v for k, v in entry.links.items() if v}}
        return replace(entry, links=links)
