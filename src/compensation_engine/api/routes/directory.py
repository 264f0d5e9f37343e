"""Payee directory endpoint."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Request
from pydantic import BaseModel

from compensation_engine.services.directory_resolver import DirectoryResolver

router = APIRouter(prefix="/directory", tags=["directory"])


class DirectoryResponse(BaseModel):
    """Resolved display data and which source supplied it."""

    name: str
    links: dict[str, str]
    payee_id: UUID | None = None
    employee_code: str | None = None
    source: str


@router.get("/{external_user_id}", response_model=DirectoryResponse)
async def resolve_directory_entry(
    request: Request,
    external_user_id: Annotated[str, Path()],
) -> DirectoryResponse:
    """Look up a chat identity: database, then directory file, then default."""
    state = request.app.state
    resolver = DirectoryResolver.from_settings(state.settings, state.session_factory)
    resolved = await resolver.resolve(external_user_id)
    return DirectoryResponse(
        name=resolved.entry.name,
        links=resolved.entry.links,
        payee_id=resolved.entry.payee_id,
        employee_code=resolved.entry.employee_code,
        source=resolved.source,
    )
