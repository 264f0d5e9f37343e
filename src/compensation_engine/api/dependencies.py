"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from compensation_engine.services.generation_service import GenerationService


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_generation_service(request: Request) -> GenerationService:
    state = request.app.state
    return GenerationService(
        state.session_factory,
        session_source=state.session_source,
        channels=state.channels,
        settings=state.settings,
        locks=state.locks,
    )


async def get_actor_id(x_actor_id: Annotated[str | None, Header()] = None) -> str:
    """Extract the acting admin from header."""
    if not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Actor-ID header is required",
        )
    return x_actor_id


async def get_access_token(
    x_access_token: Annotated[str | None, Header()] = None
) -> str:
    """Extract the self-service capability token from header."""
    if not x_access_token:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="X-Access-Token header is required",
        )
    return x_access_token


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
ActorId = Annotated[str, Depends(get_actor_id)]
AccessToken = Annotated[str, Depends(get_access_token)]
Generator = Annotated[GenerationService, Depends(get_generation_service)]
