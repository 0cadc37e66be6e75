"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_governance.config import get_settings
from workforce_governance.database import init_db
from workforce_governance.governance.authority import Actor
from workforce_governance.governance.policy import GovernancePolicy
from workforce_governance.services.notifications import TransitionNotifier

# Process-wide notification fan-out; delivery handlers register here
notifier = TransitionNotifier()


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, factory = init_db()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_actor(
    x_actor_role: Annotated[str | None, Header()] = None,
    x_actor_id: Annotated[str | None, Header()] = None,
) -> Actor:
    """Build the caller's actor from identity headers.

    Raises UnknownRole (rendered by the app's error handler) for roles
    outside the authority table.
    """
    if not x_actor_role or not x_actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Actor-Role and X-Actor-Id headers are required",
        )
    return Actor(role=x_actor_role, user_id=x_actor_id)


def get_policy() -> GovernancePolicy:
    """Governance policy from settings."""
    return get_settings().policy()


def get_notifier() -> TransitionNotifier:
    """Shared transition notifier."""
    return notifier


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
CurrentActor = Annotated[Actor, Depends(get_actor)]
Policy = Annotated[GovernancePolicy, Depends(get_policy)]
Notifier = Annotated[TransitionNotifier, Depends(get_notifier)]
