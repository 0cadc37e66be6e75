"""Pytest fixtures for governance engine tests."""

from __future__ import annotations

from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from workforce_governance.database import create_schema, get_engine, make_session_factory
from workforce_governance.governance import Actor, GovernancePolicy, Role
from workforce_governance.services import (
    ContributionService,
    EntityLockRegistry,
    OverrideEngine,
    TransitionNotifier,
    WorkItemStore,
)

# In-memory SQLite shared through a single connection (StaticPool)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def db_engine():
    """Create a fresh test database per test."""
    engine = get_engine(TEST_DATABASE_URL)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    """Session factory bound to the test database."""
    return make_session_factory(db_engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def policy() -> GovernancePolicy:
    return GovernancePolicy()


@pytest.fixture
def notifier() -> TransitionNotifier:
    return TransitionNotifier()


@pytest.fixture
def locks() -> EntityLockRegistry:
    return EntityLockRegistry()


@pytest.fixture
def governance(session, policy, notifier, locks) -> OverrideEngine:
    """Approval engine with override support."""
    return OverrideEngine(session, policy=policy, notifier=notifier, locks=locks)


@pytest.fixture
def contributions(session, policy, locks) -> ContributionService:
    return ContributionService(session, policy=policy, locks=locks)


@pytest.fixture
def store(session) -> WorkItemStore:
    return WorkItemStore(session)


# ============================================================================
# Actors
# ============================================================================


@pytest.fixture
def worker() -> Actor:
    return Actor(Role.EMPLOYEE, "worker-1")


@pytest.fixture
def collaborator() -> Actor:
    return Actor(Role.TRADER, "trader-1")


@pytest.fixture
def team_lead() -> Actor:
    return Actor(Role.TEAM_LEAD, "lead-1")


@pytest.fixture
def department_head() -> Actor:
    return Actor(Role.DEPARTMENT_HEAD, "head-1")


@pytest.fixture
def report_admin() -> Actor:
    return Actor(Role.REPORT_ADMIN, "admin-1")


@pytest.fixture
def finance_admin() -> Actor:
    return Actor(Role.FINANCE_HR_ADMIN, "finance-1")


@pytest.fixture
def overseer() -> Actor:
    return Actor(Role.GENERAL_OVERSEER, "overseer-1")


@pytest.fixture
def investor() -> Actor:
    return Actor(Role.INVESTOR, "investor-1")


# ============================================================================
# Work items
# ============================================================================


@pytest_asyncio.fixture
async def report(governance, worker):
    """A submitted solo report: first-line unset, final pending."""
    return await governance.submit(worker, kind="report", description="Weekly report", rate=Decimal("100.00"))


@pytest_asyncio.fixture
async def shared_task(governance, worker, collaborator):
    """A submitted task shared between the worker and a trader."""
    return await governance.submit(
        worker,
        kind="task",
        description="Joint research",
        rate=Decimal("100.00"),
        collaborator_ids=[collaborator.user_id],
    )
