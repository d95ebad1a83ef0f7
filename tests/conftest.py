"""
Shared test fixtures for webstability.

Each test gets its own SQLite file (aiosqlite) with freshly created tables,
a lifecycle service wired to in-process locks, a mocked payment gateway and
a recording notifier.
"""

import os
from typing import Any
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

os.environ.setdefault("DEBUG", "false")

from webstability.core.interfaces import CheckoutSession  # noqa: E402
from webstability.core.lifecycle import ProjectLifecycleService  # noqa: E402
from webstability.core.locks import LocalProjectLocks  # noqa: E402
from webstability.core.phases import CLIENT_PHASE_GRAPH  # noqa: E402
from webstability.db.base import Base  # noqa: E402
from webstability.main import app  # noqa: E402
from webstability.models import Project  # noqa: E402
from webstability.models.pydantic_models.project import ProjectIntake  # noqa: E402


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Fresh SQLite database per test."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'webstability_test.db'}", echo=False
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def session_factory(test_engine):
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ---------------------------------------------------------------------------
# Collaborator mocks
# ---------------------------------------------------------------------------


class RecordingNotifier:
    def __init__(self):
        self.sent: list[dict[str, Any]] = []

    async def send(self, kind: str, recipient: str, payload: dict[str, Any]) -> None:
        self.sent.append({"kind": kind, "recipient": recipient, "payload": payload})

    def kinds(self) -> list[str]:
        return [n["kind"] for n in self.sent]


@pytest.fixture()
def notifier():
    return RecordingNotifier()


@pytest.fixture()
def payment_gateway():
    """Gateway returning a fixed checkout; tests override ``fetch_payment`` as needed."""
    gateway = AsyncMock()
    gateway.create_checkout.return_value = CheckoutSession(
        checkout_url="https://pay.example/checkout/tr_test", reference="tr_test"
    )
    gateway.fetch_payment.return_value = None
    return gateway


@pytest_asyncio.fixture(scope="function")
async def service(session_factory, payment_gateway, notifier):
    return ProjectLifecycleService(
        session_factory=session_factory,
        graph=CLIENT_PHASE_GRAPH,
        payment_gateway=payment_gateway,
        notifier=notifier,
        lock_manager=LocalProjectLocks(blocking_timeout=5.0),
        retry_attempts=3,
    )


# ---------------------------------------------------------------------------
# Test client
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="function")
async def test_client(service):
    app.state.lifecycle_service = service

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    del app.state.lifecycle_service


# ---------------------------------------------------------------------------
# Factory fixtures
# ---------------------------------------------------------------------------

COMPLETE_CHECKLIST = {
    "payment_received": True,
    "privacy_policy_provided": True,
    "terms_conditions_provided": True,
    "email_preference_confirmed": True,
    "final_approval_given": True,
}


@pytest_asyncio.fixture(scope="function")
async def set_project_state(session_factory):
    """Write fields straight to a project row, bypassing the lifecycle rules."""

    async def _set(project_id: str, **fields) -> Project:
        async with session_factory() as session:
            project = (
                await session.execute(
                    select(Project).where(Project.project_id == project_id)
                )
            ).scalar_one()
            for key, value in fields.items():
                setattr(project, key, value)
            await session.commit()
            return project

    return _set


@pytest_asyncio.fixture(scope="function")
async def project_factory(service, set_project_state):
    async def _create(
        business_name: str = "Bakkerij de Vries",
        package: str = "starter",
        contact_email: str | None = "info@bakkerijdevries.nl",
        **state,
    ) -> Project:
        result = await service.create_project(
            ProjectIntake(
                business_name=business_name,
                contact_name="Jan de Vries",
                contact_email=contact_email,
                package=package,
            )
        )
        assert result.ok, result.error
        project = result.value
        if state:
            project = await set_project_state(project.project_id, **state)
        return project

    return _create


@pytest_asyncio.fixture(scope="function")
async def live_project(project_factory):
    """A paid starter project that has already gone live."""
    return await project_factory(
        phase="live",
        payment_status="paid",
        prelive_checklist=dict(COMPLETE_CHECKLIST),
    )

