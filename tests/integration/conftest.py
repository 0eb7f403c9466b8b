"""Integration test fixtures: services over a real database, and the HTTP app."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from settlement_engine.api.app import create_app
from settlement_engine.api.dependencies import get_db_session
from settlement_engine.database import create_session_factory
from settlement_engine.models import Organization
from settlement_engine.services.assembly_service import SettlementAssemblyService
from settlement_engine.services.lifecycle_service import SettlementLifecycleService

TEST_TIMEZONE = "America/New_York"


@pytest.fixture
def assembly(session: AsyncSession, clock) -> SettlementAssemblyService:
    return SettlementAssemblyService(session, default_timezone=TEST_TIMEZONE, clock=clock)


@pytest.fixture
def lifecycle(session: AsyncSession, clock) -> SettlementLifecycleService:
    return SettlementLifecycleService(session, clock=clock)


@pytest.fixture
async def client(engine) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests get sessions on the test database."""
    app = create_app()
    factory = create_session_factory(engine)

    async def override_db_session() -> AsyncGenerator[AsyncSession, None]:
        async with factory() as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def org_headers(organization: Organization) -> dict[str, str]:
    return {"X-Organization-ID": str(organization.organization_id)}
