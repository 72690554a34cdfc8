"""
Test configuration and fixtures.
Uses SQLite in-memory for fast tests. Mocks Splynx, UISP and Convex at the client boundary.
"""
import os

# paybridge.main builds its module-level app at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

import paybridge.models  # noqa: F401
from paybridge.config import Settings
from paybridge.database import Base
from paybridge.integrations.convex import ConvexClient
from paybridge.integrations.splynx import SplynxClient
from paybridge.integrations.uisp import UispClient
from paybridge.services.container import build_services
from paybridge.services.ledger import LedgerStore
from paybridge.utils.alerting import reset_cooldowns
from paybridge.utils.retry import RetryPolicy


@pytest.fixture(autouse=True)
def _clear_alert_cooldowns():
    reset_cooldowns()
    yield
    reset_cooldowns()


@pytest.fixture
async def engine():
    """In-memory SQLite database shared by every session in a test."""
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def ledger(session_factory):
    return LedgerStore(session_factory)


@pytest.fixture
def settings():
    """Settings built from keyword arguments only - .env is never read."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        log_level="WARNING",
        splynx_api_url="https://splynx.test",
        splynx_api_key="test-key",
        splynx_api_secret="test-secret",
        uisp_api_url="https://uisp.test/api/v1.0",
        uisp_crm_api_url="https://uisp.test/crm/api/v1.0",
        uisp_app_key="test-app-key",
    )


@pytest.fixture
def fast_policy():
    """Default retry budget with the sleeps removed."""
    return RetryPolicy(max_retries=3, initial_delay=0, max_delay=0)


def make_uisp_client(client_id: int = 1211, user_ident: str = "W2123", **overrides) -> dict:
    """A UISP /clients record as the API returns it."""
    record = {
        "id": client_id,
        "userIdent": user_ident,
        "firstName": "Jane",
        "lastName": "Wanjiru",
        "companyName": None,
        "street1": "Moi Avenue 12",
        "city": "Nairobi",
        "countryId": 110,
        "zipCode": "00100",
        "isArchived": False,
        "isSuspended": False,
        "balance": -500.0,
        "accountBalance": 0.0,
        "accountOutstanding": 500.0,
        "currencyCode": "KES",
        "contacts": [{"email": "jane@example.com", "phone": "+254700000001", "name": "Jane Wanjiru"}],
    }
    record.update(overrides)
    return record


@pytest.fixture
def uisp_record():
    return make_uisp_client


@pytest.fixture
def splynx():
    client = MagicMock(spec=SplynxClient)
    client.configured = True
    client.get_customer_login = AsyncMock(return_value=None)
    client.list_customers = AsyncMock(return_value=[])
    return client


@pytest.fixture
def uisp():
    client = MagicMock(spec=UispClient)
    client.configured = True
    client.find_client_by_user_ident = AsyncMock(return_value=None)
    client.post_payment = AsyncMock(return_value={"id": 9001})
    client.get_client = AsyncMock(return_value=make_uisp_client())
    client.list_clients = AsyncMock(return_value=[])
    return client


@pytest.fixture
def convex():
    """Mirror disabled by default; tests flip configured to exercise it."""
    client = MagicMock(spec=ConvexClient)
    client.configured = False
    client.mutation = AsyncMock(return_value=None)
    client.query = AsyncMock(return_value=None)
    return client


@pytest.fixture
async def services(settings, session_factory, splynx, uisp, convex, fast_policy):
    """The full service graph wired by build_services, with external clients mocked."""
    with (
        patch.object(SplynxClient, "from_settings", return_value=splynx),
        patch.object(UispClient, "from_settings", return_value=uisp),
        patch.object(ConvexClient, "from_settings", return_value=convex),
    ):
        built = build_services(settings, session_factory, retry_policy=fast_policy)
    yield built
    await built.runner.drain()
