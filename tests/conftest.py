import httpx
import pytest
import pytest_asyncio

from crm_client.config import Settings
from crm_client.navigation import Location
from crm_client.services import build_service_clients
from crm_client.token_store import MemoryPersistence

from fake_backend import FakeBackend


@pytest.fixture
def settings():
    return Settings(
        AUTH_URL="http://auth.test",
        WALLET_URL="http://wallet.test",
        TRANSACTION_URL="http://transaction.test",
        LEDGER_URL="http://ledger.test",
        ANALYTICS_URL="http://analytics.test",
        APP_ORIGIN="https://app.test",
    )


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def location():
    return Location(current_path="/dashboard", login_path="/login")


@pytest_asyncio.fixture
async def clients(settings, backend, location):
    """All five service clients wired to the fake backend through an in-process ASGI transport."""
    services = build_service_clients(
        settings,
        persistence=MemoryPersistence(),
        navigator=location,
        transport=httpx.ASGITransport(app=backend.app),
    )
    yield services
    await services.aclose()


@pytest.fixture
def expired_session(clients, backend):
    """A stale access token (T1) with a usable refresh token (R1)."""
    backend.valid_refresh_tokens.add("R1")
    clients.token_store.set_tokens("T1", "R1")
    return clients
