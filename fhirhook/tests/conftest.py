import os

# Must be set before fhirhook.db.session is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from unittest.mock import AsyncMock, MagicMock
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from fhirhook.db.repository import SubscriptionRepository
from fhirhook.db.session import Base
from fhirhook.models import subscription  # noqa: F401  (registers the table)
from fhirhook.notifications.bus import EventBus


@pytest.fixture(scope="function")
async def session_factory(tmp_path):
    """A fresh SQLite database per test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fhirhook.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture(scope="function")
def repository(session_factory):
    return SubscriptionRepository(session_factory)


@pytest.fixture(scope="function")
def make_subscription(repository):
    """Insert a subscription row with sensible defaults and return its snapshot."""

    async def _make(**overrides):
        fields = {
            "status": "active",
            "criteria": "Observation?status=final",
            "channel_type": "rest-hook",
            "channel_endpoint": "http://hook.test/notify",
            "channel_payload": None,
            "channel_header": {},
            "error_count": 0,
        }
        fields.update(overrides)
        return await repository.create(**fields)

    return _make


@pytest.fixture(scope="function")
def bus():
    return EventBus()


@pytest.fixture(scope="function")
def mock_http(mocker):
    """
    Patch httpx.AsyncClient so rest-hook calls never leave the process.
    Returns the inner client mock; set post.return_value / post.side_effect per test.
    """
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_client = AsyncMock()
    mock_client.post.return_value = mock_response

    mock_async_client = AsyncMock()
    mock_async_client.__aenter__.return_value = mock_client
    mock_async_client.__aexit__.return_value = None
    mocker.patch("httpx.AsyncClient", return_value=mock_async_client)
    return mock_client


@pytest.fixture(scope="function")
async def client(repository):
    """Provides an async HTTP client for the API with the repository overridden."""
    from fhirhook.api.main import app
    from fhirhook.api.deps import get_repository

    app.dependency_overrides[get_repository] = lambda: repository

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides = {}
