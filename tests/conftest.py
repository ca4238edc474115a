"""Pytest configuration and shared fixtures for CoachSmith tests."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from coachsmith.agents import CoachOrchestrator
from coachsmith.api.server import create_app
from coachsmith.config import Settings
from coachsmith.utils.caching import ResponseCache

from fakes import FakeExecutor, FakeGenAI, FakeSchemaProvider, make_gateway


@pytest.fixture
def fake_genai():
    return FakeGenAI()


@pytest.fixture
def gateway(fake_genai):
    return make_gateway(fake_genai)


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def schema_provider():
    return FakeSchemaProvider()


@pytest.fixture
def cache():
    return ResponseCache(ttl_seconds=300, max_entries=100)


@pytest.fixture
def orchestrator(gateway, cache, executor, schema_provider):
    return CoachOrchestrator(
        gateway=gateway,
        cache=cache,
        executor=executor,
        schema_provider=schema_provider,
    )


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        environment="development",
        database_url=None,
    )


@pytest_asyncio.fixture
async def client(settings, orchestrator):
    app = create_app(settings, orchestrator=orchestrator)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
