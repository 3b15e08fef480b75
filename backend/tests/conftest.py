"""
Twitter Clone Backend — Test Configuration (conftest.py)
==========================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Every test gets its own settings, counters, token store and app, so
       rate limit and CSRF state never leak between tests.
How:   Settings are built explicitly (no .env), clocks are fake, feature
       modules are recording fakes, and HTTP goes through httpx's
       ASGITransport (no socket, no lifespan).

Fixture Hierarchy (all function-scoped):
    ├── clock:            Manually advanced wall clock
    ├── test_settings:    Development settings, no .env
    ├── rate_table:       RateWindowTable on the fake clock
    ├── csrf_store:       CSRFTokenStore on the fake clock
    ├── features:         Recording fake feature modules
    ├── storage / cache:  Opaque sentinel handles
    ├── make_server:      Factory for Server instances (override settings)
    ├── make_client:      Factory for AsyncClients bound to an app
    └── test_client:      HTTPX AsyncClient for the default server
"""

import os
from typing import Any, Dict, List, Tuple

import pytest
import pytest_asyncio
from fastapi import APIRouter, FastAPI
from httpx import ASGITransport, AsyncClient

# Keep a developer's shell from leaking into Settings()
os.environ.pop("APP_ENV", None)
os.environ.pop("TWITTERCLONE_CHILD_PROCESS", None)

from twitterclone.config import Settings
from twitterclone.main import register_exception_handlers
from twitterclone.middleware.csrf import CSRFTokenStore
from twitterclone.middleware.rate_limit import RateWindowTable
from twitterclone.server import Server


class FakeClock:
    """Wall clock that only moves when told to."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingFeature:
    """
    Stand-in feature module.

    Registers:
        GET  <prefix>            index
        POST|PUT|PATCH|DELETE <prefix>/{action}   a mutating endpoint
        GET  <prefix>/boom       raises RuntimeError
    and records every registration call and every handler hit.
    """

    def __init__(self, name: str):
        self.name = name
        self.registrations: List[Tuple[APIRouter, Any, Any]] = []
        self.hits: List[str] = []

    def __call__(self, group: APIRouter, storage: Any, cache: Any) -> None:
        self.registrations.append((group, storage, cache))

        @group.get("")
        async def index() -> Dict[str, str]:
            self.hits.append("index")
            return {"feature": self.name}

        @group.get("/boom")
        async def boom() -> Dict[str, str]:
            self.hits.append("boom")
            raise RuntimeError("feature handler exploded")

        @group.api_route("/{action}", methods=["POST", "PUT", "PATCH", "DELETE"])
        async def mutate(action: str) -> Dict[str, str]:
            self.hits.append(action)
            return {"feature": self.name, "action": action}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def test_settings():
    return Settings(_env_file=None)


@pytest.fixture
def rate_table(clock, test_settings):
    return RateWindowTable(
        limit=test_settings.rate_limit_max,
        window=test_settings.rate_limit_window,
        clock=clock,
    )


@pytest.fixture
def csrf_store(clock, test_settings):
    return CSRFTokenStore(expiration=test_settings.csrf_expiration, clock=clock)


@pytest.fixture
def features():
    return {
        "auth": RecordingFeature("auth"),
        "tweet": RecordingFeature("tweet"),
        "user": RecordingFeature("user"),
        "relationship": RecordingFeature("relationship"),
    }


@pytest.fixture
def storage():
    return object()


@pytest.fixture
def cache():
    return object()


@pytest.fixture
def make_server(test_settings, clock, rate_table, csrf_store, features, storage, cache):
    """
    Build an initialized Server.

    Usage:
        server = make_server(app_env="production")
        server = make_server(rate_limit_max=3)
    """

    def _make(**overrides: Any) -> Server:
        settings = test_settings.model_copy(update=overrides) if overrides else test_settings
        table = rate_table
        if "rate_limit_max" in overrides or "rate_limit_window" in overrides:
            table = RateWindowTable(
                limit=settings.rate_limit_max,
                window=settings.rate_limit_window,
                clock=clock,
            )
        app = FastAPI()
        register_exception_handlers(app)
        server = Server(
            app,
            storage,
            cache,
            settings=settings,
            rate_table=table,
            csrf_store=csrf_store,
            features=features,
        )
        server.initialize()
        return server

    return _make


def client_for(app: FastAPI) -> AsyncClient:
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


@pytest.fixture
def make_client():
    """Factory for AsyncClients bound to an app (no socket)."""
    return client_for


@pytest_asyncio.fixture
async def test_client(make_server):
    """
    Async HTTP client for a fully composed app.

    Usage:
        async def test_index(test_client):
            response = await test_client.get("/auth")
            assert response.status_code == 200
    """
    server = make_server()
    async with client_for(server.app) as client:
        yield client
