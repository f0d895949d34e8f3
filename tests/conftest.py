# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import docdriver  # noqa: F401
except ImportError:
    raise ImportError("docdriver is not installed. Run: pip install -e '.[dev]'") from None

import httpx
import pytest
import structlog

from docdriver.config import ServerConfig
from docdriver.server import create_app
from docdriver.session_manager import SessionRegistry
from tests._fake_engine import FakeEngine


@pytest.fixture(autouse=True)
def _clear_log_context():
    """The router binds request context; keep it from leaking between tests."""
    structlog.contextvars.clear_contextvars()
    yield
    structlog.contextvars.clear_contextvars()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def registry(engine) -> SessionRegistry:
    return SessionRegistry(engine, capabilities={"browserName": "docdriver"})


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig()


@pytest.fixture
def app(config, engine):
    """Starlette app backed by the in-memory engine."""
    return create_app(config, engine=engine)


@pytest.fixture
async def client(app):
    """httpx async client speaking to the app in-process."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


@pytest.fixture
async def session_id(client) -> str:
    resp = await client.post("/session", json={"capabilities": {}})
    assert resp.status_code == 200
    return resp.json()["value"]["sessionId"]


@pytest.fixture
async def on_page(client, session_id) -> str:
    """Session navigated to an http page with the default fake document."""
    resp = await client.post(f"/session/{session_id}/url", json={"url": "http://example.com/page"})
    assert resp.status_code == 200
    return session_id
