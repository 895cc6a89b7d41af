"""Shared fixtures: a temp SQLite database and an orchestrator wired to in-memory fakes."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio

from prunarr.clients.factory import ClientSet
from prunarr.database import build_engine, build_session_factory, init_db
from tests.fakes import FakeManager, Harness, make_settings


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'prunarr-test.db'}")
    await init_db(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def clients():
    return ClientSet(radarr=FakeManager("radarr", []))


@pytest_asyncio.fixture
async def harness(session_factory, clients):
    return Harness(session_factory, clients, make_settings())
