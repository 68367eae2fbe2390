"""Test fixtures: fake Redis, stubbed upstream APIs, a throwaway SQLite DB.

Testing pattern for the app:

1. Every external store is replaced: FakeRedis for Redis, an
   httpx.MockTransport for DexScreener/Moralis, SQLite (aiosqlite) in a
   temp dir for the license table.
2. wire_app() builds the real components on top of those fakes, exactly as
   the lifespan does in production. The lifespan itself does not run under
   ASGITransport, so nothing tries to reach a real server.
3. The scheduler records retry jobs instead of sleeping; tests run them
   when they want the "later" to happen.
"""

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from _fakes import FakeRedis, RecordingScheduler, UpstreamStub
from pulsefeed.db.engine import build_engine, build_session_factory, create_tables


@pytest.fixture()
def fake_redis():
    return FakeRedis()


@pytest.fixture()
def upstream():
    return UpstreamStub()


@pytest.fixture()
def scheduler():
    return RecordingScheduler()


@pytest_asyncio.fixture()
async def http_client(upstream):
    async with httpx.AsyncClient(transport=upstream.transport()) as c:
        yield c


@pytest_asyncio.fixture()
async def db_engine(tmp_path):
    """Fresh SQLite database per test with the license table created."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'licenses.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(db_engine):
    async with build_session_factory(db_engine)() as session:
        yield session


@pytest_asyncio.fixture()
async def app(fake_redis, http_client, db_engine, scheduler):
    """The app wired on top of the fakes."""
    from pulsefeed.main import app, wire_app

    wire_app(
        app,
        redis=fake_redis,
        http=http_client,
        engine=db_engine,
        scheduler=scheduler,
    )
    yield app
    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
