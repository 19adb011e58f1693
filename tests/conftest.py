"""
Shared test fixtures.

These replace real infrastructure with lightweight in-memory alternatives:
- PostgreSQL → SQLite in memory (via aiosqlite for the API, pysqlite for the worker)
- Redis → fakeredis (pure Python Redis mock)
- HTTP server → httpx.AsyncClient with ASGI transport (no network)
- Chrome + Lighthouse → canned engine reports built by make_raw_report()

This means tests:
- Run without Docker, a browser or Node
- Run in milliseconds (no network, no disk)
- Are fully isolated (each test gets a fresh database and Redis server)
"""

import fakeredis
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker

from models.base import Base
from api.auth import sign_user_token
from api.main import create_app
from api.dependencies import get_db, get_redis

# SQLite in-memory database — created fresh for each test
TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


def make_raw_report(
    url: str = "https://example.com/",
    scores: dict | None = None,
    audits: dict | None = None,
) -> dict:
    """
    A minimal engine report in the shape ChromeLighthouseEngine returns.

    scores uses engine category ids with 0-1 values, e.g. {"seo": 0.92}.
    """
    scores = scores if scores is not None else {
        "performance": 0.82,
        "accessibility": 0.95,
        "best-practices": 1.0,
        "seo": 0.92,
        "pwa": 0.0,
    }
    base_audits = {
        "first-contentful-paint": {"title": "First Contentful Paint", "score": 0.9, "numericValue": 1200.0},
        "largest-contentful-paint": {"title": "Largest Contentful Paint", "score": 0.7, "numericValue": 2100.0},
        "total-blocking-time": {"title": "Total Blocking Time", "score": 0.95, "numericValue": 80.0},
        "cumulative-layout-shift": {"title": "Cumulative Layout Shift", "score": 1.0, "numericValue": 0.02},
        "speed-index": {"title": "Speed Index", "score": 0.9, "numericValue": 1800.0},
        "interactive": {"title": "Time to Interactive", "score": 0.9, "numericValue": 2500.0},
    }
    base_audits.update(audits or {})
    return {
        "requestedUrl": url,
        "finalUrl": url,
        "categories": {cid: {"id": cid, "score": s} for cid, s in scores.items()},
        "audits": base_audits,
    }


@pytest.fixture
def redis_client():
    """A fake sync Redis with its own server, so tests never share keys."""
    r = fakeredis.FakeRedis(server=fakeredis.FakeServer())
    yield r
    r.flushall()


@pytest.fixture
def sync_session_factory():
    """Sync sessions on a fresh in-memory database, as the worker uses them."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield sessionmaker(engine, expire_on_commit=False)
    engine.dispose()


@pytest_asyncio.fixture
async def async_engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(TEST_DB_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine):
    """Create a database session bound to the test engine."""
    factory = async_sessionmaker(async_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {sign_user_token(USER_ID)}"}


@pytest.fixture
def other_auth_headers():
    return {"Authorization": f"Bearer {sign_user_token(OTHER_USER_ID)}"}


@pytest_asyncio.fixture
async def client(async_session, redis_client):
    """
    Create a test HTTP client that talks directly to the FastAPI app.

    dependency_overrides tells FastAPI: "instead of using the real get_db
    and get_redis, use these test versions." The queue, result cache and
    schedule manager are all built from get_redis, so they follow.

    ASGITransport means requests go directly to the app in-process,
    no HTTP server or network involved.
    """
    app = create_app()

    async def override_get_db():
        yield async_session

    async def override_get_redis():
        return redis_client

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def raw_report_factory():
    """make_raw_report as a fixture, so test modules don't import conftest."""
    return make_raw_report
