import os

# Must be set before wishwall.config builds its settings singleton
os.environ.setdefault("OTEL_ENABLED", "false")
os.environ.setdefault("ADMIN_EMAILS", "admin@example.com")

import httpx
import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from wishwall.database import Base, get_db
from wishwall.main import app
from wishwall.realtime import ChangeFeed, get_change_feed
from wishwall.sdk.client import WishWallClient

PASSWORD = "secret123"


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def change_feed():
    # async so teardown runs while the test's event loop is still open
    feed = ChangeFeed()
    yield feed
    feed.close()


@pytest.fixture
async def api(engine, change_feed):
    session_factory = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_change_feed] = lambda: change_feed
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def make_client(api):
    """Factory for SDK clients wired to the in-process app."""
    clients: list[WishWallClient] = []

    def factory(transport: httpx.AsyncBaseTransport = None) -> WishWallClient:
        client = WishWallClient("http://test", transport=transport or httpx.ASGITransport(app=app))
        clients.append(client)
        return client

    yield factory
    for client in clients:
        await client.aclose()


async def sign_up(api: httpx.AsyncClient, email: str, full_name: str = "Test User") -> dict:
    """Create an account over raw HTTP; returns auth headers."""
    r = await api.post(
        "/auth/signup",
        json={"email": email, "password": PASSWORD, "full_name": full_name, "city": "Tunis"},
    )
    assert r.status_code == 201, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


async def create_wish(api: httpx.AsyncClient, headers: dict, **overrides) -> dict:
    body = {
        "title": "Visit Djerba",
        "content": "Spend a whole week on the island with family.",
        "image_url": "",
        "is_public": True,
    }
    body.update(overrides)
    r = await api.post("/wishes", json=body, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()
