"""
Shared fixtures: a throwaway SQLite database per test and an HTTP client
wired to it.
"""
import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from app.config.settings import TrackingSettings
from app.core.db import Base, get_db, get_session_factory
from app.core.dependencies import get_places_client, get_tracker_registry
from app.core.jwt import create_access_token
from app.main import app
from app.models.user import User
from app.services.places_client import MockPlacesClient
from app.services.tracker_registry import TrackerRegistry

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


async def wait_until(predicate, timeout: float = 2.0, interval: float = 0.01):
    """Yield to the event loop until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(interval)


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(db_session):
    """Insert a user row directly, bypassing the store."""
    async def _make_user(
        user_id: str,
        latitude=None,
        longitude=None,
        share_location: bool = False,
        updated_minutes_ago=None,
        display_name=None,
        now: datetime = NOW,
    ) -> User:
        updated = None
        if updated_minutes_ago is not None:
            updated = now - timedelta(minutes=updated_minutes_ago)
        user = User(
            id=user_id,
            display_name=display_name,
            share_location=share_location,
            latitude=latitude,
            longitude=longitude,
            last_location_update=updated,
            last_active=updated or now,
        )
        db_session.add(user)
        await db_session.commit()
        return user

    return _make_user


@pytest.fixture
def tracking_settings():
    return TrackingSettings(fix_timeout_seconds=5.0, maximum_age_seconds=10.0)


@pytest_asyncio.fixture
async def tracker_registry(session_factory, tracking_settings):
    registry = TrackerRegistry(session_factory, tracking_settings)
    yield registry
    await registry.stop_all()


@pytest_asyncio.fixture
async def async_client(session_factory, tracker_registry):
    places = MockPlacesClient()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_places_client] = lambda: places
    app.dependency_overrides[get_tracker_registry] = lambda: tracker_registry

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _auth_headers(user_id: str, name: str = None) -> dict:
        claims = {"name": name} if name else None
        return {"Authorization": f"Bearer {create_access_token(user_id, claims)}"}

    return _auth_headers
