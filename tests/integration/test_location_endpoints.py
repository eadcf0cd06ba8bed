"""
Integration tests for sharing, device fixes and nearby travelers over HTTP
"""
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool
from starlette.websockets import WebSocketDisconnect

from conftest import wait_until
from app.core.db import Base, get_session_factory
from app.core.jwt import create_access_token
from app.main import app
from app.models.user import User


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(async_client):
    r = await async_client.get("/location/me")

    assert r.status_code == 401
    body = r.json()
    assert body["status"] == "error"
    assert body["error_code"] == "MISSING_TOKEN"


@pytest.mark.asyncio
async def test_invalid_token_is_rejected(async_client):
    r = await async_client.get("/location/me", headers={"Authorization": "Bearer not-a-jwt"})

    assert r.status_code == 401
    assert r.json()["error_code"] == "INVALID_TOKEN"


@pytest.mark.asyncio
async def test_first_contact_creates_private_record(async_client, auth_headers):
    r = await async_client.get("/location/me", headers=auth_headers("u1", "Ada"))

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["data"]["user_id"] == "u1"
    assert body["data"]["share_location"] is False
    assert body["data"]["location"] is None
    assert body["data"]["tracker"] is None


@pytest.mark.asyncio
async def test_fix_while_sharing_is_visible_to_others(async_client, auth_headers, tracker_registry):
    ada, bob = auth_headers("ada", "Ada"), auth_headers("bob", "Bob")

    r = await async_client.put("/location/sharing", json={"share_location": True}, headers=ada)
    assert r.status_code == 200
    assert r.json()["data"]["share_location"] is True

    r = await async_client.post("/location/fix", json={"latitude": 48.8606, "longitude": 2.3376}, headers=ada)
    assert r.status_code == 202
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.state.location is not None)
    await tracker.drain()

    r = await async_client.get(
        "/location/travelers/nearby",
        params={"latitude": 48.8616, "longitude": 2.3376},
        headers=bob,
    )
    assert r.status_code == 200
    travelers = r.json()["data"]["travelers"]
    assert [t["user_id"] for t in travelers] == ["ada"]
    assert travelers[0]["display_name"] == "Ada"
    assert travelers[0]["distance_label"] == "111 m"
    assert travelers[0]["last_active_label"] == "Just now"


@pytest.mark.asyncio
async def test_fix_while_not_sharing_stays_private(async_client, auth_headers, tracker_registry):
    ada, bob = auth_headers("ada"), auth_headers("bob")

    r = await async_client.post("/location/fix", json={"latitude": 48.8606, "longitude": 2.3376}, headers=ada)
    assert r.status_code == 202
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.state.location is not None)
    await tracker.drain()

    r = await async_client.get("/location/me", headers=ada)
    assert r.json()["data"]["tracker"]["location"] == {"latitude": 48.8606, "longitude": 2.3376}
    assert r.json()["data"]["location"] is None

    r = await async_client.get(
        "/location/travelers/nearby",
        params={"latitude": 48.8606, "longitude": 2.3376},
        headers=bob,
    )
    assert r.json()["data"]["travelers"] == []


@pytest.mark.asyncio
async def test_opt_out_hides_traveler(async_client, auth_headers, tracker_registry):
    ada, bob = auth_headers("ada"), auth_headers("bob")
    await async_client.put("/location/sharing", json={"share_location": True}, headers=ada)
    await async_client.post("/location/fix", json={"latitude": 48.8606, "longitude": 2.3376}, headers=ada)
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.state.location is not None)
    await tracker.drain()

    r = await async_client.put("/location/sharing", json={"share_location": False}, headers=ada)
    assert r.status_code == 200
    assert r.json()["data"]["share_location"] is False
    assert r.json()["data"]["location"] is None
    assert r.json()["data"]["tracker"]["share_state"] == "not_sharing"

    r = await async_client.get(
        "/location/travelers/nearby",
        params={"latitude": 48.8606, "longitude": 2.3376},
        headers=bob,
    )
    assert r.json()["data"]["travelers"] == []


@pytest.mark.asyncio
async def test_nearby_excludes_caller_and_uses_tracker_location(async_client, auth_headers, tracker_registry, make_user):
    now = datetime.now(timezone.utc)
    await make_user("near", 48.8610, 2.3376, share_location=True, updated_minutes_ago=2, now=now)
    await make_user("stale", 48.8610, 2.3376, share_location=True, updated_minutes_ago=45, now=now)
    ada = auth_headers("ada")
    await async_client.put("/location/sharing", json={"share_location": True}, headers=ada)
    await async_client.post("/location/fix", json={"latitude": 48.8606, "longitude": 2.3376}, headers=ada)
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.state.location is not None)
    await tracker.drain()

    r = await async_client.get("/location/travelers/nearby", headers=ada)

    assert r.status_code == 200
    assert [t["user_id"] for t in r.json()["data"]["travelers"]] == ["near"]


@pytest.mark.asyncio
async def test_nearby_without_any_reference_is_empty(async_client, auth_headers, make_user):
    await make_user("near", 48.8610, 2.3376, share_location=True, updated_minutes_ago=1,
                    now=datetime.now(timezone.utc))

    r = await async_client.get("/location/travelers/nearby", headers=auth_headers("ada"))

    assert r.status_code == 200
    assert r.json()["data"]["travelers"] == []


@pytest.mark.asyncio
async def test_nearby_requires_both_coordinates(async_client, auth_headers):
    r = await async_client.get(
        "/location/travelers/nearby", params={"latitude": 48.86}, headers=auth_headers("ada")
    )

    assert r.status_code == 400
    assert r.json()["error_code"] == "INVALID_COORDINATE"


@pytest.mark.asyncio
async def test_out_of_range_fix_is_a_validation_error(async_client, auth_headers):
    r = await async_client.post(
        "/location/fix", json={"latitude": 123.0, "longitude": 2.0}, headers=auth_headers("ada")
    )

    assert r.status_code == 422
    assert r.json()["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_stale_fix_is_ignored(async_client, auth_headers, tracker_registry):
    ada = auth_headers("ada")
    old = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat()

    r = await async_client.post(
        "/location/fix", json={"latitude": 48.86, "longitude": 2.33, "timestamp": old}, headers=ada
    )
    assert r.status_code == 202
    assert r.json()["data"]["accepted"] is False

    r = await async_client.post("/location/fix", json={"latitude": 35.68, "longitude": 139.76}, headers=ada)
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.state.location is not None)

    r = await async_client.get("/location/me", headers=ada)
    assert r.json()["data"]["tracker"]["location"] == {"latitude": 35.68, "longitude": 139.76}
    assert r.json()["data"]["tracker"]["stale_fixes"] == 1


@pytest.mark.asyncio
async def test_permission_denied_is_reported(async_client, auth_headers, tracker_registry):
    ada = auth_headers("ada")

    r = await async_client.post("/location/fix/error", json={"reason": "permission_denied"}, headers=ada)
    assert r.status_code == 202
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.is_halted)

    r = await async_client.get("/location/me", headers=ada)
    state = r.json()["data"]["tracker"]
    assert state["halted"] is True
    assert state["error_reason"] == "permission_denied"
    assert state["error"].startswith("Location permission denied")
    assert state["location"] is None


@pytest.mark.asyncio
async def test_stop_tracking(async_client, auth_headers):
    ada = auth_headers("ada")
    await async_client.post("/location/fix", json={"latitude": 48.86, "longitude": 2.33}, headers=ada)

    r = await async_client.delete("/location/tracking", headers=ada)
    assert r.json()["data"] == {"stopped": True}

    r = await async_client.delete("/location/tracking", headers=ada)
    assert r.json()["data"] == {"stopped": False}


def test_websocket_rejects_missing_token():
    client = TestClient(app)

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect("/location/travelers/ws") as websocket:
            websocket.receive_json()

    assert exc_info.value.code == 1008


@pytest.mark.asyncio
async def test_fix_from_lagging_device_clock_is_published(async_client, auth_headers, tracker_registry):
    ada = auth_headers("ada")
    await async_client.put("/location/sharing", json={"share_location": True}, headers=ada)
    lagging = (datetime.now(timezone.utc) - timedelta(seconds=12)).isoformat()

    r = await async_client.post(
        "/location/fix",
        json={"latitude": 48.8606, "longitude": 2.3376, "timestamp": lagging},
        headers=ada,
    )
    assert r.status_code == 202
    assert r.json()["data"]["accepted"] is True
    tracker = tracker_registry.get("ada")
    await wait_until(lambda: tracker.state.location is not None)
    await tracker.drain()

    r = await async_client.get("/location/me", headers=ada)
    data = r.json()["data"]
    assert data["location"] == {"latitude": 48.8606, "longitude": 2.3376}
    assert data["tracker"]["stale_fixes"] == 0


@pytest.fixture
def stream_database(tmp_path):
    """A SQLite file seeded synchronously, read by the stream through a NullPool engine."""
    path = tmp_path / "stream.db"
    now = datetime.now(timezone.utc)
    sync_engine = create_engine(f"sqlite:///{path}")
    Base.metadata.create_all(sync_engine)
    with Session(sync_engine) as session:
        session.add_all([
            User(id="ada", display_name="Ada", share_location=True, latitude=48.8606,
                 longitude=2.3376, last_location_update=now, last_active=now),
            User(id="bob", display_name="Bob", share_location=True, latitude=48.8616,
                 longitude=2.3376, last_location_update=now - timedelta(minutes=1), last_active=now),
        ])
        session.commit()
    sync_engine.dispose()

    engine = create_async_engine(f"sqlite+aiosqlite:///{path}", poolclass=NullPool)
    factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    app.dependency_overrides[get_session_factory] = lambda: factory
    yield factory
    app.dependency_overrides.clear()


def test_websocket_streams_nearby_travelers(stream_database):
    client = TestClient(app)
    token = create_access_token("ada")

    with client.websocket_connect(f"/location/travelers/ws?token={token}") as websocket:
        websocket.send_json({"latitude": 48.8606, "longitude": 2.3376})
        first = websocket.receive_json()

        websocket.send_json({"latitude": 35.68, "longitude": 139.76})
        moved = websocket.receive_json()

        websocket.send_json({"latitude": "somewhere"})
        invalid = websocket.receive_json()

    assert first["status"] == "ok"
    travelers = first["data"]["travelers"]
    assert [t["user_id"] for t in travelers] == ["bob"]
    assert travelers[0]["distance_label"] == "111 m"
    assert moved["status"] == "ok"
    assert moved["data"]["travelers"] == []
    assert invalid["status"] == "error"
