"""
Integration tests for places with traveler counts
"""
from datetime import datetime, timezone

import pytest

# MockPlacesClient puts "Old Town Square" at +0.0004 / +0.0003 of the search center
CENTER = {"latitude": 48.8566, "longitude": 2.3522}
SQUARE = (48.8570, 2.3525)


@pytest.mark.asyncio
async def test_health(async_client):
    r = await async_client.get("/health")

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["data"]["version"]
    assert body["error"] is None


@pytest.mark.asyncio
async def test_health_reports_error_counts(async_client):
    before = (await async_client.get("/health")).json()["data"]["errors"]
    await async_client.get("/places/nearby", params=CENTER)

    after = (await async_client.get("/health")).json()["data"]["errors"]

    counts_before = before["error_counts"].get("MISSING_TOKEN", 0)
    assert after["error_counts"]["MISSING_TOKEN"] == counts_before + 1
    assert after["total_errors"] == before["total_errors"] + 1


@pytest.mark.asyncio
async def test_nearby_places_carry_traveler_counts(async_client, auth_headers, make_user):
    now = datetime.now(timezone.utc)
    for i in range(3):
        await make_user(f"t{i}", SQUARE[0] + i * 0.0001, SQUARE[1], share_location=True,
                        updated_minutes_ago=1, now=now)
    await make_user("gone", *SQUARE, share_location=True, updated_minutes_ago=50, now=now)

    r = await async_client.get(
        "/places/nearby", params={**CENTER, "category": ""}, headers=auth_headers("viewer")
    )

    assert r.status_code == 200
    places = {p["name"]: p for p in r.json()["data"]["places"]}
    assert places["Old Town Square"]["traveler_count"] == 3
    assert places["Central Station"]["traveler_count"] == 0
    assert places["Old Town Square"]["is_operational"] is True


@pytest.mark.asyncio
async def test_nearby_places_default_category(async_client, auth_headers):
    r = await async_client.get("/places/nearby", params=CENTER, headers=auth_headers("viewer"))

    assert [p["name"] for p in r.json()["data"]["places"]] == ["Old Town Square"]


@pytest.mark.asyncio
async def test_traveler_count_endpoint(async_client, auth_headers, make_user):
    now = datetime.now(timezone.utc)
    await make_user("a", *SQUARE, share_location=True, updated_minutes_ago=3, now=now)
    await make_user("b", SQUARE[0] + 0.0002, SQUARE[1], share_location=True, updated_minutes_ago=3, now=now)
    await make_user("far", SQUARE[0] + 0.01, SQUARE[1], share_location=True, updated_minutes_ago=3, now=now)

    r = await async_client.get(
        "/places/traveler-count",
        params={"latitude": SQUARE[0], "longitude": SQUARE[1]},
        headers=auth_headers("viewer"),
    )

    assert r.status_code == 200
    assert r.json()["data"]["traveler_count"] == 2
    assert r.json()["data"]["radius_km"] == 0.1


@pytest.mark.asyncio
async def test_place_details(async_client, auth_headers, make_user):
    headers = auth_headers("viewer")
    await async_client.get("/places/nearby", params=CENTER, headers=headers)
    await make_user("a", *SQUARE, share_location=True, updated_minutes_ago=1,
                    now=datetime.now(timezone.utc))

    r = await async_client.get("/places/mock-old-town-square", headers=headers)

    assert r.status_code == 200
    place = r.json()["data"]
    assert place["website"] == "https://example.com/mock-old-town-square"
    assert place["traveler_count"] == 1


@pytest.mark.asyncio
async def test_unknown_place_is_not_found(async_client, auth_headers):
    r = await async_client.get("/places/does-not-exist", headers=auth_headers("viewer"))

    assert r.status_code == 404
    assert r.json()["error_code"] == "PLACE_NOT_FOUND"


@pytest.mark.asyncio
async def test_places_require_coordinates(async_client, auth_headers):
    r = await async_client.get("/places/nearby", headers=auth_headers("viewer"))

    assert r.status_code == 422
