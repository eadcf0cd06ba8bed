"""
Places provider clients.

GooglePlacesClient talks to the Places web service; MockPlacesClient serves
deterministic data when no API key is configured; CachingPlacesClient keeps
raw nearby-search results in Redis for a few minutes.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

import httpx

from app.config.settings import PlacesSettings, get_settings
from app.core.cache_client import CacheClient
from app.core.exceptions import PlacesProviderError
from app.schemas.place import Place
from app.services.geo import Coordinate, distance_km

logger = logging.getLogger(__name__)

DEFAULT_DETAIL_FIELDS = [
    "place_id", "name", "rating", "formatted_phone_number",
    "website", "opening_hours", "photos", "reviews", "vicinity",
    "geometry", "address_components", "types", "user_ratings_total",
    "business_status",
]


class PlacesClient(ABC):
    """Interface the proximity features need from a maps/places provider."""

    @abstractmethod
    async def search_nearby(
        self,
        center: Coordinate,
        radius_m: int,
        category: Optional[str] = None,
    ) -> List[Place]:
        """Places around center; [] on zero matches, raises PlacesProviderError on failure."""

    @abstractmethod
    async def get_details(
        self,
        place_id: str,
        fields: Optional[Sequence[str]] = None,
    ) -> Optional[Place]:
        """Detail record for place_id, or None when the provider cannot resolve it."""

    async def aclose(self) -> None:
        return None


def place_from_google(result: dict[str, Any]) -> Place:
    """Map a Places web service result object onto a Place."""
    location = (result.get("geometry") or {}).get("location") or {}
    return Place(
        place_id=result.get("place_id") or "",
        name=result.get("name") or "Unnamed place",
        latitude=location.get("lat"),
        longitude=location.get("lng"),
        vicinity=result.get("vicinity") or result.get("formatted_address"),
        types=result.get("types") or [],
        rating=result.get("rating"),
        user_ratings_total=result.get("user_ratings_total"),
        business_status=result.get("business_status"),
        website=result.get("website"),
        phone_number=result.get("formatted_phone_number"),
        opening_hours=result.get("opening_hours"),
        photo_references=[
            p["photo_reference"] for p in result.get("photos") or [] if p.get("photo_reference")
        ],
    )


class GooglePlacesClient(PlacesClient):
    """Google Places web service (nearbysearch / details JSON endpoints)."""

    def __init__(
        self,
        config: Optional[PlacesSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_settings().places
        if not self.config.api_key:
            raise ValueError("PLACES_API_KEY is required for the Google Places client")
        self._client = http_client or httpx.AsyncClient(
            base_url=self.config.api_url,
            timeout=self.config.timeout_seconds,
        )

    async def _get(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        params = {**params, "key": self.config.api_key}
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            raise PlacesProviderError("Places provider timed out", {"path": path}) from e
        except httpx.HTTPError as e:
            raise PlacesProviderError(f"Places provider transport error: {e}", {"path": path}) from e

        if response.status_code in (401, 403):
            raise PlacesProviderError("Places provider rejected the API key", {"status_code": response.status_code})
        if response.status_code != 200:
            raise PlacesProviderError(
                f"Places provider returned HTTP {response.status_code}",
                {"status_code": response.status_code},
            )
        try:
            data = response.json()
        except ValueError as e:
            raise PlacesProviderError(
                "Places provider returned a malformed response",
                {"path": path, "content_type": response.headers.get("content-type")},
            ) from e
        if not isinstance(data, dict):
            raise PlacesProviderError("Places provider returned a malformed response", {"path": path})
        return data

    async def search_nearby(
        self,
        center: Coordinate,
        radius_m: int,
        category: Optional[str] = None,
    ) -> List[Place]:
        params: dict[str, Any] = {
            "location": f"{center.latitude},{center.longitude}",
            "radius": radius_m,
        }
        if category:
            params["type"] = category

        data = await self._get("/nearbysearch/json", params)
        status = data.get("status")
        if status == "ZERO_RESULTS":
            return []
        if status != "OK":
            logger.error(f"Places API nearbySearch Error: {status}")
            raise PlacesProviderError(
                f"Places API nearbySearch failed with status: {status}",
                {"status": status, "error_message": data.get("error_message")},
            )

        places = []
        for result in data.get("results", []):
            if not result.get("place_id"):
                logger.debug(f"Skipping place without id: {result.get('name')}")
                continue
            places.append(place_from_google(result))
        return places

    async def get_details(
        self,
        place_id: str,
        fields: Optional[Sequence[str]] = None,
    ) -> Optional[Place]:
        if not place_id:
            return None

        data = await self._get("/details/json", {
            "place_id": place_id,
            "fields": ",".join(fields or DEFAULT_DETAIL_FIELDS),
        })
        status = data.get("status")
        if status == "OK" and data.get("result"):
            result = dict(data["result"])
            result.setdefault("place_id", place_id)
            return place_from_google(result)

        if status in ("REQUEST_DENIED", "OVER_QUERY_LIMIT"):
            raise PlacesProviderError(
                f"Places API getDetails failed with status: {status}",
                {"status": status, "place_id": place_id},
            )
        logger.warning(f"Places API getDetails Error for placeId {place_id}: {status}")
        return None

    async def aclose(self) -> None:
        await self._client.aclose()


class MockPlacesClient(PlacesClient):
    """Offline places provider for development and tests."""

    CATALOGUE = [
        ("mock-old-town-square", "Old Town Square", 0.0004, 0.0003, "tourist_attraction"),
        ("mock-city-museum", "City Museum", -0.0021, 0.0015, "museum"),
        ("mock-riverside-park", "Riverside Park", 0.0052, -0.0047, "park"),
        ("mock-central-station", "Central Station", -0.0078, -0.0061, "transit_station"),
    ]

    def __init__(self):
        self._known: dict[str, Place] = {}

    async def search_nearby(
        self,
        center: Coordinate,
        radius_m: int,
        category: Optional[str] = None,
    ) -> List[Place]:
        places = []
        for place_id, name, dlat, dlon, kind in self.CATALOGUE:
            if category and category != kind:
                continue
            place = Place(
                place_id=place_id,
                name=name,
                latitude=center.latitude + dlat,
                longitude=center.longitude + dlon,
                vicinity="Mock District",
                types=[kind, "point_of_interest"],
                business_status="OPERATIONAL",
                rating=4.5,
            )
            self._known[place_id] = place
            places.append(place)
        return places

    async def get_details(
        self,
        place_id: str,
        fields: Optional[Sequence[str]] = None,
    ) -> Optional[Place]:
        place = self._known.get(place_id)
        if place is None:
            return None
        return place.model_copy(update={
            "website": f"https://example.com/{place_id}",
            "opening_hours": {"open_now": True},
        })


class CachingPlacesClient(PlacesClient):
    """Caches nearby searches; details and traveler counts always go live."""

    def __init__(self, inner: PlacesClient, cache: CacheClient, ttl_seconds: int = 300):
        self.inner = inner
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def cache_key(center: Coordinate, radius_m: int, category: Optional[str]) -> str:
        # ~110 m grid cell
        return f"places:{round(center.latitude, 3)}:{round(center.longitude, 3)}:{radius_m}:{category or '*'}"

    async def search_nearby(
        self,
        center: Coordinate,
        radius_m: int,
        category: Optional[str] = None,
    ) -> List[Place]:
        key = self.cache_key(center, radius_m, category)
        cached = await self.cache.get_json(key)
        if cached is not None:
            try:
                places = [Place(**item) for item in cached]
            except (TypeError, ValueError) as e:
                logger.warning(f"Ignoring malformed cached places for '{key}': {e}")
            else:
                # the cached search was centred elsewhere in the grid cell
                return [p for p in places if self._within(p, center, radius_m)]

        places = await self.inner.search_nearby(center, radius_m, category)
        await self.cache.set_json(
            key, [p.provider_fields() for p in places], ttl_seconds=self.ttl_seconds
        )
        return places

    @staticmethod
    def _within(place: Place, center: Coordinate, radius_m: int) -> bool:
        coordinate = place.coordinate
        if coordinate is None:
            return True
        return distance_km(center, coordinate) * 1000 <= radius_m

    async def get_details(
        self,
        place_id: str,
        fields: Optional[Sequence[str]] = None,
    ) -> Optional[Place]:
        return await self.inner.get_details(place_id, fields)

    async def aclose(self) -> None:
        await self.inner.aclose()
        await self.cache.disconnect()


def create_places_client(
    config: Optional[PlacesSettings] = None,
    cache: Optional[CacheClient] = None,
) -> PlacesClient:
    config = config or get_settings().places
    if config.api_key:
        client: PlacesClient = GooglePlacesClient(config)
        logger.info("Places provider: Google Places API")
    else:
        client = MockPlacesClient()
        logger.warning("PLACES_API_KEY not configured, serving mock places")

    if cache is not None and cache.enabled and config.cache_ttl_seconds:
        return CachingPlacesClient(client, cache, config.cache_ttl_seconds)
    return client
