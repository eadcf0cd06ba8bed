"""
Dependency injection setup for FastAPI.
Provides dependency providers for core services with lifecycle management.
"""

from dataclasses import dataclass
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional
import logging
import asyncio

from app.config.settings import settings
from app.core.cache_client import CacheClient
from app.core.db import SessionLocal, get_db
from app.core.exceptions import AuthenticationError
from app.core.jwt import decode_token
from app.services.explore_service import ExploreService
from app.services.location_store import UserLocationStore
from app.services.places_client import PlacesClient, create_places_client
from app.services.proximity_service import ProximityService
from app.services.tracker_registry import TrackerRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedUser:
    uid: str
    display_name: Optional[str] = None
    photo_url: Optional[str] = None


class ServiceContainer:
    """
    Holds the long-lived collaborators: places provider, cache and trackers.
    """

    def __init__(self):
        self._cache_client: Optional[CacheClient] = None
        self._places_client: Optional[PlacesClient] = None
        self._tracker_registry: Optional[TrackerRegistry] = None
        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    async def initialize_services(self) -> None:
        async with self._initialization_lock:
            if self._initialized:
                return

            logger.info("Initializing service container")
            self._cache_client = CacheClient()
            if self._cache_client.enabled:
                await self._cache_client.connect()
            self._places_client = create_places_client(settings.places, self._cache_client)
            self._tracker_registry = TrackerRegistry(SessionLocal, settings.tracking)
            self._initialized = True
            logger.info("Service container initialized")

    async def cleanup_services(self) -> None:
        async with self._initialization_lock:
            if not self._initialized:
                return

            logger.info("Cleaning up service container")
            if self._tracker_registry is not None:
                await self._tracker_registry.stop_all()
            if self._places_client is not None:
                await self._places_client.aclose()
            if self._cache_client is not None:
                await self._cache_client.disconnect()
            self._initialized = False

    @property
    def places_client(self) -> PlacesClient:
        if self._places_client is None:
            self._places_client = create_places_client(settings.places)
        return self._places_client

    @property
    def tracker_registry(self) -> TrackerRegistry:
        if self._tracker_registry is None:
            self._tracker_registry = TrackerRegistry(SessionLocal, settings.tracking)
        return self._tracker_registry


# Global service container
service_container = ServiceContainer()


def get_places_client() -> PlacesClient:
    return service_container.places_client


def get_tracker_registry() -> TrackerRegistry:
    return service_container.tracker_registry


def get_location_store(db: AsyncSession = Depends(get_db)) -> UserLocationStore:
    return UserLocationStore(db)


def get_proximity_service(
    store: UserLocationStore = Depends(get_location_store),
) -> ProximityService:
    return ProximityService(store, settings.proximity)


def get_explore_service(
    places: PlacesClient = Depends(get_places_client),
    proximity: ProximityService = Depends(get_proximity_service),
) -> ExploreService:
    return ExploreService(places, proximity, settings.places)


def authenticate_token(token: Optional[str]) -> AuthenticatedUser:
    """Resolve an identity-provider access token to the caller."""
    if not token:
        raise AuthenticationError(missing=True)
    payload = decode_token(token)
    if not payload or not payload.get("sub"):
        raise AuthenticationError()
    return AuthenticatedUser(
        uid=str(payload["sub"]),
        display_name=payload.get("name"),
        photo_url=payload.get("picture"),
    )


async def get_current_user(
    request: Request,
    store: UserLocationStore = Depends(get_location_store),
) -> AuthenticatedUser:
    """
    Authenticate the bearer token and make sure the caller has a location record.
    """
    auth_header = request.headers.get("Authorization", "")
    token = auth_header[len("Bearer "):] if auth_header.startswith("Bearer ") else None
    user = authenticate_token(token)
    await store.ensure_user(user.uid, user.display_name, user.photo_url)
    return user
