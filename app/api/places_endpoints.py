"""Places endpoints: nearby points of interest with traveler counts."""
from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.config.settings import settings
from app.core.dependencies import (
    AuthenticatedUser,
    get_current_user,
    get_explore_service,
    get_proximity_service,
)
from app.core.exceptions import PlaceNotFoundError
from app.schemas.base import Envelope, ok
from app.schemas.place import Place, PlaceListResponse, TravelerCountResponse
from app.services.explore_service import ExploreService
from app.services.geo import Coordinate
from app.services.proximity_service import ProximityService

router = APIRouter(prefix="/places", tags=["places"])


@router.get("/nearby", response_model=Envelope[PlaceListResponse])
async def get_nearby_places(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_m: int = Query(settings.places.default_radius_m, ge=1, le=50000),
    category: Optional[str] = Query(None, description="Provider place type, e.g. tourist_attraction"),
    current_user: AuthenticatedUser = Depends(get_current_user),
    explore: ExploreService = Depends(get_explore_service),
):
    """
    Points of interest around a coordinate, each with the number of travelers
    currently within 100 m of it.
    """
    places = await explore.load_places(
        Coordinate(latitude, longitude),
        radius_m=radius_m,
        category=category,
        viewer_id=current_user.uid,
    )
    return ok(PlaceListResponse(places=places))


@router.get("/traveler-count", response_model=Envelope[TravelerCountResponse])
async def get_traveler_count(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(settings.proximity.place_count_radius_km, gt=0, le=10),
    current_user: AuthenticatedUser = Depends(get_current_user),
    proximity: ProximityService = Depends(get_proximity_service),
):
    count = await proximity.traveler_count_near(
        Coordinate(latitude, longitude), radius_km=radius_km, viewer_id=current_user.uid
    )
    return ok(TravelerCountResponse(
        latitude=latitude, longitude=longitude, radius_km=radius_km, traveler_count=count
    ))


@router.get("/{place_id}", response_model=Envelope[Place])
async def get_place_details(
    place_id: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    explore: ExploreService = Depends(get_explore_service),
    proximity: ProximityService = Depends(get_proximity_service),
):
    """Provider detail record for a place, decorated with a live traveler count."""
    place = await explore.get_details(place_id)
    if place is None:
        raise PlaceNotFoundError(place_id)

    coordinate = place.coordinate
    count = 0
    if coordinate is not None:
        count = await proximity.traveler_count_near(coordinate, viewer_id=current_user.uid)
    return ok(place.model_copy(update={"traveler_count": count}))
