"""Location endpoints: sharing preference, device fixes and nearby travelers.

Envelope format: {"status": str, "data": object|None, "error": str|None}
"""
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import settings
from app.core.db import get_session_factory
from app.core.dependencies import (
    AuthenticatedUser,
    authenticate_token,
    get_current_user,
    get_location_store,
    get_proximity_service,
    get_tracker_registry,
)
from app.core.exceptions import AuthenticationError, GeolocationError, InvalidCoordinateError
from app.schemas.base import Envelope, ok
from app.schemas.location import (
    CoordinateIn,
    LocationErrorRequest,
    LocationFixRequest,
    LocationStatusRead,
    SharingUpdate,
    TrackerStateRead,
)
from app.schemas.traveler import TravelerListResponse, TravelerRead
from app.services.geo import Coordinate
from app.services.location_store import UserLocationRecord, UserLocationStore
from app.services.location_tracker import LocationTracker, PositionReading, SharingAction, SharingState
from app.services.nearby_poller import NearbyTravelersPoller
from app.services.proximity_service import ProximityService
from app.services.tracker_registry import LocationSharingController, TrackerRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/location", tags=["location"])


def _tracker_read(
    tracker: Optional[LocationTracker], accepted: Optional[bool] = None
) -> Optional[TrackerStateRead]:
    if tracker is None:
        return None
    return TrackerStateRead(
        **tracker.state.to_dict(),
        share_state=tracker.share_state.value,
        halted=tracker.is_halted,
        accepted=accepted,
    )


def _status_read(record: UserLocationRecord, tracker: Optional[LocationTracker]) -> LocationStatusRead:
    coordinate = record.coordinate
    return LocationStatusRead(
        user_id=record.user_id,
        share_location=record.share_location,
        location=coordinate.to_dict() if coordinate else None,
        last_location_update=record.last_location_update,
        tracker=_tracker_read(tracker),
    )


async def _share_state(store: UserLocationStore, user_id: str) -> SharingState:
    record = await store.get_record(user_id)
    return SharingState.from_flag(bool(record and record.share_location))


@router.get("/me", response_model=Envelope[LocationStatusRead])
async def get_my_location(
    current_user: AuthenticatedUser = Depends(get_current_user),
    store: UserLocationStore = Depends(get_location_store),
    registry: TrackerRegistry = Depends(get_tracker_registry),
):
    """Return the caller's stored location record and live tracker state."""
    record = await store.get_record(current_user.uid)
    return ok(_status_read(record, registry.get(current_user.uid)))


@router.put("/sharing", response_model=Envelope[LocationStatusRead])
async def update_sharing(
    body: SharingUpdate,
    current_user: AuthenticatedUser = Depends(get_current_user),
    store: UserLocationStore = Depends(get_location_store),
    registry: TrackerRegistry = Depends(get_tracker_registry),
):
    """
    Opt in to or out of location sharing.

    Opting out clears the stored coordinate; a running tracker is re-armed in
    the new state so it stops (or starts) publishing.
    """
    action = SharingAction.OPT_IN if body.share_location else SharingAction.OPT_OUT
    controller = LocationSharingController(store, registry)
    record = await controller.apply(current_user.uid, action)
    return ok(_status_read(record, registry.get(current_user.uid)))


@router.post("/fix", response_model=Envelope[TrackerStateRead], status_code=status.HTTP_202_ACCEPTED)
async def report_fix(
    body: LocationFixRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    store: UserLocationStore = Depends(get_location_store),
    registry: TrackerRegistry = Depends(get_tracker_registry),
):
    """
    Feed a device position fix into the caller's tracker.

    The fix is processed asynchronously; it is published to other travelers
    only while the caller shares their location. accepted is false when the
    fix is older than the tracker will use, allowing for device clock lag.
    """
    reading = PositionReading(
        latitude=body.latitude,
        longitude=body.longitude,
        timestamp=body.timestamp or datetime.now(timezone.utc),
        accuracy_m=body.accuracy_m,
    )
    share_state = await _share_state(store, current_user.uid)
    tracker = registry.push_reading(current_user.uid, share_state, reading)
    return ok(_tracker_read(tracker, accepted=tracker.accepts(reading)))


@router.post("/fix/error", response_model=Envelope[TrackerStateRead], status_code=status.HTTP_202_ACCEPTED)
async def report_fix_error(
    body: LocationErrorRequest,
    current_user: AuthenticatedUser = Depends(get_current_user),
    store: UserLocationStore = Depends(get_location_store),
    registry: TrackerRegistry = Depends(get_tracker_registry),
):
    """Feed a device geolocation failure (permission denied, timeout, ...) into the tracker."""
    share_state = await _share_state(store, current_user.uid)
    error = GeolocationError(body.reason, body.message or "")
    tracker = registry.push_error(current_user.uid, share_state, error)
    return ok(_tracker_read(tracker))


@router.delete("/tracking", response_model=Envelope[dict])
async def stop_tracking(
    current_user: AuthenticatedUser = Depends(get_current_user),
    registry: TrackerRegistry = Depends(get_tracker_registry),
):
    """Tear down the caller's tracker (the client went away)."""
    stopped = await registry.stop(current_user.uid)
    return ok({"stopped": stopped})


@router.get("/travelers/nearby", response_model=Envelope[TravelerListResponse])
async def get_nearby_travelers(
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    max_distance_km: float = Query(settings.proximity.default_max_distance_km, gt=0, le=500),
    max_results: int = Query(settings.proximity.default_max_results, ge=1, le=100),
    current_user: AuthenticatedUser = Depends(get_current_user),
    store: UserLocationStore = Depends(get_location_store),
    registry: TrackerRegistry = Depends(get_tracker_registry),
    proximity: ProximityService = Depends(get_proximity_service),
):
    """
    Travelers near a point, closest first, excluding the caller.

    Without latitude/longitude the caller's live tracker location is used,
    falling back to their stored (shared) coordinate.
    """
    if (latitude is None) != (longitude is None):
        raise InvalidCoordinateError("latitude and longitude must be given together")

    if latitude is not None:
        reference = Coordinate(latitude, longitude)
    else:
        tracker = registry.get(current_user.uid)
        reference = tracker.state.location if tracker else None
        if reference is None:
            record = await store.get_record(current_user.uid)
            reference = record.coordinate if record else None

    travelers = await proximity.find_nearby_travelers(
        reference,
        exclude_user_id=current_user.uid,
        max_distance_km=max_distance_km,
        max_results=max_results,
    )
    now = datetime.now(timezone.utc)
    return ok(TravelerListResponse(
        travelers=[TravelerRead.from_result(t, now) for t in travelers]
    ))


@router.websocket("/travelers/ws")
async def nearby_travelers_stream(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
):
    """
    Push nearby travelers every poll interval.

    The client sends {"latitude": .., "longitude": ..} whenever its position
    changes; each message re-arms the poll loop around the new reference.
    """
    try:
        user = authenticate_token(token)
    except AuthenticationError:
        await websocket.close(code=1008)
        return

    await websocket.accept()

    async def fetch(reference: Coordinate, user_id: str):
        async with session_factory() as session:
            service = ProximityService(UserLocationStore(session), settings.proximity)
            return await service.find_nearby_travelers(reference, exclude_user_id=user_id)

    async def send(travelers):
        now = datetime.now(timezone.utc)
        await websocket.send_json(ok(TravelerListResponse(
            travelers=[TravelerRead.from_result(t, now) for t in travelers]
        ).model_dump(mode="json")))

    poller = NearbyTravelersPoller(fetch, send, settings.proximity.poll_interval_seconds)
    try:
        while True:
            message = await websocket.receive_json()
            try:
                position = CoordinateIn.model_validate(message)
            except ValidationError:
                await websocket.send_json({
                    "status": "error", "data": None,
                    "error": "latitude and longitude are required",
                })
                continue
            await poller.rearm(Coordinate(position.latitude, position.longitude), user.uid)
    except WebSocketDisconnect:
        logger.info("Nearby travelers stream closed", extra={"user_id": user.uid})
    finally:
        await poller.aclose()
