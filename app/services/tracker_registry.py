"""
Tracker registry - one location tracker per user for the HTTP surface.

Devices report fixes over HTTP; each report is pushed into the user's queue
source and handled by that user's LocationTracker exactly as a local device
watch callback would be.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config.settings import TrackingSettings, get_settings
from app.core.exceptions import GeolocationError
from app.services.geo import Coordinate
from app.services.location_store import UserLocationRecord, UserLocationStore
from app.services.location_tracker import (
    LocationTracker,
    PositionReading,
    QueueGeolocationSource,
    SharingAction,
    SharingState,
    WatchOptions,
    next_sharing_state,
)

logger = logging.getLogger(__name__)


class StorePublisher:
    """Publishes tracker fixes to the shared store in a session of its own."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def __call__(self, user_id: str, coordinate: Coordinate) -> bool:
        async with self.session_factory() as session:
            return await UserLocationStore(session).publish_location(user_id, coordinate)


def watch_options_from(config: TrackingSettings) -> WatchOptions:
    return WatchOptions(
        enable_high_accuracy=config.enable_high_accuracy,
        timeout_seconds=config.fix_timeout_seconds,
        maximum_age_seconds=config.maximum_age_seconds,
        clock_skew_seconds=config.clock_skew_seconds,
    )


class TrackerRegistry:
    """
    Owns the live tracker and queue source of every tracked user.

    A tracker whose device has not reported for idle_timeouts_before_stop fix
    timeouts is treated as abandoned and torn down by a background sweep. The
    sweep only runs while trackers exist.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        config: Optional[TrackingSettings] = None,
    ):
        config = config or get_settings().tracking
        self.publisher = StorePublisher(session_factory)
        self.options = watch_options_from(config)
        self.idle_seconds = config.fix_timeout_seconds * config.idle_timeouts_before_stop
        self._trackers: Dict[str, Tuple[LocationTracker, QueueGeolocationSource]] = {}
        self._last_contact: Dict[str, float] = {}
        self._sweeper: Optional[asyncio.Task] = None

    def get(self, user_id: str) -> Optional[LocationTracker]:
        entry = self._trackers.get(user_id)
        return entry[0] if entry else None

    def ensure(self, user_id: str, share_state: SharingState) -> LocationTracker:
        """
        Return the user's running tracker in the given sharing state.

        A tracker in another state, or one that halted, is re-armed. Every call
        counts as contact from the user's device.
        """
        self._touch(user_id)
        entry = self._trackers.get(user_id)
        if entry is None:
            source = QueueGeolocationSource()
            tracker = LocationTracker(source, self.publisher, self.options)
            self._trackers[user_id] = (tracker, source)
            tracker.start(share_state, user_id)
            logger.info(
                "Started location tracking",
                extra={"user_id": user_id, "share_state": share_state.value},
            )
            return tracker

        tracker, _ = entry
        if tracker.share_state != share_state or not tracker.is_running:
            tracker.start(share_state, user_id)
        return tracker

    def push_reading(self, user_id: str, share_state: SharingState, reading: PositionReading) -> LocationTracker:
        tracker = self.ensure(user_id, share_state)
        self._trackers[user_id][1].push(reading)
        return tracker

    def push_error(self, user_id: str, share_state: SharingState, error: GeolocationError) -> LocationTracker:
        tracker = self.ensure(user_id, share_state)
        self._trackers[user_id][1].push(error)
        return tracker

    async def stop(self, user_id: str) -> bool:
        entry = self._trackers.pop(user_id, None)
        self._last_contact.pop(user_id, None)
        if entry is None:
            return False
        await entry[0].stop()
        logger.info("Stopped location tracking", extra={"user_id": user_id})
        return True

    async def reap_idle(self) -> int:
        """Stop the trackers that heard nothing from their device for idle_seconds."""
        loop = asyncio.get_running_loop()
        reaped = 0
        for user_id in list(self._trackers):
            last_contact = self._last_contact.get(user_id, 0.0)
            if loop.time() - last_contact < self.idle_seconds:
                continue
            if await self.stop(user_id):
                reaped += 1
        if reaped:
            logger.info(
                f"Stopped {reaped} idle location trackers",
                extra={"idle_seconds": self.idle_seconds},
            )
        return reaped

    async def stop_all(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is not None:
            sweeper.cancel()
            await asyncio.gather(sweeper, return_exceptions=True)
        for user_id in list(self._trackers):
            await self.stop(user_id)

    def _touch(self, user_id: str) -> None:
        self._last_contact[user_id] = asyncio.get_running_loop().time()
        if self._sweeper is None or self._sweeper.done():
            self._sweeper = asyncio.create_task(self._sweep(), name="tracker-idle-sweep")

    async def _sweep(self) -> None:
        while self._trackers:
            await asyncio.sleep(self.options.timeout_seconds)
            try:
                await self.reap_idle()
            except Exception as e:
                logger.error(f"Idle tracker sweep failed: {e}", exc_info=True)

    def __len__(self) -> int:
        return len(self._trackers)


class LocationSharingController:
    """Applies explicit opt-in/opt-out actions to the store and the tracker."""

    def __init__(self, store: UserLocationStore, registry: TrackerRegistry):
        self.store = store
        self.registry = registry

    async def apply(self, user_id: str, action: SharingAction) -> UserLocationRecord:
        record = await self.store.get_record(user_id)
        current = SharingState.from_flag(record.share_location if record else False)
        target = next_sharing_state(current, action)

        tracker = self.registry.get(user_id)
        known = tracker.state.location if tracker else None
        record = await self.store.set_sharing(
            user_id, target.publishes, coordinate=known if target.publishes else None
        )

        if tracker is not None:
            # the watch was parameterised with the old state; re-arm it
            tracker.start(target, user_id)
        logger.info(
            "Sharing state transition",
            extra={"user_id": user_id, "from_state": current.value, "to_state": target.value},
        )
        return record
