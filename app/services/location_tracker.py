"""
Geolocation Tracker - continuous device location watch with opt-in publishing.

The sharing preference is modelled as an explicit two-state machine. A tracker
is started with the current state and user id as parameters; changing either
means tearing the watch down and starting a new one.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Optional, Set, Union

from app.core.exceptions import GeolocationError, GeolocationErrorReason
from app.core.humanize import as_utc
from app.services.geo import Coordinate
from app.services.location_store import utcnow

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = "Location permission denied. Please enable it in your browser settings."
UNSUPPORTED_MESSAGE = "Geolocation is not supported by this device."


class SharingState(str, Enum):
    NOT_SHARING = "not_sharing"
    SHARING = "sharing"

    @classmethod
    def from_flag(cls, share_location: bool) -> "SharingState":
        return cls.SHARING if share_location else cls.NOT_SHARING

    @property
    def publishes(self) -> bool:
        return self is SharingState.SHARING


class SharingAction(str, Enum):
    OPT_IN = "opt_in"
    OPT_OUT = "opt_out"


_TRANSITIONS = {
    (SharingState.NOT_SHARING, SharingAction.OPT_IN): SharingState.SHARING,
    (SharingState.NOT_SHARING, SharingAction.OPT_OUT): SharingState.NOT_SHARING,
    (SharingState.SHARING, SharingAction.OPT_IN): SharingState.SHARING,
    (SharingState.SHARING, SharingAction.OPT_OUT): SharingState.NOT_SHARING,
}


def next_sharing_state(state: SharingState, action: SharingAction) -> SharingState:
    return _TRANSITIONS[(SharingState(state), SharingAction(action))]


@dataclass
class WatchOptions:
    enable_high_accuracy: bool = True
    timeout_seconds: float = 20.0
    maximum_age_seconds: float = 10.0
    clock_skew_seconds: float = 0.0


@dataclass(frozen=True)
class PositionReading:
    latitude: float
    longitude: float
    timestamp: datetime = field(default_factory=utcnow)
    accuracy_m: Optional[float] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        return Coordinate.from_mapping(self)


WatchEvent = Union[PositionReading, GeolocationError]
Publisher = Callable[[str, Coordinate], Awaitable[bool]]


class GeolocationSource(ABC):
    """A continuous device location watch."""

    @abstractmethod
    def watch(self, options: WatchOptions) -> AsyncIterator[WatchEvent]:
        """
        Yield readings and errors until the device stops reporting.

        Errors are yielded rather than raised so one failed fix does not end the
        watch. A source must yield a TIMEOUT error when no reading arrives within
        options.timeout_seconds.
        """


class QueueGeolocationSource(GeolocationSource):
    """Source fed by readings pushed from elsewhere (e.g. HTTP fix reports)."""

    def __init__(self, maxsize: int = 100):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    def push(self, event: WatchEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            # keep the newest fix, the oldest pending one is already stale
            self._queue.get_nowait()
            self._queue.put_nowait(event)

    async def watch(self, options: WatchOptions) -> AsyncIterator[WatchEvent]:
        while True:
            try:
                event = await asyncio.wait_for(self._queue.get(), options.timeout_seconds)
            except asyncio.TimeoutError:
                yield GeolocationError(GeolocationErrorReason.TIMEOUT, "Timeout expired")
                continue
            yield event


@dataclass
class TrackerState:
    location: Optional[Coordinate] = None
    error: Optional[str] = None
    error_reason: Optional[GeolocationErrorReason] = None
    loading: bool = True
    last_fix_at: Optional[datetime] = None
    stale_fixes: int = 0

    def to_dict(self) -> dict:
        return {
            "location": self.location.to_dict() if self.location else None,
            "error": self.error,
            "error_reason": self.error_reason.value if self.error_reason else None,
            "loading": self.loading,
            "last_fix_at": self.last_fix_at,
            "stale_fixes": self.stale_fixes,
        }


class LocationTracker:
    """
    Watches one geolocation source and publishes accepted fixes when sharing.

    Local state is updated synchronously with each fix; the remote write runs
    as a separate task and its failure never touches local state.
    """

    def __init__(
        self,
        source: Optional[GeolocationSource],
        publisher: Optional[Publisher] = None,
        options: Optional[WatchOptions] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.source = source
        self.publisher = publisher
        self.options = options or WatchOptions()
        self.clock = clock
        self.state = TrackerState()
        self.share_state = SharingState.NOT_SHARING
        self.user_id: Optional[str] = None
        self._watch_task: Optional[asyncio.Task] = None
        self._pending_writes: Set[asyncio.Task] = set()
        self._generation = 0
        self._halted = False

    @property
    def is_running(self) -> bool:
        return self._watch_task is not None and not self._watch_task.done()

    @property
    def is_halted(self) -> bool:
        return self._halted

    def start(self, share_state: SharingState, user_id: Optional[str]) -> None:
        """
        (Re)arm the watch for the given sharing state and identity.

        Any previous watch and its in-flight writes are cancelled first.
        """
        self._cancel()
        self.share_state = SharingState(share_state)
        self.user_id = user_id
        self._halted = False
        self._generation += 1

        if self.source is None:
            self._set_error(GeolocationErrorReason.UNSUPPORTED, UNSUPPORTED_MESSAGE)
            return

        self.state.loading = True
        self._watch_task = asyncio.create_task(
            self._watch(self._generation), name=f"location-watch:{user_id}"
        )

    async def stop(self) -> None:
        """Tear down the watch; nothing is written after this returns."""
        self._generation += 1
        tasks = self._cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for in-flight remote writes to settle."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    def reading_age(self, reading: PositionReading) -> float:
        """
        Seconds since the fix was taken, less the allowed device clock lag.

        Device timestamps come from another clock; a lag up to
        options.clock_skew_seconds is not counted as age.
        """
        age = (self.clock() - as_utc(reading.timestamp)).total_seconds()
        return max(0.0, age - self.options.clock_skew_seconds)

    def accepts(self, reading: PositionReading) -> bool:
        return self.reading_age(reading) <= self.options.maximum_age_seconds

    def _cancel(self) -> list:
        tasks = []
        if self._watch_task is not None:
            self._watch_task.cancel()
            tasks.append(self._watch_task)
            self._watch_task = None
        for task in list(self._pending_writes):
            task.cancel()
            tasks.append(task)
        self._pending_writes.clear()
        return tasks

    async def _watch(self, generation: int) -> None:
        try:
            async with aclosing(self.source.watch(self.options)) as events:
                await self._consume(events, generation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Geolocation watch failed: {e}", exc_info=True)
            self._set_error(GeolocationErrorReason.POSITION_UNAVAILABLE, f"Error getting location: {e}")
        finally:
            if generation == self._generation:
                self.state.loading = False

    async def _consume(self, events: AsyncIterator[WatchEvent], generation: int) -> None:
        async for event in events:
            if generation != self._generation:
                return
            if isinstance(event, GeolocationError):
                self._on_error(event)
                if event.is_permission_denied:
                    self._halted = True
                    logger.info(
                        "Location tracking halted after permission denial",
                        extra={"user_id": self.user_id},
                    )
                    return
            else:
                self._on_fix(event, generation)

    def _on_fix(self, reading: PositionReading, generation: int) -> None:
        coordinate = reading.coordinate
        if coordinate is None:
            logger.warning(f"Ignoring malformed position reading {reading!r}")
            return

        if not self.accepts(reading):
            self.state.stale_fixes += 1
            logger.warning(
                f"Ignoring position reading {self.reading_age(reading):.1f}s old",
                extra={"user_id": self.user_id},
            )
            return

        self.state.location = coordinate
        self.state.error = None
        self.state.error_reason = None
        self.state.loading = False
        self.state.last_fix_at = as_utc(reading.timestamp)

        if self.share_state.publishes and self.user_id and self.publisher:
            task = asyncio.create_task(self._publish(coordinate, generation))
            self._pending_writes.add(task)
            task.add_done_callback(self._pending_writes.discard)

    def _on_error(self, error: GeolocationError) -> None:
        logger.warning(
            f"Geolocation watch error: {error.message}",
            extra={"user_id": self.user_id, "reason": error.reason.value},
        )
        if error.is_permission_denied:
            message = PERMISSION_DENIED_MESSAGE
        elif error.reason == GeolocationErrorReason.UNSUPPORTED:
            message = UNSUPPORTED_MESSAGE
        else:
            message = f"Error getting location: {error.message}"
        self._set_error(error.reason, message)

    def _set_error(self, reason: GeolocationErrorReason, message: str) -> None:
        self.state.location = None
        self.state.error = message
        self.state.error_reason = reason
        self.state.loading = False

    async def _publish(self, coordinate: Coordinate, generation: int) -> None:
        if generation != self._generation:
            return
        try:
            written = await self.publisher(self.user_id, coordinate)
            if not written:
                logger.warning(
                    "Location update matched no user record",
                    extra={"user_id": self.user_id},
                )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(
                f"Error updating location in store: {e}",
                extra={"user_id": self.user_id},
            )
