"""
Periodic nearby-traveler refresh.

The resolver runs once as soon as a reference point is known and then on a
fixed interval. Changing the reference or the identity re-arms the loop; the
previous interval is always cancelled first so polls never pile up.
"""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Union

from app.services.geo import Coordinate
from app.services.proximity_service import TravelerResult

logger = logging.getLogger(__name__)

Fetch = Callable[[Coordinate, str], Awaitable[List[TravelerResult]]]
ResultsCallback = Callable[[List[TravelerResult]], Union[Awaitable[None], None]]


class NearbyTravelersPoller:
    def __init__(
        self,
        fetch: Fetch,
        on_results: ResultsCallback,
        interval_seconds: float = 30.0,
    ):
        self.fetch = fetch
        self.on_results = on_results
        self.interval_seconds = interval_seconds
        self.reference: Optional[Coordinate] = None
        self.user_id: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_armed(self) -> bool:
        return self._task is not None and not self._task.done()

    async def rearm(self, reference: Optional[Coordinate], user_id: Optional[str]) -> None:
        """Point the poller at a new reference/identity."""
        if self.is_armed and reference == self.reference and user_id == self.user_id:
            return

        await self.cancel()
        self.reference = reference
        self.user_id = user_id

        if reference is None or not user_id:
            await self._emit([])
            return

        self._task = asyncio.create_task(self._run(reference, user_id))

    async def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def aclose(self) -> None:
        await self.cancel()
        self.reference = None
        self.user_id = None

    async def _run(self, reference: Coordinate, user_id: str) -> None:
        while True:
            await self._poll(reference, user_id)
            await asyncio.sleep(self.interval_seconds)

    async def _poll(self, reference: Coordinate, user_id: str) -> None:
        try:
            travelers = await self.fetch(reference, user_id)
        except Exception:
            logger.exception("Error loading travelers")
            travelers = []
        await self._emit(travelers or [])

    async def _emit(self, travelers: List[TravelerResult]) -> None:
        try:
            result = self.on_results(travelers)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Error delivering nearby travelers")
