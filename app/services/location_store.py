"""
User Location Store - read/write surface over the shared users table
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional
import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import UserNotFoundError
from app.core.humanize import as_utc
from app.models.user import User
from app.services.geo import Coordinate

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UserLocationRecord:
    """Detached snapshot of the location-related fields of a user."""
    user_id: str
    share_location: bool
    latitude: Optional[float]
    longitude: Optional[float]
    last_location_update: Optional[datetime]
    last_active: Optional[datetime]
    display_name: Optional[str] = None
    photo_url: Optional[str] = None

    @property
    def coordinate(self) -> Optional[Coordinate]:
        """The stored coordinate, absent whenever sharing is off."""
        if not self.share_location:
            return None
        return Coordinate.from_mapping(
            {"latitude": self.latitude, "longitude": self.longitude}
        )

    @classmethod
    def from_user(cls, user: User) -> "UserLocationRecord":
        return cls(
            user_id=user.id,
            share_location=bool(user.share_location),
            latitude=user.latitude,
            longitude=user.longitude,
            last_location_update=as_utc(user.last_location_update),
            last_active=as_utc(user.last_active),
            display_name=user.display_name,
            photo_url=user.photo_url,
        )


class UserLocationStore:
    """Reads and partial updates of user location records"""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    async def get_user(self, user_id: str) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_record(self, user_id: str) -> Optional[UserLocationRecord]:
        user = await self.get_user(user_id)
        return UserLocationRecord.from_user(user) if user else None

    async def ensure_user(
        self,
        user_id: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> User:
        """
        Return the user's record, creating it on first contact.

        New records start with sharing off and no coordinate. last_active is
        refreshed on every call.
        """
        now = self.clock()
        user = await self.get_user(user_id)
        if user is None:
            user = User(
                id=user_id,
                display_name=display_name,
                photo_url=photo_url,
                share_location=False,
                latitude=None,
                longitude=None,
                last_location_update=None,
                last_active=now,
            )
            self.db.add(user)
            logger.info("Created location record", extra={"user_id": user_id})
        else:
            user.last_active = now
            if display_name and not user.display_name:
                user.display_name = display_name
            if photo_url and not user.photo_url:
                user.photo_url = photo_url

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def recent_sharers(self, since: datetime, limit: int) -> List[UserLocationRecord]:
        """
        Users sharing their location with an update newer than `since`,
        most recently updated first.
        """
        stmt = (
            select(User)
            .where(
                User.share_location.is_(True),
                User.last_location_update > since,
            )
            .order_by(User.last_location_update.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return [UserLocationRecord.from_user(u) for u in result.scalars().all()]

    async def publish_location(self, user_id: str, coordinate: Coordinate) -> bool:
        """
        Write a coordinate together with share_location=true and a fresh timestamp.

        The flag and the coordinate always go out in the same UPDATE.

        Returns:
            False when the user record does not exist
        """
        stmt = (
            update(User)
            .where(User.id == user_id)
            .values(
                latitude=coordinate.latitude,
                longitude=coordinate.longitude,
                last_location_update=self.clock(),
                share_location=True,
            )
        )
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount > 0

    async def set_sharing(
        self,
        user_id: str,
        enabled: bool,
        coordinate: Optional[Coordinate] = None,
    ) -> UserLocationRecord:
        """
        Persist an explicit opt-in/opt-out.

        Opting out clears the stored coordinate and its timestamp in the same
        write. Opting in with a known coordinate publishes it alongside the flag.
        """
        user = await self.get_user(user_id)
        if user is None:
            raise UserNotFoundError(user_id)

        if not enabled:
            user.share_location = False
            user.latitude = None
            user.longitude = None
            user.last_location_update = None
        elif coordinate is not None and coordinate.is_valid:
            user.share_location = True
            user.latitude = coordinate.latitude
            user.longitude = coordinate.longitude
            user.last_location_update = self.clock()
        else:
            user.share_location = True

        await self.db.commit()
        await self.db.refresh(user)
        logger.info(
            "Location sharing updated",
            extra={"user_id": user_id, "share_location": enabled},
        )
        return UserLocationRecord.from_user(user)
