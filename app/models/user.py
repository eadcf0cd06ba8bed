from sqlalchemy import Boolean, Column, String, DateTime, Float, Text, func

from app.core.db import Base


class User(Base):
    """
    User profile subset owned by the proximity service.

    The coordinate columns are only meaningful while share_location is true.
    """
    __tablename__ = "users"

    id = Column(String(128), primary_key=True)
    display_name = Column(String(255), nullable=True)
    photo_url = Column(Text, nullable=True)
    bio = Column(Text, nullable=True)
    share_location = Column(Boolean, nullable=False, default=False, server_default="0", index=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    last_location_update = Column(DateTime(timezone=True), nullable=True, index=True)
    last_active = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User id={self.id} share_location={self.share_location}>"
