"""
Sparkmatch — User model.
"""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, Float, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sparkmatch.database import Base
from sparkmatch.models.types import JSONType, UTCDateTime, utcnow

GENDERS = ("male", "female", "other")
INTERESTS = ("male", "female", "both")


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("age >= 18 AND age <= 100", name="ck_user_age"),
        CheckConstraint("age_min <= age_max", name="ck_user_age_range"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    email: Mapped[str] = mapped_column(String(254), unique=True, index=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    gender: Mapped[str] = mapped_column(String(16), nullable=False)
    interested_in: Mapped[str] = mapped_column(String(16), nullable=False)
    role: Mapped[str] = mapped_column(String(16), default="user", nullable=False)
    bio: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    # Location: (0, 0) means "not set".
    longitude: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    latitude: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    city: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    country: Mapped[str] = mapped_column(String(100), default="", nullable=False)

    photos: Mapped[list] = mapped_column(
        JSONType, default=list, nullable=False,
        comment="Array of {id, url, is_main, uploaded_at}",
    )

    # Discovery preferences
    age_min: Mapped[int] = mapped_column(Integer, default=18, nullable=False)
    age_max: Mapped[int] = mapped_column(Integer, default=50, nullable=False)
    max_distance_km: Mapped[int] = mapped_column(Integer, default=50, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_online: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_active: Mapped[datetime] = mapped_column(
        UTCDateTime, default=utcnow, index=True, nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime, onupdate=utcnow, nullable=True
    )

    @property
    def has_location(self) -> bool:
        return self.longitude != 0 or self.latitude != 0

    @property
    def main_photo(self) -> str | None:
        photos = self.photos or []
        for photo in photos:
            if photo.get("is_main"):
                return photo["url"]
        return photos[0]["url"] if photos else None

    def __repr__(self) -> str:
        return f"<User {self.email!r} id={self.id}>"
