from pydantic import BaseModel, Field, HttpUrl, field_validator, model_validator
from uuid import UUID
from datetime import datetime
from typing import Literal, Optional

Gender = Literal["male", "female", "other"]
Interest = Literal["male", "female", "both"]


class Photo(BaseModel):
    id: str
    url: str
    is_main: bool = False
    uploaded_at: Optional[datetime] = None


class UserCreate(BaseModel):
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$", max_length=254)
    password: str = Field(min_length=6, max_length=128)
    name: str = Field(min_length=1, max_length=50)
    age: int = Field(ge=18, le=100)
    gender: Gender
    interested_in: Interest
    bio: str = Field("", max_length=500)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, v: str) -> str:
        return v.strip().lower()

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        return v.strip()


class UserUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    age: Optional[int] = Field(None, ge=18, le=100)
    gender: Optional[Gender] = None
    interested_in: Optional[Interest] = None
    bio: Optional[str] = Field(None, max_length=500)
    age_min: Optional[int] = Field(None, ge=18, le=100)
    age_max: Optional[int] = Field(None, ge=18, le=100)
    max_distance_km: Optional[int] = Field(None, ge=1, le=500)

    @model_validator(mode="after")
    def _age_range_ordered(self) -> "UserUpdate":
        if self.age_min is not None and self.age_max is not None and self.age_min > self.age_max:
            raise ValueError("age_min cannot exceed age_max")
        return self


class Preferences(BaseModel):
    age_min: int
    age_max: int
    max_distance_km: int


class Location(BaseModel):
    longitude: float
    latitude: float
    city: str = ""
    country: str = ""


class LocationUpdate(BaseModel):
    coordinates: list[float] = Field(min_length=2, max_length=2, description="[longitude, latitude]")
    city: Optional[str] = Field(None, max_length=100)
    country: Optional[str] = Field(None, max_length=100)

    @field_validator("coordinates")
    @classmethod
    def _within_bounds(cls, v: list[float]) -> list[float]:
        lon, lat = v
        if not -180.0 <= lon <= 180.0 or not -90.0 <= lat <= 90.0:
            raise ValueError("Coordinates must be [longitude, latitude] within range")
        return v


class PhotoCreate(BaseModel):
    photo_url: HttpUrl
    is_main: bool = False


class PublicProfile(BaseModel):
    id: UUID
    name: str
    age: int
    gender: str
    bio: str
    photos: list[Photo] = []
    main_photo: Optional[str] = None
    city: str = ""
    is_online: bool = False
    last_active: datetime

    model_config = {"from_attributes": True}


class UserResponse(PublicProfile):
    email: str
    interested_in: str
    role: str
    location: Location
    preferences: Preferences
    is_active: bool
    created_at: datetime

    @classmethod
    def from_user(cls, user) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            age=user.age,
            gender=user.gender,
            interested_in=user.interested_in,
            role=user.role,
            bio=user.bio,
            photos=user.photos or [],
            main_photo=user.main_photo,
            city=user.city,
            is_online=user.is_online,
            last_active=user.last_active,
            location=Location(
                longitude=user.longitude,
                latitude=user.latitude,
                city=user.city,
                country=user.country,
            ),
            preferences=Preferences(
                age_min=user.age_min,
                age_max=user.age_max,
                max_distance_km=user.max_distance_km,
            ),
            is_active=user.is_active,
            created_at=user.created_at,
        )


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginRequest(BaseModel):
    email: str = Field(max_length=254)
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def _lowercase_email(cls, v: str) -> str:
        return v.strip().lower()


class AuthResponse(BaseModel):
    user: UserResponse
    token: TokenResponse


class DiscoverResponse(BaseModel):
    users: list[PublicProfile]
    count: int


class SwipeCreate(BaseModel):
    target_user_id: UUID
    action: Literal["like", "pass"]


class SwipeResponse(BaseModel):
    action: str
    match: bool
    match_id: Optional[UUID] = None


class SwipeStats(BaseModel):
    total: int
    likes: int
    passes: int
    recent_week: int
    like_rate: float


class PhotoList(BaseModel):
    photos: list[Photo]


class LocationResponse(BaseModel):
    location: Location
