"""
Pydantic request / response schemas for the API layer.

Shared with wishwall.sdk so forms are validated before any request is sent.
Kept separate from ORM models to avoid coupling transport to storage.
"""
from datetime import datetime
from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, EmailStr, Field, HttpUrl, ValidationError


# Width of the url columns (models.Profile.avatar_url, models.Wish.image_url)
URL_MAX_LENGTH = 500


def _blank_to_none(value):
    # Optional form fields arrive as "" when left empty
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _bounded_url(value):
    value = _blank_to_none(value)
    if isinstance(value, str) and len(value) > URL_MAX_LENGTH:
        raise ValueError(f"URL should have at most {URL_MAX_LENGTH} characters")
    return value


OptionalText = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
OptionalUrl = Annotated[Optional[HttpUrl], BeforeValidator(_bounded_url)]


def field_errors(exc: ValidationError) -> dict[str, str]:
    """Map a ValidationError to {field: message}, first message per field."""
    errors: dict[str, str] = {}
    for err in exc.errors():
        if err["loc"]:
            errors.setdefault(str(err["loc"][0]), err["msg"])
    return errors


# ──────────────────────────── Auth ────────────────────────────────────────

class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = Field(..., min_length=2, max_length=100)
    city: OptionalText = Field(None, max_length=100)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class ProfileResponse(BaseModel):
    id: str
    full_name: str
    avatar_url: Optional[str]
    city: Optional[str]

    class Config:
        from_attributes = True


class SessionResponse(BaseModel):
    user_id: str
    email: str
    is_admin: bool
    profile: Optional[ProfileResponse] = None


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    session: SessionResponse


# ──────────────────────────── Profiles ────────────────────────────────────

class ProfileUpdate(BaseModel):
    full_name: str = Field(..., min_length=4, max_length=100)
    city: OptionalText = Field(None, max_length=100)
    avatar_url: OptionalUrl = None


class ProfileSummary(BaseModel):
    """Author fields joined onto every wish."""
    full_name: str
    avatar_url: Optional[str]
    city: Optional[str]

    class Config:
        from_attributes = True


# ──────────────────────────── Wishes ──────────────────────────────────────

class WishCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=120)
    content: str = Field(..., min_length=10, max_length=300)
    image_url: OptionalUrl = None
    is_public: bool = True


class WishUpdate(WishCreate):
    pass


class WishResponse(BaseModel):
    id: str
    user_id: str
    title: str
    content: str
    image_url: Optional[str]
    is_public: bool
    likes_count: int
    created_at: datetime
    profile: Optional[ProfileSummary] = None
    liked_by_me: bool = False

    class Config:
        from_attributes = True


# ──────────────────────────── Likes ───────────────────────────────────────

class LikeResponse(BaseModel):
    wish_id: str
    liked: bool
    likes_count: int


# ──────────────────────────── Admin ───────────────────────────────────────

class AdminStats(BaseModel):
    total_users: int
    total_wishes: int
    total_likes: int
