"""
API request and response models for Marquee REST endpoints.

These Pydantic v2 models define the HTTP transport contract only. Request
models enforce *types*; domain rules (lengths, ranges, uniqueness) are
checked by the validators in auth/ and movies/ so every failing field is
reported at once with a field-tagged message. That is why most request
fields default to an empty value instead of being required here.

Separation of concerns: auth/ and movies/ dataclasses = domain truth;
api/ models = API contract. Route handlers map between the two.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import Token, User
from core.filters import Metadata
from movies.models import Movie

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Passwords are taken verbatim; only the email is normalised (by the route)."""

    name: str = ""
    email: str = ""
    password: str = ""


class ActivateRequest(BaseModel):
    token: str = ""


class PasswordResetRequest(BaseModel):
    password: str = ""
    token: str = ""


class AuthenticationRequest(BaseModel):
    email: str = ""
    password: str = ""


class EmailRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = ""


class MovieCreate(BaseModel):
    """Request body for POST /api/v1/movies."""

    title: str = ""
    year: int = 0
    runtime: int = Field(default=0, description="Runtime in minutes.")
    genres: list[str] = Field(default_factory=list)


class MoviePatch(BaseModel):
    """Request body for PATCH /api/v1/movies/{id}. Omitted fields are left unchanged."""

    title: Optional[str] = None
    year: Optional[int] = None
    runtime: Optional[int] = None
    genres: Optional[list[str]] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user. Password hash and version are never exposed."""

    id: int
    created_at: str
    name: str
    email: str
    activated: bool

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            created_at=user.created_at,
            name=user.name,
            email=user.email,
            activated=user.activated,
        )


class UserEnvelope(BaseModel):
    user: UserResponse


class TokenResponse(BaseModel):
    token: str
    expiry: datetime

    @classmethod
    def from_token(cls, token: Token) -> "TokenResponse":
        return cls(token=token.plaintext, expiry=token.expiry)


class AuthenticationTokenEnvelope(BaseModel):
    authentication_token: TokenResponse


class MessageResponse(BaseModel):
    message: str


class MovieResponse(BaseModel):
    id: int
    created_at: str
    title: str
    year: int
    runtime: int
    genres: list[str]
    version: int

    @classmethod
    def from_movie(cls, movie: Movie) -> "MovieResponse":
        return cls(
            id=movie.id,
            created_at=movie.created_at,
            title=movie.title,
            year=movie.year,
            runtime=movie.runtime,
            genres=movie.genres,
            version=movie.version,
        )


class MovieEnvelope(BaseModel):
    movie: MovieResponse


class MetadataResponse(BaseModel):
    current_page: int = 0
    page_size: int = 0
    first_page: int = 0
    last_page: int = 0
    total_records: int = 0

    @classmethod
    def from_metadata(cls, metadata: Metadata) -> "MetadataResponse":
        return cls(**metadata.to_dict())


class MovieListResponse(BaseModel):
    movies: list[MovieResponse]
    metadata: MetadataResponse


class ErrorDetail(BaseModel):
    code: str
    message: str
    detail: Optional[str] = None
    fields: Optional[dict[str, str]] = None


class ErrorResponse(BaseModel):
    error: ErrorDetail


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    components: dict[str, str]
