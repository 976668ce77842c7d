"""
API request and response models for the User API REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Validation is type and presence only: strings are strict (a number is not a
name), age is a strict integer (booleans, floats and numeric strings are
rejected), and no field is sanitized beyond trimming surrounding whitespace.
Passwords are capped at bcrypt's 72-byte input limit, counted in UTF-8.
"""

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, StringConstraints

from auth.models import User
from auth.passwords import MAX_PASSWORD_BYTES, password_too_long

# ---------------------------------------------------------------------------
# Field types
# ---------------------------------------------------------------------------


def _check_password_bytes(value: str) -> str:
    if password_too_long(value):
        raise ValueError(f"password must be at most {MAX_PASSWORD_BYTES} bytes in UTF-8")
    return value


_Text = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1, max_length=255)]
_Password = Annotated[
    str,
    StringConstraints(strict=True, min_length=1, max_length=MAX_PASSWORD_BYTES),
    AfterValidator(_check_password_bytes),
]
_Age = Annotated[int, Field(strict=True, examples=[30])]


# ---------------------------------------------------------------------------
# Error envelope
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /auth/register. Every field is required."""

    name: _Text = Field(examples=["John Smith"])
    age: _Age
    email: _Text = Field(examples=["john@example.com"])
    password: _Password


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    id: str


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: _Text
    password: _Password


class LoginResponse(BaseModel):
    """Response body for POST /auth/login.

    token is a JWT for the Authorization: Bearer header; expires_in is its
    validity window in seconds.
    """

    model_config = ConfigDict(frozen=True)

    token: str
    token_type: str = "bearer"
    expires_in: int


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /users.

    password is optional; when present the store hashes it on save.
    """

    name: _Text = Field(examples=["John Smith"])
    email: _Text = Field(examples=["john@example.com"])
    age: _Age
    password: Optional[_Password] = None


class UserPut(UserCreate):
    """Request body for PUT /users/{id}.

    Same required set as UserCreate. The record is overwritten in full: an
    omitted password clears the stored one.
    """


class UserPatch(BaseModel):
    """Request body for PATCH /users/{id}. Only supplied fields change."""

    name: Optional[_Text] = None
    email: Optional[_Text] = None
    age: Optional[_Age] = None
    password: Optional[_Password] = None


class UserResponse(BaseModel):
    """A user record as returned to callers. Never carries the password."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(examples=["66b7d3a5f0c1d21f6a4d3a9e"])
    name: Optional[str]
    age: Optional[int]
    email: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        """Build a UserResponse from a stored User, dropping credential fields."""
        return cls(
            id=user.id,
            name=user.name,
            age=user.age,
            email=user.email,
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


class UserSavedResponse(BaseModel):
    """Response for POST /users."""

    model_config = ConfigDict(frozen=True)

    message: str
    data: UserResponse
