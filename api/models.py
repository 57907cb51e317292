"""
API request and response models for the Scribe auth endpoints.

These Pydantic v2 models define the HTTP transport contract. They are kept
separate from the dataclasses in auth/models.py, which own the internal
domain representation. Route handlers map between the two.

JSON field names are camelCase (accessToken, isActive, ...). Every model
uses an alias generator so Python attribute names stay snake_case.

None of the response models has a field that could carry a password hash or
a refresh-token fingerprint.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import AuthResult, ProfileView, TokenPair

# Shape check only. Deliverability is not the core's concern.
EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _strip(value):
    return value.strip() if isinstance(value, str) else value


# Surrounding whitespace is dropped before the pattern check runs.
_Email = Annotated[str, BeforeValidator(_strip), Field(min_length=3, max_length=120, pattern=EMAIL_PATTERN)]


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = _CAMEL

    email: _Email
    password: str = Field(min_length=6, max_length=128)


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Name and email are trimmed before their length checks; the service
    lowercases the email and enforces the password policy.
    """

    model_config = _CAMEL

    name: Annotated[str, BeforeValidator(_strip), Field(min_length=1, max_length=80)]
    email: _Email
    password: str = Field(min_length=8, max_length=72)


class RefreshRequest(BaseModel):
    """Request body for POST /api/v1/auth/refresh."""

    model_config = _CAMEL

    refresh_token: str = Field(min_length=1, max_length=4096)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserView(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    email: str
    role: str
    is_active: bool


class AuthResponse(BaseModel):
    """Response body for login (200) and register (201)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    access_token: str
    refresh_token: str
    user: UserView

    @classmethod
    def from_result(cls, result: AuthResult) -> "AuthResponse":
        return cls(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            user=UserView(
                id=result.user.id,
                name=result.user.name,
                email=result.user.email,
                role=result.user.role.value,
                is_active=result.user.is_active,
            ),
        )


class TokenPairResponse(BaseModel):
    """Response body for POST /api/v1/auth/refresh."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    access_token: str
    refresh_token: str

    @classmethod
    def from_pair(cls, pair: TokenPair) -> "TokenPairResponse":
        return cls(access_token=pair.access_token, refresh_token=pair.refresh_token)


class LogoutResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool = True


class RoleView(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    name: str


class ProfileResponse(BaseModel):
    """Response body for GET /api/v1/auth/me."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    email: str
    is_active: bool
    role: RoleView
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_profile(cls, profile: ProfileView) -> "ProfileResponse":
        return cls(
            id=profile.id,
            name=profile.name,
            email=profile.email,
            is_active=profile.is_active,
            role=RoleView(code=profile.role_code.value, name=profile.role_name),
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    status_code: int
    error: str
    message: str


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
