"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; the store, issuer and orchestrator do the work.

Credential material (password_hash, refresh_token_hash) lives only on
Identity, and only when the store was asked for it explicitly. The view
classes (IdentityView, ProfileView) are what crosses the core boundary --
they have no field that could carry a hash.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class RoleCode(str, Enum):
    """Closed set of role codes. Shared by the roles table, Identity and token claims."""

    ADMIN = "ADMIN"
    BLOGGER = "BLOGGER"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class Role:
    """A role row. code is the stable identifier carried in tokens; name is for humans."""

    code: RoleCode
    name: str
    id: str | None = None


@dataclass
class Identity:
    """A registered account.

    email is stored normalized (lowercase, trimmed). password_hash and
    refresh_token_hash are None unless the store was asked to include them,
    so an Identity fetched for display never carries credential material.

    refresh_token_hash / refresh_token_expires_at form the single refresh
    slot: both set on every issuance, both None after logout.
    """

    name: str
    email: str
    role: Role
    id: str | None = None
    password_hash: str | None = None
    is_active: bool = True
    refresh_token_hash: str | None = None
    refresh_token_expires_at: datetime | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class TokenClaims:
    """The fixed, versioned payload of a signed token.

    jti makes every token string unique, even two minted for the same
    identity within the same second.
    """

    sub: str
    role: RoleCode
    typ: TokenType
    jti: str
    iat: int
    exp: int
    ver: int = 1


@dataclass(frozen=True)
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass(frozen=True)
class IdentityView:
    """Sanitized identity returned with a token pair on login and register."""

    id: str
    name: str
    email: str
    role: RoleCode
    is_active: bool

    @classmethod
    def from_identity(cls, identity: Identity) -> IdentityView:
        return cls(
            id=identity.id or "",
            name=identity.name,
            email=identity.email,
            role=identity.role.code,
            is_active=identity.is_active,
        )


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful login or register."""

    tokens: TokenPair
    user: IdentityView


@dataclass(frozen=True)
class ProfileView:
    """Sanitized profile returned by GET /auth/me."""

    id: str
    name: str
    email: str
    is_active: bool
    role_code: RoleCode
    role_name: str
    created_at: str | None
    updated_at: str | None
