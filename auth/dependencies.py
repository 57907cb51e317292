"""
auth/dependencies.py -- FastAPI Depends() helpers for request authorization.

Three capability tiers:
  public        -- no dependency; anyone may read public content.
  authenticated -- get_current_claims(); "manage own content".
  admin         -- require_admin / require_roles(RoleCode.ADMIN).

Only the Authorization: Bearer <access token> header is accepted. The token
is verified against the access-signing secret; claims are trusted until the
token's own expiry, so logout does not cut off an access token already in
flight.

get_current_claims() raises Unauthorized; require_roles() raises Forbidden
for an authenticated caller with the wrong role. Both are AuthErrors and are
rendered by the API layer's exception handler.

Layer rule: may import from fastapi (Request) because this module is part of
the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import Forbidden, Unauthorized
from auth.models import RoleCode, TokenClaims
from auth.service import AuthService


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_claims(request: Request) -> TokenClaims | None:
    """Return verified access-token claims, or None. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None
    auth_service: AuthService = request.app.state.auth_service
    try:
        return auth_service.authenticate_access_token(token)
    except Unauthorized:
        return None


def get_current_claims(request: Request) -> TokenClaims:
    """Require a valid access token.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_current_claims(request)
    if claims is None:
        raise Unauthorized("Authentication required.")
    return claims


def require_roles(*roles: RoleCode) -> Callable[[Request], TokenClaims]:
    """Build a dependency that admits only the given role codes."""
    allowed = frozenset(roles)

    def dependency(request: Request) -> TokenClaims:
        claims = get_current_claims(request)
        if claims.role not in allowed:
            raise Forbidden("Insufficient permissions.")
        return claims

    return dependency


require_admin = require_roles(RoleCode.ADMIN)
