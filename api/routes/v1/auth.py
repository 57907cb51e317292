"""
api/routes/v1/auth.py -- Session lifecycle REST endpoints.

Routes:
  POST /api/v1/auth/register   -- create account; returns token pair + user (201)
  POST /api/v1/auth/login      -- password login; returns token pair + user
  POST /api/v1/auth/refresh    -- rotate a refresh token into a new pair
  POST /api/v1/auth/logout     -- revoke the caller's refresh token (requires auth)
  GET  /api/v1/auth/me         -- current profile (requires auth)
  GET  /api/v1/admin/ping      -- admin-only probe

Handlers are thin: they translate between the HTTP models in api/models.py
and AuthService. AuthService raises AuthError subclasses, which the handler
in api/main.py renders as {statusCode, error, message}.

Security:
  login and register are rate-limited per client IP (LOGIN_RATE_LIMIT).
  Cache-Control: no-store on every response that carries tokens.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.limiter import credential_rate_limit, limiter
from api.models import (
    AuthResponse,
    LoginRequest,
    LogoutResponse,
    ProfileResponse,
    RefreshRequest,
    RegisterRequest,
    TokenPairResponse,
)
from auth.dependencies import get_current_claims, require_admin
from auth.models import TokenClaims
from auth.service import AuthService

# Auth policy:
# - POST /api/v1/auth/register:  public
# - POST /api/v1/auth/login:     public
# - POST /api/v1/auth/refresh:   public -- the refresh token itself is the credential
# - POST /api/v1/auth/logout:    requires access token (get_current_claims)
# - GET  /api/v1/auth/me:        requires access token (get_current_claims)
# - GET  /api/v1/admin/ping:     requires ADMIN role (require_admin)
router = APIRouter()


def _service(request: Request) -> AuthService:
    return request.app.state.auth_service


@limiter.limit(credential_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/register", response_model=AuthResponse, status_code=201)
def register(request: Request, response: Response, body: RegisterRequest) -> AuthResponse:
    """Register with the default role and receive a first session."""
    result = _service(request).register(body.name, body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)


@limiter.limit(credential_rate_limit)
@router.post("/auth/login", response_model=AuthResponse)
def login(request: Request, response: Response, body: LoginRequest) -> AuthResponse:
    """Authenticate with email and password.

    Unknown email and wrong password produce the same 401 body.
    """
    result = _service(request).login(body.email, body.password)
    response.headers["Cache-Control"] = "no-store"
    return AuthResponse.from_result(result)


@router.post("/auth/refresh", response_model=TokenPairResponse)
def refresh(request: Request, response: Response, body: RefreshRequest) -> TokenPairResponse:
    """Exchange a refresh token for a new pair. The presented token stops working."""
    pair = _service(request).refresh(body.refresh_token)
    response.headers["Cache-Control"] = "no-store"
    return TokenPairResponse.from_pair(pair)


@router.post("/auth/logout", response_model=LogoutResponse)
def logout(request: Request, claims: TokenClaims = Depends(get_current_claims)) -> LogoutResponse:
    """Invalidate the caller's refresh token. Safe to call repeatedly."""
    result = _service(request).logout(claims.sub)
    return LogoutResponse(ok=result["ok"])


@router.get("/auth/me", response_model=ProfileResponse)
def me(request: Request, claims: TokenClaims = Depends(get_current_claims)) -> ProfileResponse:
    """Return the sanitized profile of the authenticated identity."""
    return ProfileResponse.from_profile(_service(request).me(claims.sub))


@router.get("/admin/ping")
def admin_ping(claims: TokenClaims = Depends(require_admin)) -> dict:
    """Admin capability probe."""
    return {"ok": True, "role": claims.role.value}
