"""
auth/tokens.py -- Token Signer: JWT encode / decode.

Security design decisions:
  JWT: python-jose with HS256. Access and refresh tokens are signed with
       different secrets (Settings.jwt_secret / Settings.jwt_refresh_secret),
       so a leaked access-signing secret cannot forge refresh tokens.

  Claims: a fixed, versioned structure -- {sub, role, typ, ver, jti, iat, exp}.
       verify_token() rejects anything else (missing or extra keys, unknown
       role, wrong token type, unknown version) instead of coercing it.

  Failures: verify_token() raises TokenExpiredError or TokenInvalidError.
       The orchestrator collapses both to Unauthorized so the API never acts
       as an oracle for "expired" vs "forged".

Layer rule: no imports from api/ or core/. Secrets and TTLs are passed in by
the caller; this module reads no configuration.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt
from jose.exceptions import ExpiredSignatureError

from auth.models import RoleCode, TokenClaims, TokenType

_ALGORITHM = "HS256"
CLAIMS_VERSION = 1
_CLAIM_KEYS = frozenset({"sub", "role", "typ", "ver", "jti", "iat", "exp"})


class TokenError(Exception):
    """Base class for token verification failures. Never shown to callers verbatim."""


class TokenExpiredError(TokenError):
    pass


class TokenInvalidError(TokenError):
    pass


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def sign_token(
    sub: str,
    role: RoleCode,
    secret: str,
    ttl: timedelta,
    token_type: TokenType,
    now: datetime | None = None,
) -> str:
    """Encode a signed JWT carrying {sub, role} plus issued-at and expiry.

    Args:
        sub:        Identity id.
        role:       Role code of the identity at issue time.
        secret:     Signing secret for this token class.
        ttl:        Lifetime; exp = iat + ttl.
        token_type: "access" or "refresh"; checked again on verify.
        now:        Issue time. Defaults to the current UTC time.
    """
    if not secret:
        raise ValueError("signing secret is empty")
    issued = now or datetime.now(timezone.utc)
    payload = {
        "sub": sub,
        "role": RoleCode(role).value,
        "typ": token_type.value,
        "ver": CLAIMS_VERSION,
        "jti": secrets.token_urlsafe(16),
        "iat": int(issued.timestamp()),
        "exp": int((issued + ttl).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def verify_token(token: str, secret: str, expected_type: TokenType) -> TokenClaims:
    """Verify signature, expiry and claim shape. Return the typed claims.

    Raises:
        TokenExpiredError: signature is valid but exp has passed.
        TokenInvalidError: anything else -- bad signature, malformed token,
                           wrong token type or unexpected claim shape.
    """
    if not isinstance(token, str) or not token:
        raise TokenInvalidError("token is empty")
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[_ALGORITHM],
            options={"require_exp": True, "require_iat": True, "require_sub": True, "require_jti": True},
        )
    except ExpiredSignatureError as exc:
        raise TokenExpiredError("token has expired") from exc
    except JWTError as exc:
        raise TokenInvalidError(f"token rejected: {exc.__class__.__name__}") from exc
    return _claims_from_payload(payload, expected_type)


def _claims_from_payload(payload: dict, expected_type: TokenType) -> TokenClaims:
    if set(payload) != _CLAIM_KEYS:
        raise TokenInvalidError("unexpected claim set")
    # bool is an int subclass; True must not pass for 1.
    if type(payload["ver"]) is not int or payload["ver"] != CLAIMS_VERSION:
        raise TokenInvalidError("unsupported claims version")
    if payload["typ"] != expected_type.value:
        raise TokenInvalidError("wrong token type")
    sub = payload["sub"]
    if not isinstance(sub, str) or not sub:
        raise TokenInvalidError("missing subject")
    try:
        role = RoleCode(payload["role"])
    except ValueError as exc:
        raise TokenInvalidError("unknown role") from exc
    iat, exp, jti = payload["iat"], payload["exp"], payload["jti"]
    if type(iat) is not int or type(exp) is not int or not isinstance(jti, str):
        raise TokenInvalidError("malformed registered claims")
    return TokenClaims(sub=sub, role=role, typ=expected_type, jti=jti, iat=iat, exp=exp)
