"""
auth/service.py -- Auth Orchestrator: login, register, refresh, logout, me.

Business rules live here; signing, hashing and storage are delegated to the
leaf modules. Every failure leaves this module as an AuthError subclass:

  Unauthorized -- unknown email, wrong password, and any invalid, expired,
                  rotated or revoked refresh token. One message for all of
                  them, so callers cannot tell which case they hit.
  Forbidden    -- account disabled (only after identity is established).
  Conflict     -- duplicate email, whether caught by the pre-check or by the
                  UNIQUE constraint when two registrations race.
  InternalError -- missing signing secret or unseeded default role.
  NotFound     -- me() for an identity that no longer exists.

The specific reason a refresh token was rejected is logged, never returned.

Refresh-token lifecycle, per issued token:
  ACTIVE   -- fingerprint matches the stored one, stored expiry in the future,
              identity enabled.
  ROTATED  -- a newer issue() overwrote the fingerprint. Permanent.
  EXPIRED  -- stored expiry <= now.
  REVOKED  -- logout() cleared the slot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime

from auth.errors import BadRequest, ConfigurationError, Conflict, Forbidden, InternalError, Unauthorized
from auth.models import (
    AuthResult,
    Identity,
    IdentityView,
    ProfileView,
    Role,
    RoleCode,
    TokenClaims,
    TokenPair,
    TokenType,
)
from auth.passwords import check_password_policy, dummy_hash, hash_password, verify_password, verify_token_digest
from auth.profiles import ProfileService
from auth.sessions import SessionIssuer, utcnow
from auth.store import CredentialStore, UniqueViolation, UnknownRoleCode
from auth.tokens import TokenError, verify_token
from core.config import Settings

logger = logging.getLogger("scribe.auth")

_BAD_CREDENTIALS = "Invalid credentials."
_BAD_TOKEN = "Invalid or expired token."
_DISABLED = "User account is disabled."
_EMAIL_TAKEN = "Email already registered."
_NO_DEFAULT_ROLE = "Default role is not configured. Contact the administrator."
_MAX_NAME_LENGTH = 80


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Session lifecycle operations over a CredentialStore.

    Construction fails with ConfigurationError when either signing secret is
    missing, so a misconfigured process dies at startup instead of failing
    the first request.
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        profiles: ProfileService | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if not settings.jwt_secret:
            raise ConfigurationError("JWT_SECRET is not defined.")
        if not settings.jwt_refresh_secret:
            raise ConfigurationError("JWT_REFRESH_SECRET is not defined.")
        self._settings = settings
        self._store = store
        self._profiles = profiles or ProfileService(store)
        self._clock = clock
        self._issuer = SessionIssuer(settings, store, clock=clock)
        # Pay for the timing dummy now, not on the first unknown-email login.
        dummy_hash(settings.bcrypt_salt_rounds)

    # ------------------------------------------------------------------
    # Login / register
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and issue a fresh session.

        Unknown email and wrong password raise the same Unauthorized. A
        disabled account raises Forbidden before the password is checked.
        """
        identity = self._store.find_by_email(normalize_email(email), include_password_hash=True)
        if identity is None:
            # Spend the same bcrypt work as a real check.
            verify_password(password, dummy_hash(self._settings.bcrypt_salt_rounds))
            logger.info("Login failed: unknown email")
            raise Unauthorized(_BAD_CREDENTIALS)
        if not identity.is_active:
            logger.info("Login refused: identity %s is disabled", identity.id)
            raise Forbidden(_DISABLED)
        if not verify_password(password, identity.password_hash):
            logger.info("Login failed: bad password for identity %s", identity.id)
            raise Unauthorized(_BAD_CREDENTIALS)

        tokens = self._issuer.issue(identity)
        return AuthResult(tokens=tokens, user=IdentityView.from_identity(identity))

    def register(self, name: str, email: str, password: str) -> AuthResult:
        """Create an identity with the default role and issue its first session."""
        email = normalize_email(email)
        name = name.strip()
        if not name:
            raise BadRequest("Name must not be empty.")
        if len(name) > _MAX_NAME_LENGTH:
            raise BadRequest(f"Name must be at most {_MAX_NAME_LENGTH} characters long.")
        check_password_policy(password)

        # Fast path only. The UNIQUE constraint below is the real arbiter.
        if self._store.exists_by_email(email):
            raise Conflict(_EMAIL_TAKEN)

        role = self.resolve_default_role()
        password_hash = hash_password(password, rounds=self._settings.bcrypt_salt_rounds)
        try:
            identity = self._store.insert(
                Identity(name=name, email=email, role=role, password_hash=password_hash, is_active=True)
            )
        except UniqueViolation:
            logger.info("Registration lost the race for an existing email")
            raise Conflict(_EMAIL_TAKEN) from None

        logger.info("Registered identity %s with role %s", identity.id, role.code.value)
        tokens = self._issuer.issue(identity)
        return AuthResult(tokens=tokens, user=IdentityView.from_identity(identity))

    def resolve_default_role(self) -> Role:
        """Return the role new registrations get: by code first, then by display name.

        Raises InternalError if neither lookup yields a usable role. The API
        runs this at startup so an unseeded database never serves traffic.
        """
        role = self._store.find_role_by_code(self._settings.default_role_code)
        if role is None:
            try:
                role = self._store.find_role_by_name(self._settings.default_role_name)
            except UnknownRoleCode:
                logger.error(
                    "Role named %r has a code outside %s",
                    self._settings.default_role_name,
                    ", ".join(code.value for code in RoleCode),
                )
                raise InternalError(_NO_DEFAULT_ROLE) from None
        if role is None:
            logger.error(
                "Default role %s not found -- run `python main.py seed-roles`",
                self._settings.default_role_code,
            )
            raise InternalError(_NO_DEFAULT_ROLE)
        return role

    # ------------------------------------------------------------------
    # Refresh / logout
    # ------------------------------------------------------------------

    def refresh(self, refresh_token: str) -> TokenPair:
        """Exchange a live refresh token for a brand-new pair (full rotation)."""
        if not self._settings.jwt_refresh_secret:
            raise InternalError("Token service is not configured.")

        try:
            claims = verify_token(refresh_token, self._settings.jwt_refresh_secret, TokenType.REFRESH)
        except TokenError as exc:
            logger.info("Refresh rejected: %s", exc)
            raise Unauthorized(_BAD_TOKEN) from None

        if not claims.sub:
            raise Unauthorized(_BAD_TOKEN)

        identity = self._store.find_by_id(claims.sub, include_refresh_hash=True)
        if identity is None:
            logger.info("Refresh rejected: unknown subject")
            raise Unauthorized(_BAD_TOKEN)
        if not identity.is_active:
            logger.info("Refresh refused: identity %s is disabled", identity.id)
            raise Forbidden(_DISABLED)

        expires_at = identity.refresh_token_expires_at
        if expires_at is None or expires_at <= self._clock():
            logger.info("Refresh rejected: no live refresh state for identity %s", identity.id)
            raise Unauthorized(_BAD_TOKEN)
        if not identity.refresh_token_hash:
            logger.info("Refresh rejected: no stored fingerprint for identity %s", identity.id)
            raise Unauthorized(_BAD_TOKEN)
        if not verify_token_digest(refresh_token, identity.refresh_token_hash):
            # Also the path for reuse of a rotated-out token.
            logger.warning("Refresh rejected: fingerprint mismatch for identity %s", identity.id)
            raise Unauthorized(_BAD_TOKEN)

        return self._issuer.issue(identity)

    def logout(self, identity_id: str) -> dict:
        """Clear the refresh slot. Idempotent; unknown ids are not an error.

        Access tokens already issued stay valid until their own expiry.
        """
        self._store.update_refresh_state(identity_id, None, None)
        logger.info("Logged out identity %s", identity_id)
        return {"ok": True}

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def me(self, identity_id: str) -> ProfileView:
        return self._profiles.get_sanitized_profile(identity_id)

    def authenticate_access_token(self, token: str) -> TokenClaims:
        """Verify a bearer access token. Any failure is Unauthorized."""
        try:
            return verify_token(token, self._settings.jwt_secret, TokenType.ACCESS)
        except TokenError:
            raise Unauthorized(_BAD_TOKEN) from None
