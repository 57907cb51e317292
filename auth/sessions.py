"""
auth/sessions.py -- Session Issuer: mint a token pair and persist the refresh fingerprint.

Every call to issue() is a full rotation. The new refresh token's bcrypt
fingerprint overwrites the identity's single refresh slot, which makes any
previously issued refresh token unusable regardless of its own remaining
lifetime. There is no revocation list; the overwrite is the revocation.

The refresh token is signed independently of the access token, with its own
secret and TTL. It is not derived from the access token.

Known limitation: two concurrent refresh() calls presenting the same live
token can both pass verification before either writes; the last writer's
token wins and the other freshly issued token is dead on its next use.
Closing this needs a compare-and-swap UPDATE on refresh_token_hash.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from auth.models import Identity, TokenPair, TokenType
from auth.passwords import hash_token
from auth.store import CredentialStore
from auth.tokens import sign_token
from core.config import Settings

logger = logging.getLogger("scribe.auth")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionIssuer:
    """Mints access/refresh pairs and records the refresh fingerprint.

    Args:
        settings: Immutable configuration (secrets, TTLs, bcrypt cost).
        store:    Where the refresh fingerprint is persisted.
        clock:    Returns the current UTC time. Injectable for tests.
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._settings = settings
        self._store = store
        self._clock = clock

    def issue(self, identity: Identity) -> TokenPair:
        """Sign a fresh pair for the identity and replace its stored refresh state."""
        if not identity.id:
            raise ValueError("cannot issue a session for an unsaved identity")
        now = self._clock()
        access_token = sign_token(
            identity.id,
            identity.role.code,
            self._settings.jwt_secret,
            self._settings.access_ttl,
            TokenType.ACCESS,
            now=now,
        )
        refresh_token = sign_token(
            identity.id,
            identity.role.code,
            self._settings.jwt_refresh_secret,
            self._settings.refresh_ttl,
            TokenType.REFRESH,
            now=now,
        )

        # Hash before touching the store; bcrypt is the slow part.
        fingerprint = hash_token(refresh_token, rounds=self._settings.bcrypt_salt_rounds)
        expires_at = now + self._settings.refresh_store_ttl
        updated = self._store.update_refresh_state(identity.id, fingerprint, expires_at)
        if updated == 0:
            logger.warning("Refresh state not stored: identity %s no longer exists", identity.id)
        else:
            logger.info("Issued session for identity %s (refresh valid until %s)", identity.id, expires_at.isoformat())
        return TokenPair(access_token=access_token, refresh_token=refresh_token)
