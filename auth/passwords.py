"""
auth/passwords.py -- Password and bearer-token hashing (bcrypt).

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper). The digest is
       self-describing -- "$2b$<cost>$<salt><hash>" -- so verification needs
       no side channel for the salt or cost factor. The cost factor comes from
       Settings.bcrypt_salt_rounds and is passed in by the caller.

  Refresh tokens: stored at rest the same way passwords are, so a fingerprint
       leaked from a backup cannot be replayed. bcrypt only consumes the first
       72 bytes of input and bcrypt 4.1+ rejects longer input outright; a
       signed JWT is several hundred bytes. hash_token() therefore runs
       bcrypt over base64(sha256(token)), a fixed 44-byte value that covers
       the entire token.

  Timing: verify_password() against dummy_hash(rounds) lets the login path spend the
       same bcrypt work on unknown emails as on real ones.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import base64
import hashlib
import re
from functools import lru_cache

import bcrypt

from auth.errors import BadRequest

_MIN_PASSWORD_LENGTH = 8
_MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 12) -> str:
    """Return a bcrypt digest of the plaintext with a fresh random salt."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str | None) -> bool:
    """Return True if the plaintext matches the digest.

    Never raises: a mismatch, an empty digest, a malformed digest or an
    over-long input all return False.
    """
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


@lru_cache(maxsize=None)
def dummy_hash(rounds: int = 12) -> str:
    """Return a throwaway digest at the given cost, computed once per cost.

    The login path verifies against it when the email is unknown. It must use
    the same cost as real password digests or the timing differs.
    """
    return hash_password("scribe_timing_dummy", rounds=rounds)


# ---------------------------------------------------------------------------
# Bearer token fingerprints
# ---------------------------------------------------------------------------


def _prehash(token: str) -> bytes:
    return base64.b64encode(hashlib.sha256(token.encode("utf-8")).digest())


def hash_token(token: str, rounds: int = 12) -> str:
    """Return a bcrypt fingerprint of a bearer token for at-rest storage."""
    return bcrypt.hashpw(_prehash(token), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_token_digest(token: str, digest: str | None) -> bool:
    """Return True if the token matches a fingerprint from hash_token(). Never raises."""
    if not digest:
        return False
    try:
        return bcrypt.checkpw(_prehash(token), digest.encode("utf-8"))
    except ValueError:
        return False


# ---------------------------------------------------------------------------
# Password policy
# ---------------------------------------------------------------------------

_POLICY_CHECKS = (
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"\d"), "a number"),
    (re.compile(r"[^A-Za-z0-9]"), "a symbol"),
)


def check_password_policy(password: str) -> None:
    """Raise BadRequest unless the password meets the registration policy.

    Policy: at least 8 characters, at most 72 UTF-8 bytes (bcrypt's input
    limit), and at least one lowercase letter, uppercase letter, digit and
    symbol.
    """
    if len(password) < _MIN_PASSWORD_LENGTH:
        raise BadRequest(f"Password must be at least {_MIN_PASSWORD_LENGTH} characters long.")
    if len(password.encode("utf-8")) > _MAX_PASSWORD_BYTES:
        raise BadRequest(f"Password must be at most {_MAX_PASSWORD_BYTES} bytes long.")
    missing = [label for pattern, label in _POLICY_CHECKS if not pattern.search(password)]
    if missing:
        raise BadRequest("Password must include " + ", ".join(missing) + ".")
