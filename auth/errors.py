"""
auth/errors.py -- Domain error taxonomy for the session core.

Every failure the core reports to a caller is one of these classes. Each
carries a stable HTTP status code and error name; the API layer renders them
as {statusCode, error, message} without adding detail.

Messages are written for end users. They must never contain secrets, hashes,
token material or driver errors.

Unauthorized deliberately covers bad credentials, unknown accounts and every
invalid/expired/rotated/revoked token alike, so callers cannot probe for
account existence or token state.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for errors that cross the core boundary."""

    status_code: int = 400
    error: str = "Bad Request"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"statusCode": self.status_code, "error": self.error, "message": self.message}


class BadRequest(AuthError):
    """Input passed shape validation but violates a business rule (password policy)."""

    status_code = 400
    error = "Bad Request"


class Unauthorized(AuthError):
    status_code = 401
    error = "Unauthorized"


class Forbidden(AuthError):
    """Identity confirmed but not allowed: disabled account or insufficient role."""

    status_code = 403
    error = "Forbidden"


class NotFound(AuthError):
    status_code = 404
    error = "Not Found"


class Conflict(AuthError):
    status_code = 409
    error = "Conflict"


class InternalError(AuthError):
    """Operator-facing defect: missing configuration or unseeded default role."""

    status_code = 500
    error = "Internal Server Error"


class ConfigurationError(InternalError):
    """Required configuration is missing. Raised at construction time, not per request."""
