"""
auth/errors.py -- Typed failures raised by the auth core and its siblings.

Every error carries the HTTP status and machine-readable code it maps to.
The translation to a response happens once, in the api/main.py exception
handler -- services and dependencies only raise.

Token failures (InvalidToken and its sub-kinds) are internal to the token
service. The authentication gate converts them to Unauthenticated so callers
never learn whether a token was expired or tampered with.
"""

from __future__ import annotations


class AccessError(Exception):
    """Base class for domain failures that map to a 4xx response."""

    status_code: int = 400
    code: str = "bad_request"
    default_message: str = "Request failed."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Unauthenticated(AccessError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required."


class InvalidCredentials(AccessError):
    """Bad login. Same message for unknown email, inactive account and wrong password."""

    status_code = 401
    code = "invalid_credentials"
    default_message = "Invalid credentials."


class Forbidden(AccessError):
    status_code = 403
    code = "forbidden"
    default_message = "Insufficient permissions."


class Conflict(AccessError):
    status_code = 400
    code = "conflict"
    default_message = "Resource already exists."


class RoleInUse(AccessError):
    status_code = 400
    code = "role_in_use"
    default_message = "Cannot delete role with assigned users."


class ValidationFailed(AccessError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed."


class NotFound(AccessError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found."


# ---------------------------------------------------------------------------
# Token verification failures
# ---------------------------------------------------------------------------


class InvalidToken(Exception):
    """Raised by TokenService.verify(). Never reaches the HTTP layer directly."""


class TokenExpired(InvalidToken):
    pass


class TokenMalformed(InvalidToken):
    pass
