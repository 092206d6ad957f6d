"""
auth/tokens.py -- Password hashing and bearer token issuance/verification.

Security design decisions:
  Passwords: bcrypt directly (no passlib wrapper) with a fixed cost factor
       taken from Settings.bcrypt_rounds (12 in production). The _DUMMY_HASH
       constant enables timing equalization in IdentityService.login() so
       response time does not reveal whether an email is registered [C1].

  JWT: python-jose with HS256. Tokens carry only the subject (user id), iat
       and exp -- role and permissions are re-read from the store on every
       request so deactivation and role edits take effect immediately.

  Expiry: checked here against an injectable clock, not by jose. jose treats
       exp == now as still valid, which would let a token issued with a zero
       TTL verify within the same second. A token is expired once now >= exp.

  SECRET_KEY: sourced from core.config.get_settings(). Rotating it invalidates
       every outstanding token -- there is no server-side token table.

Layer rule: no imports from api/ or posts/. Import from core/ is allowed --
core/ is the kernel and has no reverse dependencies.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

import bcrypt
from jose import JWTError, jwt

from auth.errors import TokenExpired, TokenMalformed
from core.config import Settings, get_settings

logger = logging.getLogger("rbacapi.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# bcrypt rejects (5.x) or silently truncates (4.x) input past this length.
MAX_PASSWORD_BYTES = 72

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    Callers must reject passwords longer than MAX_PASSWORD_BYTES before
    calling; the API layer enforces this on the request model.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: a malformed or empty digest simply fails verification.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("rbacapi_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a full bcrypt verification against the dummy hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Token service
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenService:
    """Issues and verifies signed, time-limited bearer tokens.

    Built once at startup from Settings and shared read-only between requests.
    Verification is purely cryptographic plus an expiry check; nothing is
    looked up server-side.

    Usage:
        tokens = TokenService.from_settings(get_settings())
        token = tokens.issue(42)
        tokens.verify(token)  # -> 42
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty secret key.")
        if expire_seconds < 0:
            raise ValueError("expire_seconds must be >= 0.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> TokenService:
        return cls(settings.secret_key, settings.token_expire_seconds)

    def issue(self, user_id: int) -> str:
        """Sign {sub, iat, exp} for the given user id.

        exp is the issue instant plus the configured TTL, kept to sub-second
        precision (RFC 7519 NumericDate allows fractions). Truncating it to a
        whole second would cut up to a second off the token's lifetime.
        """
        issued = self._clock().timestamp()
        payload = {
            "sub": str(user_id),
            "iat": int(issued),
            "exp": issued + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> int:
        """Return the subject user id.

        Raises TokenMalformed for bad signatures, undecodable input, a wrong
        algorithm or missing claims, and TokenExpired once now >= exp.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenMalformed(str(exc)) from exc

        exp = payload.get("exp")
        sub = payload.get("sub")
        if not isinstance(exp, (int, float)) or isinstance(exp, bool):
            raise TokenMalformed("Token is missing required claims.")
        if not isinstance(sub, str) or not sub.isdigit():
            raise TokenMalformed("Token is missing required claims.")
        if self._clock().timestamp() >= exp:
            raise TokenExpired("Token has expired.")
        return int(sub)
