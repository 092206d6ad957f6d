"""
auth/dependencies.py -- FastAPI Depends() helpers for the authentication and
authorization gates.

Gate chain for a protected route:
    authenticate(request)         -> AuthContext   (401 on any failure)
    authorize("posts.update")     -> AuthContext   (403 if permission missing)

The identity travels as the frozen AuthContext value returned by
authenticate(); nothing is written onto the request object.

Failures are raised as auth.errors types and translated to 401/403 by the
exception handlers in api/main.py.

Layer rule: no imports from api/ or posts/. This module may import from
fastapi because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import Depends, Request

from auth.errors import Forbidden, InvalidToken, Unauthenticated
from auth.models import AuthContext
from auth.store import UserStore
from auth.tokens import TokenService

logger = logging.getLogger("rbacapi.auth")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


def authenticate(request: Request) -> AuthContext:
    """Resolve the bearer token to an active user with role and permissions.

    Expired and tampered tokens produce the same "Invalid token." error; the
    distinction is only logged. The store is consulted on every request, so
    deactivating a user revokes access even while their token is unexpired.
    """
    token = _bearer_token(request)
    if token is None:
        raise Unauthenticated("No token provided.")

    tokens: TokenService = request.app.state.tokens
    user_store: UserStore = request.app.state.user_store

    try:
        user_id = tokens.verify(token)
    except InvalidToken as exc:
        logger.debug("Rejected token (%s): %s", type(exc).__name__, exc)
        raise Unauthenticated("Invalid token.") from exc

    row = user_store.get_active_by_id_with_role(user_id)
    if row is None:
        raise Unauthenticated("Invalid token.")
    return AuthContext.from_user_with_role(row)


def check_permission(ctx: AuthContext | None, permission: str) -> AuthContext:
    """Pure authorization decision: exact-string membership in the role's permission set."""
    if ctx is None:
        raise Unauthenticated("Authentication required.")
    if not ctx.can(permission):
        raise Forbidden("Insufficient permissions.")
    return ctx


def authorize(permission: str) -> Callable[..., AuthContext]:
    """Build a dependency that requires `permission`.

    Use as a FastAPI dependency:
        @router.delete("/posts/{post_id}")
        def route(ctx: AuthContext = Depends(authorize("posts.delete"))): ...
    """

    def _require_permission(ctx: AuthContext = Depends(authenticate)) -> AuthContext:
        return check_permission(ctx, permission)

    _require_permission.__name__ = f"require_{permission.replace('.', '_')}"
    return _require_permission
