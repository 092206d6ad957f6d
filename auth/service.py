"""
auth/service.py -- Registration, login and current-user lookup.

IdentityService is the only component in the auth core with multi-step
business logic. Each call is a single attempt:

    Received -> Validated -> store lookup -> credential check -> Issued | Rejected

Nothing is retried here; transient store failures propagate as
SQLAlchemyError and become a 500 at the HTTP boundary.

Enumeration resistance [C1]: login() raises the same InvalidCredentials for
an unknown email, an inactive account and a wrong password, and always runs
one bcrypt verification so the three cases take the same time.

Layer rule: no imports from api/ or posts/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import Conflict, InvalidCredentials, ValidationFailed
from auth.models import AuthContext, AuthResult, User, UserSummary
from auth.store import UserStore
from auth.tokens import MAX_PASSWORD_BYTES, TokenService, burn_password_check, hash_password, verify_password

logger = logging.getLogger("rbacapi.auth")

DEFAULT_ROLE_NAME = "user"


class IdentityService:
    """Orchestrates register and login against an injected store and token service."""

    def __init__(self, store: UserStore, tokens: TokenService, default_role: str = DEFAULT_ROLE_NAME) -> None:
        self.store = store
        self.tokens = tokens
        self.default_role = default_role

    def register(
        self,
        email: str,
        password: str,
        first_name: str,
        last_name: str,
        role_id: int | None = None,
    ) -> AuthResult:
        """Create an account and return a token for it.

        The get_by_email() pre-check only short-circuits the common case. The
        UNIQUE constraint on users.email is what actually prevents duplicates
        under concurrent registration, so IntegrityError maps to the same
        Conflict when the email turns out to be taken, and to ValidationFailed
        when the chosen role vanished between lookup and insert.
        """
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationFailed(f"Password must be at most {MAX_PASSWORD_BYTES} bytes.")
        if self.store.get_by_email(email) is not None:
            raise Conflict("User already exists with this email.")

        password_hash = hash_password(password)

        if role_id is None:
            default_role = self.store.get_role_by_name(self.default_role)
            # No synthesized fallback: the user is created without a role.
            role_id = default_role.id if default_role is not None else None
            if default_role is None:
                logger.warning("Default role %r missing; registering %s without a role", self.default_role, email)
        elif self.store.get_role(role_id) is None:
            raise ValidationFailed("Referenced role does not exist.")

        try:
            user = self.store.create_user(
                User(
                    email=email,
                    password_hash=password_hash,
                    first_name=first_name,
                    last_name=last_name,
                    role_id=role_id,
                )
            )
        except IntegrityError as exc:
            # UNIQUE(email) and FOREIGN KEY(role_id) both land here; the role
            # may have been deleted after the lookup above.
            if self.store.get_by_email(email) is not None:
                raise Conflict("User already exists with this email.") from exc
            raise ValidationFailed("Referenced role does not exist.") from exc

        token = self.tokens.issue(user.id)
        logger.info("Registered user id=%d email=%s", user.id, user.email)
        return AuthResult(
            token=token,
            user=UserSummary(
                id=user.id,
                email=user.email,
                first_name=user.first_name,
                last_name=user.last_name,
            ),
        )

    def login(self, email: str, password: str) -> AuthResult:
        """Verify credentials and return a token plus role and permissions.

        Do NOT split the lookup and the password check into separate error
        paths -- both must raise the identical InvalidCredentials.
        """
        row = self.store.get_active_by_email_with_role(email)
        if row is None:
            burn_password_check(password)
            logger.warning("Failed login for %s", email)
            raise InvalidCredentials()
        if not verify_password(password, row.user.password_hash or ""):
            logger.warning("Failed login for %s", email)
            raise InvalidCredentials()

        # Advisory: a failed timestamp write must not cost the user their token.
        try:
            self.store.update_last_login(row.user.id)
        except SQLAlchemyError:
            logger.warning("Could not record last_login for user id=%d", row.user.id, exc_info=True)

        token = self.tokens.issue(row.user.id)
        logger.info("User id=%d logged in", row.user.id)
        return AuthResult(
            token=token,
            user=UserSummary(
                id=row.user.id,
                email=row.user.email,
                first_name=row.user.first_name,
                last_name=row.user.last_name,
                role=row.role_name,
                permissions=sorted(row.permissions),
            ),
        )

    def get_current_user(self, ctx: AuthContext) -> UserSummary:
        return UserSummary(
            id=ctx.user_id,
            email=ctx.email,
            first_name=ctx.first_name,
            last_name=ctx.last_name,
            role=ctx.role_name,
            permissions=sorted(ctx.permissions),
        )
