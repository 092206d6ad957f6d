"""
auth/models.py -- Domain dataclasses for authentication and authorization.

Pattern: Data class (pure data container, minimal logic). Stores and services
do the work; these classes only own domain shape.

Layer rule: no imports from api/, core/, or posts/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class User:
    """A registered account.

    password_hash is a bcrypt digest and never leaves the auth package --
    UserSummary is the redacted shape handed to the HTTP layer.

    role_id is None when no role is assigned (e.g. the default "user" role
    did not exist at registration time). Such users authenticate but hold an
    empty permission set.
    """

    email: str
    first_name: str
    last_name: str
    id: int | None = None
    password_hash: str | None = None
    role_id: int | None = None
    is_active: bool = True
    last_login: str | None = None  # ISO 8601, stamped on successful login
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Role:
    """A named permission set. permissions are opaque dotted strings ("posts.update")."""

    name: str
    description: str = ""
    permissions: list[str] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    user_count: int = 0  # populated only by list queries


@dataclass
class UserWithRole:
    """Result of a users LEFT JOIN roles lookup."""

    user: User
    role_name: str | None = None
    permissions: frozenset[str] = frozenset()


@dataclass(frozen=True)
class AuthContext:
    """Identity resolved from a bearer token, threaded through the gate chain.

    Frozen so downstream dependencies cannot widen the permission set after
    authentication has resolved it.
    """

    user_id: int
    email: str
    first_name: str
    last_name: str
    role_name: str | None = None
    permissions: frozenset[str] = frozenset()

    def can(self, permission: str) -> bool:
        """Exact-string membership. No prefix or wildcard matching."""
        return permission in self.permissions

    @classmethod
    def from_user_with_role(cls, row: UserWithRole) -> AuthContext:
        return cls(
            user_id=row.user.id,
            email=row.user.email,
            first_name=row.user.first_name,
            last_name=row.user.last_name,
            role_name=row.role_name,
            permissions=frozenset(row.permissions),
        )


@dataclass(frozen=True)
class UserSummary:
    """Redacted user view. Never carries the password hash."""

    id: int
    email: str
    first_name: str
    last_name: str
    role: str | None = None
    permissions: list[str] | None = None


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful register or login."""

    token: str
    user: UserSummary


@dataclass(frozen=True)
class Page:
    """One slice of a list query plus the total row count it was cut from."""

    items: list
    page: int
    limit: int
    total: int

    @property
    def pages(self) -> int:
        return -(-self.total // self.limit)
