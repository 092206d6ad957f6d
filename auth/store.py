"""
auth/store.py -- SQLAlchemy Core persistence layer for users and roles.

Pattern: Repository + Data Mapper.
UserStore is the repository; _row_to_user / _row_to_role are the mappers.
Service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  users.email and roles.name carry UNIQUE constraints. They are the
  authoritative duplicate guards -- the pre-checks in the services only exist
  to produce a friendlier error on the common path. Concurrent duplicate
  inserts surface as sqlalchemy.exc.IntegrityError.

  users.role_id references roles.id. SQLite only enforces foreign keys when
  PRAGMA foreign_keys=ON is set per connection (see _configure_sqlite).

Default roles (admin, editor, author, user) are seeded idempotently on every
startup by _ensure_default_roles().

Layer rule: no imports from api/ or posts/.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import Role, User, UserWithRole
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("description", Text, nullable=False, server_default=""),
    Column("permissions", Text, nullable=False, server_default="[]"),  # JSON array of strings
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("first_name", String(100), nullable=False),
    Column("last_name", String(100), nullable=False),
    Column("role_id", Integer, ForeignKey("roles.id"), index=True),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("last_login", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

DEFAULT_ROLES: dict[str, tuple[str, list[str]]] = {
    "admin": (
        "Administrator with full access",
        [
            "users.create",
            "users.read",
            "users.update",
            "users.delete",
            "roles.create",
            "roles.read",
            "roles.update",
            "roles.delete",
            "posts.create",
            "posts.read",
            "posts.update",
            "posts.delete",
            "posts.publish",
            "posts.unpublish",
        ],
    ),
    "editor": (
        "Editor with content management access",
        [
            "users.read",
            "posts.create",
            "posts.read",
            "posts.update",
            "posts.delete",
            "posts.publish",
            "posts.unpublish",
        ],
    ),
    "author": ("Author with limited content access", ["posts.create", "posts.read", "posts.update"]),
    "user": ("Regular user with read access", ["posts.read"]),
}

# Fields update_user() accepts. Anything else is a programming error.
_USER_UPDATABLE = {"email", "first_name", "last_name", "role_id", "is_active", "password_hash"}
_ROLE_UPDATABLE = {"name", "description", "permissions"}


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _user_role_join():
    return select(_users, _roles.c.name.label("role_name"), _roles.c.permissions.label("role_permissions")).select_from(
        _users.outerjoin(_roles, _users.c.role_id == _roles.c.id)
    )


def _user_search(search: str | None) -> list:
    """WHERE criteria for a case-insensitive name/email substring search."""
    if not search:
        return []
    pattern = f"%{search.lower()}%"
    return [
        or_(
            func.lower(_users.c.first_name).like(pattern),
            func.lower(_users.c.last_name).like(pattern),
            func.lower(_users.c.email).like(pattern),
        )
    ]


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and Role entities.

    One instance is created at startup and injected into every service that
    needs it -- there is no module-level engine.

    Usage:
        store = UserStore("sqlite:///rbac.db")
        role = store.get_role_by_name("user")
        user = store.create_user(User(email="a@b.c", first_name="A", last_name="B",
                                      password_hash=hash_password("secret"), role_id=role.id))
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        _metadata.create_all(self.engine)
        self._ensure_default_roles()

    def _ensure_default_roles(self) -> None:
        """Insert any missing default role. Existing roles are never modified."""
        with self.engine.connect() as conn:
            existing = set(conn.execute(select(_roles.c.name)).scalars())
            for name, (description, permissions) in DEFAULT_ROLES.items():
                if name in existing:
                    continue
                now = _now_iso()
                conn.execute(
                    _roles.insert().values(
                        name=name,
                        description=description,
                        permissions=json.dumps(permissions),
                        created_at=now,
                        updated_at=now,
                    )
                )
            conn.commit()

    # ------------------------------------------------------------------
    # User queries
    # ------------------------------------------------------------------

    def has_users(self) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return (result or 0) > 0

    def create_user(self, user: User) -> User:
        """Insert a new user and return the stored record.

        Raises sqlalchemy.exc.IntegrityError if the email already exists or
        role_id references a missing role.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=user.email,
                    password_hash=user.password_hash,
                    first_name=user.first_name,
                    last_name=user.last_name,
                    role_id=user.role_id,
                    is_active=1 if user.is_active else 0,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            user_id = result.inserted_primary_key[0]
        return self.get_by_id(user_id)

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email regardless of active state."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_id_with_role(self, user_id: int) -> UserWithRole | None:
        """Look up a user joined with its role, regardless of active state."""
        with self.engine.connect() as conn:
            row = conn.execute(_user_role_join().where(_users.c.id == user_id)).fetchone()
        return _row_to_user_with_role(row) if row is not None else None

    def get_active_by_email_with_role(self, email: str) -> UserWithRole | None:
        """Login lookup. Inactive users are filtered out in SQL, not by the caller."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _user_role_join().where((_users.c.email == email) & (_users.c.is_active == 1))
            ).fetchone()
        return _row_to_user_with_role(row) if row is not None else None

    def get_active_by_id_with_role(self, user_id: int) -> UserWithRole | None:
        """Per-request identity lookup used by the authentication gate."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _user_role_join().where((_users.c.id == user_id) & (_users.c.is_active == 1))
            ).fetchone()
        return _row_to_user_with_role(row) if row is not None else None

    def list_users(
        self,
        search: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[UserWithRole]:
        """Return users with role names, newest first.

        search is a case-insensitive substring match against first name,
        last name and email. limit=None returns every match.
        """
        query = _user_role_join().where(*_user_search(search))
        query = query.order_by(_users.c.created_at.desc(), _users.c.id.desc())
        if limit is not None:
            query = query.limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_user_with_role(r) for r in rows]

    def count_users(self, search: str | None = None) -> int:
        """Count the users list_users() would return for the same search."""
        query = select(func.count()).select_from(_users).where(*_user_search(search))
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Accepted fields: email, first_name, last_name, role_id, is_active,
        password_hash. is_active must be passed as bool.

        Returns True if a row was updated, False if user_id was not found.
        Raises IntegrityError on duplicate email or unknown role_id.
        """
        unknown = set(fields) - _USER_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        with self.engine.connect() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(last_login=_now_iso()))
            conn.commit()

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user. Posts authored by the user cascade.

        Callers must apply the self-deletion guard before calling.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Role queries
    # ------------------------------------------------------------------

    def get_role_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_role(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def list_roles(self) -> list[Role]:
        """Return all roles with the number of users assigned to each, newest first."""
        user_count = func.count(_users.c.id).label("user_count")
        query = (
            select(_roles, user_count)
            .select_from(_roles.outerjoin(_users, _users.c.role_id == _roles.c.id))
            .group_by(_roles.c.id)
            .order_by(_roles.c.created_at.desc(), _roles.c.id.desc())
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_role(r) for r in rows]

    def create_role(self, role: Role) -> Role:
        """Insert a new role. Raises IntegrityError if the name already exists."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(
                    name=role.name,
                    description=role.description,
                    permissions=json.dumps(role.permissions),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            role_id = result.inserted_primary_key[0]
        return self.get_role(role_id)

    def update_role(self, role_id: int, **fields) -> bool:
        """Update name, description and/or permissions. Returns False if not found."""
        unknown = set(fields) - _ROLE_UPDATABLE
        if unknown:
            raise ValueError(f"Unknown role fields: {unknown!r}")
        if "permissions" in fields:
            fields["permissions"] = json.dumps(fields["permissions"])
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def count_role_users(self, role_id: int) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users).where(_users.c.role_id == role_id)).scalar()
        return result or 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role. Callers must check count_role_users() first."""
        with self.engine.connect() as conn:
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _load_permissions(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [str(p) for p in json.loads(raw)]


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        first_name=row.first_name,
        last_name=row.last_name,
        role_id=row.role_id,
        is_active=bool(row.is_active),
        last_login=row.last_login,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_user_with_role(row) -> UserWithRole:
    # role_name / role_permissions are NULL when the LEFT JOIN found no role.
    return UserWithRole(
        user=_row_to_user(row),
        role_name=row.role_name,
        permissions=frozenset(_load_permissions(row.role_permissions)),
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        description=row.description or "",
        permissions=_load_permissions(row.permissions),
        created_at=row.created_at,
        updated_at=row.updated_at,
        user_count=getattr(row, "user_count", 0) or 0,
    )
