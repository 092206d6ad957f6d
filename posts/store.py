"""
posts/store.py -- SQLAlchemy Core persistence layer for posts.

Pattern: Repository + Data Mapper (same as auth/store.py).

PostStore shares the engine created by auth.store.UserStore: posts.author_id
references users.id with ON DELETE CASCADE, so both tables must live in the
same database. UserStore must be constructed first -- it creates the users
table and enables SQLite foreign key enforcement on every connection.

_users below is a read-only projection of the users table, declared here so
the foreign key resolves and list queries can join author names. PostStore
only ever creates the posts table.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine

from posts.models import DRAFT, Post

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True),
    Column("email", String(255)),
    Column("first_name", String(100)),
    Column("last_name", String(100)),
)

_posts = Table(
    "posts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("title", String(255), nullable=False),
    Column("content", Text, nullable=False),
    Column("author_id", Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("status", String(20), nullable=False, server_default=DRAFT, index=True),
    Column("published_at", String(32)),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_UPDATABLE = {"title", "content", "status", "published_at"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _with_author():
    return select(
        _posts,
        _users.c.first_name.label("author_first_name"),
        _users.c.last_name.label("author_last_name"),
        _users.c.email.label("author_email"),
    ).select_from(_posts.outerjoin(_users, _posts.c.author_id == _users.c.id))


def _filters(status: str | None, author_id: int | None) -> list:
    criteria = []
    if status:
        criteria.append(_posts.c.status == status)
    if author_id is not None:
        criteria.append(_posts.c.author_id == author_id)
    return criteria


class PostStore:
    """Repository for Post entities.

    Usage:
        user_store = UserStore(db_url)
        posts = PostStore(user_store.engine)
        post = posts.create_post(Post(title="Hello", content="...", author_id=1))
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine, tables=[_posts])

    def create_post(self, post: Post) -> Post:
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _posts.insert().values(
                    title=post.title,
                    content=post.content,
                    author_id=post.author_id,
                    status=post.status,
                    published_at=post.published_at,
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            post_id = result.inserted_primary_key[0]
        return self.get_post(post_id)

    def get_post(self, post_id: int) -> Post | None:
        with self.engine.connect() as conn:
            row = conn.execute(_with_author().where(_posts.c.id == post_id)).fetchone()
        return _row_to_post(row) if row is not None else None

    def list_posts(
        self,
        status: str | None = None,
        author_id: int | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Post]:
        """Return posts newest first, optionally filtered by status and/or author."""
        query = _with_author().where(*_filters(status, author_id))
        query = query.order_by(_posts.c.created_at.desc(), _posts.c.id.desc())
        if limit is not None:
            query = query.limit(limit).offset(offset)
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_post(r) for r in rows]

    def count_posts(self, status: str | None = None, author_id: int | None = None) -> int:
        query = select(func.count()).select_from(_posts).where(*_filters(status, author_id))
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def update_post(self, post_id: int, **fields) -> bool:
        """Update title, content, status and/or published_at. Returns False if not found."""
        unknown = set(fields) - _UPDATABLE
        if unknown:
            raise ValueError(f"Unknown post fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_posts.update().where(_posts.c.id == post_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_post(self, post_id: int) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_posts.delete().where(_posts.c.id == post_id))
            conn.commit()
        return result.rowcount > 0


def _row_to_post(row) -> Post:
    return Post(
        id=row.id,
        title=row.title,
        content=row.content,
        author_id=row.author_id,
        status=row.status,
        published_at=row.published_at,
        created_at=row.created_at,
        updated_at=row.updated_at,
        author_first_name=row.author_first_name,
        author_last_name=row.author_last_name,
        author_email=row.author_email,
    )
