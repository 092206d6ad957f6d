"""
posts/models.py -- Domain dataclass for posts.

Pure data container. Ownership and publish rules live in posts/service.py.
"""

from __future__ import annotations

from dataclasses import dataclass

DRAFT = "draft"
PUBLISHED = "published"


@dataclass
class Post:
    """A post written by a user.

    id is None before the record is written to the database. The author_*
    fields are filled by joined queries only.
    """

    title: str
    content: str
    author_id: int
    status: str = DRAFT  # "draft" | "published"
    published_at: str | None = None  # ISO 8601, set on publish, cleared on unpublish
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None
    author_first_name: str | None = None
    author_last_name: str | None = None
    author_email: str | None = None
