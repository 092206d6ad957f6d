"""
posts/service.py -- Post workflows: create, edit, publish, delete.

Route handlers have already passed the authorization gate for the relevant
posts.* permission. The ownership checks here are the second layer: a caller
may always edit or delete their own post, and may touch someone else's only
when their role grants posts.update / posts.delete.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from auth.errors import Forbidden, NotFound
from auth.models import AuthContext, Page
from posts.models import DRAFT, PUBLISHED, Post
from posts.store import PostStore

logger = logging.getLogger("rbacapi.posts")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PostService:
    def __init__(self, store: PostStore) -> None:
        self.store = store

    def list_posts(
        self,
        status: str | None = None,
        author_id: int | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> Page:
        """Return one page of posts, newest first, with the total match count."""
        posts = self.store.list_posts(status=status, author_id=author_id, limit=limit, offset=(page - 1) * limit)
        total = self.store.count_posts(status=status, author_id=author_id)
        return Page(items=posts, page=page, limit=limit, total=total)

    def list_own_posts(self, ctx: AuthContext, status: str | None = None, page: int = 1, limit: int = 10) -> Page:
        return self.list_posts(status=status, author_id=ctx.user_id, page=page, limit=limit)

    def get_post(self, post_id: int) -> Post:
        post = self.store.get_post(post_id)
        if post is None:
            raise NotFound("Post not found.")
        return post

    def create_post(self, ctx: AuthContext, title: str, content: str, status: str = DRAFT) -> Post:
        post = self.store.create_post(
            Post(
                title=title,
                content=content,
                author_id=ctx.user_id,
                status=status,
                published_at=_now_iso() if status == PUBLISHED else None,
            )
        )
        logger.info("User id=%d created post id=%d (%s)", ctx.user_id, post.id, post.status)
        return post

    def update_post(
        self,
        ctx: AuthContext,
        post_id: int,
        title: str | None = None,
        content: str | None = None,
        status: str | None = None,
    ) -> Post:
        """Edit a post.

        published_at is stamped on the first transition to published, kept on
        later edits of a published post, and cleared when moved back to draft.
        """
        post = self.get_post(post_id)
        if post.author_id != ctx.user_id and not ctx.can("posts.update"):
            raise Forbidden("You can only update your own posts.")

        updates: dict = {}
        if title is not None:
            updates["title"] = title
        if content is not None:
            updates["content"] = content
        if status is not None:
            updates["status"] = status
            if status == PUBLISHED:
                updates["published_at"] = post.published_at if post.status == PUBLISHED else _now_iso()
            else:
                updates["published_at"] = None
        if updates:
            self.store.update_post(post_id, **updates)
        return self.get_post(post_id)

    def set_published(self, post_id: int, publish: bool) -> Post:
        updated = self.store.update_post(
            post_id,
            status=PUBLISHED if publish else DRAFT,
            published_at=_now_iso() if publish else None,
        )
        if not updated:
            raise NotFound("Post not found.")
        return self.get_post(post_id)

    def delete_post(self, ctx: AuthContext, post_id: int) -> None:
        post = self.get_post(post_id)
        if post.author_id != ctx.user_id and not ctx.can("posts.delete"):
            raise Forbidden("You can only delete your own posts.")
        self.store.delete_post(post_id)
        logger.info("User id=%d deleted post id=%d", ctx.user_id, post_id)
