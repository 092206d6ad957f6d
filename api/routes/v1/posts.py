"""
api/routes/v1/posts.py -- Post endpoints, each gated by one posts.* permission.

Routes:
  GET    /api/v1/posts                   -- list, ?status=&author_id=&page=&limit=  (posts.read)
  GET    /api/v1/posts/my/posts          -- caller's own posts, paginated           (posts.read)
  GET    /api/v1/posts/{id}              -- detail                                  (posts.read)
  POST   /api/v1/posts                   -- create                                  (posts.create)
  PUT    /api/v1/posts/{id}              -- edit                                    (posts.update)
  PATCH  /api/v1/posts/{id}/publish      -- {"publish": bool} toggles status        (posts.publish)
  DELETE /api/v1/posts/{id}              -- delete                                  (posts.delete)

/posts/my/posts is registered before /posts/{post_id} so "my" is never parsed
as an id.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import (
    MessageResponse,
    Pagination,
    PostListResponse,
    PostResponse,
    PostStatusEnum,
    PostWrite,
    PublishToggle,
)
from auth.dependencies import authorize
from auth.models import AuthContext, Page
from posts.models import DRAFT
from posts.service import PostService

router = APIRouter()

PageParam = Annotated[int, Query(ge=1)]
LimitParam = Annotated[int, Query(ge=1, le=100)]


def _posts(request: Request) -> PostService:
    return request.app.state.posts


def _listing(result: Page) -> PostListResponse:
    return PostListResponse(
        posts=[PostResponse.from_post(p) for p in result.items],
        pagination=Pagination.from_page(result),
    )


@router.get("/posts", response_model=PostListResponse, dependencies=[Depends(authorize("posts.read"))])
def list_posts(
    request: Request,
    status: Optional[PostStatusEnum] = None,
    author_id: Optional[int] = None,
    page: PageParam = 1,
    limit: LimitParam = 10,
) -> PostListResponse:
    result = _posts(request).list_posts(
        status=status.value if status else None,
        author_id=author_id,
        page=page,
        limit=limit,
    )
    return _listing(result)


@router.get("/posts/my/posts", response_model=PostListResponse)
def list_my_posts(
    request: Request,
    status: Optional[PostStatusEnum] = None,
    page: PageParam = 1,
    limit: LimitParam = 10,
    ctx: AuthContext = Depends(authorize("posts.read")),
) -> PostListResponse:
    result = _posts(request).list_own_posts(ctx, status=status.value if status else None, page=page, limit=limit)
    return _listing(result)


@router.get("/posts/{post_id}", response_model=PostResponse, dependencies=[Depends(authorize("posts.read"))])
def get_post(request: Request, post_id: int) -> PostResponse:
    return PostResponse.from_post(_posts(request).get_post(post_id))


@router.post("/posts", response_model=PostResponse, status_code=201)
def create_post(
    request: Request,
    body: PostWrite,
    ctx: AuthContext = Depends(authorize("posts.create")),
) -> PostResponse:
    status = body.status.value if body.status else DRAFT
    return PostResponse.from_post(_posts(request).create_post(ctx, body.title, body.content, status))


@router.put("/posts/{post_id}", response_model=PostResponse)
def update_post(
    request: Request,
    post_id: int,
    body: PostWrite,
    ctx: AuthContext = Depends(authorize("posts.update")),
) -> PostResponse:
    post = _posts(request).update_post(
        ctx,
        post_id,
        title=body.title,
        content=body.content,
        status=body.status.value if body.status else None,
    )
    return PostResponse.from_post(post)


@router.patch(
    "/posts/{post_id}/publish",
    response_model=PostResponse,
    dependencies=[Depends(authorize("posts.publish"))],
)
def toggle_publish(request: Request, post_id: int, body: Optional[PublishToggle] = None) -> PostResponse:
    """Publish, or with {"publish": false} move back to draft. Both directions need posts.publish."""
    publish = body.publish if body is not None else True
    return PostResponse.from_post(_posts(request).set_published(post_id, publish))


@router.delete("/posts/{post_id}", response_model=MessageResponse)
def delete_post(
    request: Request,
    post_id: int,
    ctx: AuthContext = Depends(authorize("posts.delete")),
) -> MessageResponse:
    _posts(request).delete_post(ctx, post_id)
    return MessageResponse(message="Post deleted successfully.")
