"""
api/routes/v1/users.py -- User administration endpoints.

Routes:
  GET    /api/v1/users          -- list users, ?search=&page=&limit= (users.read)
  GET    /api/v1/users/{id}     -- user detail                    (users.read)
  PUT    /api/v1/users/{id}     -- update profile/role/active     (users.update)
  DELETE /api/v1/users/{id}     -- delete another user            (users.delete)

The self-deletion guard runs after the users.delete permission check, so a
caller without the permission gets 403 rather than the 400 guard error.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request

from api.models import MessageResponse, Pagination, UserListResponse, UserResponse, UserUpdate
from auth.dependencies import authorize
from auth.models import AuthContext
from auth.users import UserAdminService

router = APIRouter()


def _users(request: Request) -> UserAdminService:
    return request.app.state.users


@router.get("/users", response_model=UserListResponse, dependencies=[Depends(authorize("users.read"))])
def list_users(
    request: Request,
    search: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> UserListResponse:
    result = _users(request).list_users(search=search, page=page, limit=limit)
    return UserListResponse(
        users=[UserResponse.from_row(u) for u in result.items],
        pagination=Pagination.from_page(result),
    )


@router.get("/users/{user_id}", response_model=UserResponse, dependencies=[Depends(authorize("users.read"))])
def get_user(request: Request, user_id: int) -> UserResponse:
    return UserResponse.from_row(_users(request).get_user(user_id))


@router.put("/users/{user_id}", response_model=UserResponse, dependencies=[Depends(authorize("users.update"))])
def update_user(request: Request, user_id: int, body: UserUpdate) -> UserResponse:
    row = _users(request).update_user(user_id, **body.model_dump())
    return UserResponse.from_row(row)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    ctx: AuthContext = Depends(authorize("users.delete")),
) -> MessageResponse:
    _users(request).delete_user(ctx, user_id)
    return MessageResponse(message="User deleted successfully.")
