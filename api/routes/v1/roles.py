"""
api/routes/v1/roles.py -- Role management endpoints.

Routes:
  GET    /api/v1/roles        -- list roles with user counts   (roles.read)
  GET    /api/v1/roles/{id}   -- role detail                   (roles.read)
  POST   /api/v1/roles        -- create role                   (roles.create)
  PUT    /api/v1/roles/{id}   -- replace name/description/perms (roles.update)
  DELETE /api/v1/roles/{id}   -- delete unassigned role        (roles.delete)

A role with assigned users cannot be deleted (400 role_in_use).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import MessageResponse, RoleResponse, RoleWrite
from auth.dependencies import authorize
from auth.roles import RoleService

router = APIRouter()


def _roles(request: Request) -> RoleService:
    return request.app.state.roles


@router.get("/roles", response_model=list[RoleResponse], dependencies=[Depends(authorize("roles.read"))])
def list_roles(request: Request) -> list[RoleResponse]:
    return [RoleResponse.from_role(r) for r in _roles(request).list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse, dependencies=[Depends(authorize("roles.read"))])
def get_role(request: Request, role_id: int) -> RoleResponse:
    return RoleResponse.from_role(_roles(request).get_role(role_id))


@router.post(
    "/roles",
    response_model=RoleResponse,
    status_code=201,
    dependencies=[Depends(authorize("roles.create"))],
)
def create_role(request: Request, body: RoleWrite) -> RoleResponse:
    role = _roles(request).create_role(body.name, body.description, body.permissions)
    return RoleResponse.from_role(role)


@router.put("/roles/{role_id}", response_model=RoleResponse, dependencies=[Depends(authorize("roles.update"))])
def update_role(request: Request, role_id: int, body: RoleWrite) -> RoleResponse:
    role = _roles(request).update_role(role_id, body.name, body.description, body.permissions)
    return RoleResponse.from_role(role)


@router.delete("/roles/{role_id}", response_model=MessageResponse, dependencies=[Depends(authorize("roles.delete"))])
def delete_role(request: Request, role_id: int) -> MessageResponse:
    _roles(request).delete_role(role_id)
    return MessageResponse(message="Role deleted successfully.")
