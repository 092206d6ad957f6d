"""
auth/roles.py -- Role management.

Invariant: a role cannot be deleted while any user references it. The check
is count-then-delete; users.role_id is also a foreign key, so a user assigned
concurrently between the two statements makes the delete fail with
IntegrityError instead of orphaning the user.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import Conflict, NotFound, RoleInUse
from auth.models import Role
from auth.store import UserStore

logger = logging.getLogger("rbacapi.auth")


def _dedupe(permissions: list[str]) -> list[str]:
    """Drop repeated permission strings, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for p in permissions:
        if p not in seen:
            seen.add(p)
            result.append(p)
    return result


class RoleService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def list_roles(self) -> list[Role]:
        return self.store.list_roles()

    def get_role(self, role_id: int) -> Role:
        role = self.store.get_role(role_id)
        if role is None:
            raise NotFound("Role not found.")
        return role

    def create_role(self, name: str, description: str = "", permissions: list[str] | None = None) -> Role:
        try:
            role = self.store.create_role(
                Role(name=name, description=description, permissions=_dedupe(permissions or []))
            )
        except IntegrityError as exc:
            raise Conflict("Role name already exists.") from exc
        logger.info("Created role %r with %d permissions", role.name, len(role.permissions))
        return role

    def update_role(self, role_id: int, name: str, description: str = "", permissions: list[str] | None = None) -> Role:
        try:
            updated = self.store.update_role(
                role_id,
                name=name,
                description=description,
                permissions=_dedupe(permissions or []),
            )
        except IntegrityError as exc:
            raise Conflict("Role name already exists.") from exc
        if not updated:
            raise NotFound("Role not found.")
        return self.get_role(role_id)

    def delete_role(self, role_id: int) -> None:
        if self.store.count_role_users(role_id) > 0:
            raise RoleInUse()
        try:
            deleted = self.store.delete_role(role_id)
        except IntegrityError as exc:
            raise RoleInUse() from exc
        if not deleted:
            raise NotFound("Role not found.")
        logger.info("Deleted role id=%d", role_id)
