"""
auth/users.py -- Administrative user management (list, read, update, delete).

Route-level permission checks (users.read / users.update / users.delete) run
in the authorization gate before any method here is called. The guards in
this module are the business rules that apply on top of a granted permission,
e.g. an admin holding users.delete still cannot delete their own account.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import Conflict, NotFound, ValidationFailed
from auth.models import AuthContext, Page, UserWithRole
from auth.store import UserStore

logger = logging.getLogger("rbacapi.auth")

_UPDATABLE = ("email", "first_name", "last_name", "role_id", "is_active")


class UserAdminService:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    def list_users(self, search: str | None = None, page: int = 1, limit: int = 10) -> Page:
        """Return one page of users (UserWithRole items), newest first."""
        rows = self.store.list_users(search=search, limit=limit, offset=(page - 1) * limit)
        return Page(items=rows, page=page, limit=limit, total=self.store.count_users(search=search))

    def get_user(self, user_id: int) -> UserWithRole:
        row = self.store.get_by_id_with_role(user_id)
        if row is None:
            raise NotFound("User not found.")
        return row

    def update_user(self, user_id: int, **fields) -> UserWithRole:
        """Apply the non-None fields among email, first_name, last_name, role_id, is_active."""
        updates = {k: v for k, v in fields.items() if k in _UPDATABLE and v is not None}
        if self.store.get_by_id(user_id) is None:
            raise NotFound("User not found.")
        if not updates:
            raise ValidationFailed("No valid fields to update.")
        if "role_id" in updates and self.store.get_role(updates["role_id"]) is None:
            raise ValidationFailed("Referenced role does not exist.")
        if "email" in updates:
            existing = self.store.get_by_email(updates["email"])
            if existing is not None and existing.id != user_id:
                raise Conflict("Email already exists.")

        try:
            self.store.update_user(user_id, **updates)
        except IntegrityError as exc:
            raise Conflict("Email already exists.") from exc
        logger.info("Updated user id=%d fields=%s", user_id, sorted(updates))
        return self.get_user(user_id)

    def delete_user(self, actor: AuthContext, user_id: int) -> None:
        if user_id == actor.user_id:
            raise ValidationFailed("Cannot delete your own account.")
        if not self.store.delete_user(user_id):
            raise NotFound("User not found.")
        logger.info("User id=%d deleted user id=%d", actor.user_id, user_id)
