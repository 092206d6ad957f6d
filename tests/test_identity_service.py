"""
tests/test_identity_service.py -- Unit tests for IdentityService.register/login.

Covers:
  - register assigns the default "user" role and returns a redacted summary
  - duplicate email -> Conflict, from the pre-check and from the store constraint
  - a role deleted between lookup and insert -> ValidationFailed, not Conflict
  - missing default role leaves the user without a role
  - login returns role + permissions and a token that verifies to the user id
  - unknown email, wrong password and inactive account raise the identical error
  - last_login is stamped, and a failure to stamp it does not block login
"""

from __future__ import annotations

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError

from auth.errors import Conflict, InvalidCredentials, ValidationFailed
from auth.models import Role
from auth.service import IdentityService
from auth.store import UserStore
from auth.tokens import TokenService
from conftest import make_user


@pytest.fixture
def identity(store: UserStore, tokens: TokenService) -> IdentityService:
    return IdentityService(store, tokens)


def _register_alice(identity: IdentityService, **kwargs):
    return identity.register("alice@example.com", "secret1", "Alice", "Liddell", **kwargs)


class TestRegister:
    def test_assigns_default_role(self, identity, store):
        result = _register_alice(identity)
        user = store.get_by_id(result.user.id)
        assert user.role_id == store.get_role_by_name("user").id

    def test_summary_is_redacted(self, identity):
        result = _register_alice(identity)
        assert result.user.email == "alice@example.com"
        assert result.user.first_name == "Alice"
        assert not hasattr(result.user, "password_hash")

    def test_password_is_hashed(self, identity, store):
        _register_alice(identity)
        assert store.get_by_email("alice@example.com").password_hash != "secret1"

    def test_token_resolves_to_new_user(self, identity, tokens):
        result = _register_alice(identity)
        assert tokens.verify(result.token) == result.user.id

    def test_explicit_role(self, identity, store):
        editor = store.get_role_by_name("editor")
        result = _register_alice(identity, role_id=editor.id)
        assert store.get_by_id(result.user.id).role_id == editor.id

    def test_unknown_role_rejected(self, identity):
        with pytest.raises(ValidationFailed):
            _register_alice(identity, role_id=9999)

    def test_duplicate_email_conflict(self, identity):
        _register_alice(identity)
        with pytest.raises(Conflict) as exc_info:
            _register_alice(identity)
        assert exc_info.value.message == "User already exists with this email."

    def test_store_constraint_maps_to_conflict(self, identity, store, monkeypatch):
        """A concurrent insert that slips past the pre-check still yields Conflict."""
        lookups = iter([None, make_user(store, "alice@example.com")])
        monkeypatch.setattr(store, "get_by_email", lambda email: next(lookups))

        def _raise(user):
            raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed: users.email"))

        monkeypatch.setattr(store, "create_user", _raise)
        with pytest.raises(Conflict):
            _register_alice(identity)

    def test_role_deleted_before_insert_is_validation_error(self, identity, store, monkeypatch):
        """The foreign key catches a role removed after the existence check."""
        ghost = Role(name="ghost", id=9999)
        monkeypatch.setattr(store, "get_role", lambda role_id: ghost)
        with pytest.raises(ValidationFailed) as exc_info:
            _register_alice(identity, role_id=ghost.id)
        assert exc_info.value.message == "Referenced role does not exist."
        assert store.get_by_email("alice@example.com") is None

    def test_missing_default_role_leaves_role_unset(self, identity, store):
        with store.engine.connect() as conn:
            conn.execute(text("DELETE FROM roles WHERE name = 'user'"))
            conn.commit()
        result = _register_alice(identity)
        assert store.get_by_id(result.user.id).role_id is None

    def test_overlong_password_rejected(self, identity):
        with pytest.raises(ValidationFailed):
            identity.register("long@example.com", "é" * 40, "Long", "Password")


class TestLogin:
    def test_returns_role_and_permissions(self, identity):
        _register_alice(identity)
        result = identity.login("alice@example.com", "secret1")
        assert result.user.role == "user"
        assert result.user.permissions == ["posts.read"]

    def test_token_resolves_to_user(self, identity, tokens):
        registered = _register_alice(identity)
        result = identity.login("alice@example.com", "secret1")
        assert tokens.verify(result.token) == registered.user.id

    def test_wrong_password_and_unknown_email_identical(self, identity):
        _register_alice(identity)
        with pytest.raises(InvalidCredentials) as wrong_pw:
            identity.login("alice@example.com", "nope-nope")
        with pytest.raises(InvalidCredentials) as unknown:
            identity.login("nobody@example.com", "secret1")
        assert type(wrong_pw.value) is type(unknown.value)
        assert wrong_pw.value.message == unknown.value.message == "Invalid credentials."
        assert wrong_pw.value.status_code == unknown.value.status_code == 401

    def test_inactive_account_identical_error(self, identity, store):
        make_user(store, "inactive@example.com", is_active=False)
        with pytest.raises(InvalidCredentials) as exc_info:
            identity.login("inactive@example.com", "secret1")
        assert exc_info.value.message == "Invalid credentials."

    def test_stamps_last_login(self, identity, store):
        registered = _register_alice(identity)
        assert store.get_by_id(registered.user.id).last_login is None
        identity.login("alice@example.com", "secret1")
        assert store.get_by_id(registered.user.id).last_login is not None

    def test_last_login_failure_is_advisory(self, identity, store, monkeypatch):
        _register_alice(identity)

        def _fail(user_id):
            raise OperationalError("UPDATE users", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "update_last_login", _fail)
        result = identity.login("alice@example.com", "secret1")
        assert result.token

    def test_user_without_role_gets_empty_permissions(self, identity, store):
        make_user(store, "bare@example.com", role=None)
        result = identity.login("bare@example.com", "secret1")
        assert result.user.role is None
        assert result.user.permissions == []


def test_get_current_user_from_context(identity, store):
    from auth.models import AuthContext

    make_user(store, "ctx@example.com", role="author")
    ctx = AuthContext.from_user_with_role(store.get_active_by_email_with_role("ctx@example.com"))
    summary = identity.get_current_user(ctx)
    assert summary.email == "ctx@example.com"
    assert summary.role == "author"
    assert summary.permissions == ["posts.create", "posts.read", "posts.update"]
