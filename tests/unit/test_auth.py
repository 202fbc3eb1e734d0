"""Tests for session authentication and role permissions."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import pytest
import redis
from conftest import ACTOR_ID
from sqlalchemy import select

from accesshub.core.errors import AuthenticationRequired, InvalidCredentials
from accesshub.core.responses import ResponseCode
from accesshub.db.models import UserModel
from accesshub.web import auth


class DownRedis:
    def _fail(self, *args, **kwargs):
        raise redis.exceptions.ConnectionError("connection refused")

    setex = get = delete = _fail


class DictRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def get(self, key):
        return self.store.get(key)

    def delete(self, key):
        self.store.pop(key, None)


@pytest.fixture
def down_redis(monkeypatch):
    monkeypatch.setattr(auth, "get_redis_client", lambda: DownRedis())
    monkeypatch.setattr(auth, "_memory_sessions", {})


@pytest.fixture
def dict_redis(monkeypatch) -> DictRedis:
    client = DictRedis()
    monkeypatch.setattr(auth, "get_redis_client", lambda: client)
    return client


class TestPasswords:
    def test_hash_and_check(self):
        hashed = auth.hash_password("s3cret")

        assert hashed != "s3cret"
        assert auth.check_password("s3cret", hashed)
        assert not auth.check_password("wrong", hashed)

    def test_malformed_hash(self):
        assert auth.check_password("s3cret", "not-a-bcrypt-hash") is False


class TestPermissions:
    def test_roles(self):
        viewer = auth.Principal.from_session({"username": "v", "role": "viewer"})
        operator = auth.Principal.from_session({"username": "o", "role": "operator", "user_id": 3})

        assert viewer.can(auth.REPORT_VIEW)
        assert not viewer.can(auth.DOOR_REQUEST_APPROVE)
        assert operator.can(auth.DOOR_LOCK_MANAGE)
        assert not operator.can(auth.DIRECTORY_MANAGE)
        assert operator.user_id == 3

    def test_user_administration(self):
        manager = auth.Principal.from_session({"username": "m", "role": "manager"})
        operator = auth.Principal.from_session({"username": "o", "role": "operator"})

        assert manager.can(auth.USER_APPROVE)
        assert not manager.can(auth.USER_MANAGE)
        assert not operator.can(auth.USER_VIEW)

    def test_unknown_role_has_no_permissions(self):
        principal = auth.Principal.from_session({"username": "x", "role": "janitor"})

        assert principal.permissions == frozenset()

    def test_system_principal_is_admin(self):
        assert auth.SYSTEM_PRINCIPAL.user_id is None
        assert auth.SYSTEM_PRINCIPAL.permissions == auth.ALL_PERMISSIONS


class TestExtractToken:
    def test_bearer_header_wins(self):
        assert auth.extract_token("cookie-token", "Bearer header-token") == "header-token"

    def test_cookie_fallback(self):
        assert auth.extract_token("cookie-token", None) == "cookie-token"
        assert auth.extract_token("cookie-token", "Basic abc") == "cookie-token"

    def test_empty_bearer(self):
        assert auth.extract_token(None, "Bearer   ") is None


class TestSessions:
    def test_redis_round_trip(self, dict_redis):
        token = auth.create_session("operator", "admin", ACTOR_ID)

        key = f"session:{token}"
        assert dict_redis.ttls[key] == 24 * 3600
        assert auth.validate_session(token)["user_id"] == ACTOR_ID

        auth.logout(token)
        assert auth.validate_session(token) is None

    def test_expired_redis_session_is_removed(self, dict_redis):
        past = datetime.now(timezone.utc) - timedelta(minutes=1)
        dict_redis.store["session:old"] = json.dumps(
            {"username": "u", "role": "viewer", "expires_at": past.isoformat()}
        )

        assert auth.validate_session("old") is None
        assert "session:old" not in dict_redis.store

    def test_memory_fallback(self, down_redis):
        token = auth.create_session("operator", "manager", ACTOR_ID)

        assert auth.validate_session(token)["role"] == "manager"
        auth.logout(token)
        assert auth.validate_session(token) is None

    def test_missing_token(self, down_redis):
        assert auth.validate_session(None) is None
        assert auth.validate_session("unknown") is None


class TestRequireAuth:
    def test_disabled_auth_returns_system_principal(self):
        assert auth.require_auth(session=None, authorization=None) is auth.SYSTEM_PRINCIPAL

    def test_enabled_auth_requires_token(self, monkeypatch, dict_redis):
        monkeypatch.setenv("ACCESSHUB_AUTH_DISABLED", "false")
        from accesshub.config import reset_config

        reset_config()

        with pytest.raises(AuthenticationRequired):
            auth.require_auth(session=None, authorization=None)

        token = auth.create_session("operator", "viewer", ACTOR_ID)
        principal = auth.require_auth(session=None, authorization=f"Bearer {token}")
        assert principal.username == "operator"
        assert principal.role == "viewer"


class TestAuthenticate:
    async def _user(self, session_factory, **overrides):
        values = {
            "id": ACTOR_ID,
            "username": "operator",
            "email": "operator@example.com",
            "full_name": "Olive Operator",
            "password_hash": auth.hash_password("s3cret"),
            "role": "operator",
        }
        values.update(overrides)
        async with session_factory() as session, session.begin():
            session.add(UserModel(**values))

    async def test_login_by_username_or_email(self, session_factory):
        await self._user(session_factory)

        async with session_factory() as session, session.begin():
            by_name = await auth.authenticate(session, "operator", "s3cret")
            by_email = await auth.authenticate(session, "operator@example.com", "s3cret")

        assert by_name.id == by_email.id == ACTOR_ID
        async with session_factory() as session:
            user = (await session.execute(select(UserModel))).scalar_one()
        assert user.last_login is not None

    async def test_wrong_password(self, session_factory):
        await self._user(session_factory)

        async with session_factory() as session:
            with pytest.raises(InvalidCredentials):
                await auth.authenticate(session, "operator", "nope")

    async def test_inactive_account(self, session_factory):
        await self._user(session_factory, is_active=False)

        async with session_factory() as session:
            with pytest.raises(AuthenticationRequired) as excinfo:
                await auth.authenticate(session, "operator", "s3cret")

        assert excinfo.value.code == ResponseCode.INACTIVE_ACCOUNT

    async def test_unapproved_account(self, session_factory):
        await self._user(session_factory, is_approved=False)

        async with session_factory() as session:
            with pytest.raises(AuthenticationRequired) as excinfo:
                await auth.authenticate(session, "operator", "s3cret")

        assert excinfo.value.code == ResponseCode.PENDING_APPROVAL
        assert excinfo.value.message == "Account is pending approval"
