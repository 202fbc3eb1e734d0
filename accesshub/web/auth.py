"""Session authentication for the AccessHub API.

Users log in with username/email and password (bcrypt). Sessions live in
Redis with a TTL, falling back to process memory when Redis is unreachable.
The session token is accepted from the ``session`` cookie or an
``Authorization: Bearer`` header.
"""

from __future__ import annotations

import json
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import bcrypt
import redis
import structlog
from fastapi import Cookie, Depends, Header
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.config import get_config
from accesshub.core.errors import AuthenticationRequired, InvalidCredentials, PermissionDenied
from accesshub.core.responses import ResponseCode
from accesshub.db.models import UserModel, utcnow
from accesshub.models import UserRole

logger = structlog.get_logger()

# Permission strings checked by route dependencies
DOOR_REQUEST_VIEW = "door.request.view"
DOOR_REQUEST_APPROVE = "door.request.approve"
DOOR_LOCK_VIEW = "door.lock.view"
DOOR_LOCK_MANAGE = "door.lock.manage"
DIRECTORY_MANAGE = "directory.manage"
REPORT_VIEW = "report.view"
ACTIVITY_VIEW = "activity.view"
USER_VIEW = "user.view"
USER_MANAGE = "user.manage"
USER_APPROVE = "user.approve"

ALL_PERMISSIONS = frozenset(
    {
        DOOR_REQUEST_VIEW,
        DOOR_REQUEST_APPROVE,
        DOOR_LOCK_VIEW,
        DOOR_LOCK_MANAGE,
        DIRECTORY_MANAGE,
        REPORT_VIEW,
        ACTIVITY_VIEW,
        USER_VIEW,
        USER_MANAGE,
        USER_APPROVE,
    }
)

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    UserRole.ADMIN.value: ALL_PERMISSIONS,
    UserRole.MANAGER.value: frozenset(
        {
            DOOR_REQUEST_VIEW,
            DOOR_REQUEST_APPROVE,
            DOOR_LOCK_VIEW,
            DOOR_LOCK_MANAGE,
            REPORT_VIEW,
            ACTIVITY_VIEW,
            USER_VIEW,
            USER_APPROVE,
        }
    ),
    UserRole.OPERATOR.value: frozenset(
        {DOOR_REQUEST_VIEW, DOOR_REQUEST_APPROVE, DOOR_LOCK_VIEW, DOOR_LOCK_MANAGE}
    ),
    UserRole.VIEWER.value: frozenset({DOOR_REQUEST_VIEW, DOOR_LOCK_VIEW, REPORT_VIEW}),
}

# In-memory fallback for development when Redis is missing
_memory_sessions: dict[str, dict] = {}


@dataclass(frozen=True)
class Principal:
    """The authenticated caller."""

    username: str
    role: str
    user_id: int | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)

    def can(self, permission: str) -> bool:
        return permission in self.permissions

    @classmethod
    def from_session(cls, data: dict) -> Principal:
        role = data.get("role", UserRole.VIEWER.value)
        return cls(
            username=data["username"],
            role=role,
            user_id=data.get("user_id"),
            permissions=ROLE_PERMISSIONS.get(role, frozenset()),
        )


SYSTEM_PRINCIPAL = Principal(
    username="default_admin",
    role=UserRole.ADMIN.value,
    user_id=None,
    permissions=ALL_PERMISSIONS,
)


def get_redis_client() -> redis.Redis:
    """Get Redis client for session storage."""
    return redis.from_url(get_config().auth.redis_url, decode_responses=True)


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=12)).decode()


def check_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        # Malformed hash in the database
        return False


def create_session(username: str, role: str, user_id: int | None = None) -> str:
    """Create a new session and return its token."""
    session_token = secrets.token_urlsafe(32)
    expiry_hours = get_config().auth.session_expiry_hours
    now = datetime.now(timezone.utc)

    session_data = {
        "username": username,
        "role": role,
        "user_id": user_id,
        "created_at": now.isoformat(),
        "expires_at": (now + timedelta(hours=expiry_hours)).isoformat(),
    }

    try:
        get_redis_client().setex(
            f"session:{session_token}", expiry_hours * 3600, json.dumps(session_data)
        )
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        logger.warning("redis_unavailable_using_memory_sessions")
        _memory_sessions[session_token] = session_data

    return session_token


def _expired(session_data: dict) -> bool:
    expires_at = datetime.fromisoformat(session_data["expires_at"])
    return datetime.now(timezone.utc) > expires_at


def validate_session(session_token: str | None) -> dict | None:
    """Return session data for a live token, otherwise None."""
    if not session_token:
        return None

    try:
        redis_client = get_redis_client()
        raw = redis_client.get(f"session:{session_token}")
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        session_data = _memory_sessions.get(session_token)
        if session_data is None:
            return None
        if _expired(session_data):
            del _memory_sessions[session_token]
            return None
        return session_data

    if not raw:
        return None

    try:
        session_data = json.loads(raw)
        if _expired(session_data):
            redis_client.delete(f"session:{session_token}")
            return None
        return session_data
    except (json.JSONDecodeError, KeyError, ValueError):
        redis_client.delete(f"session:{session_token}")
        return None


def logout(session_token: str | None) -> None:
    """Invalidate a session token."""
    if not session_token:
        return
    try:
        get_redis_client().delete(f"session:{session_token}")
    except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError):
        _memory_sessions.pop(session_token, None)


async def authenticate(session: AsyncSession, login: str, password: str) -> UserModel:
    """Check credentials against the users table.

    Raises:
        InvalidCredentials: unknown user or wrong password
        AuthenticationRequired: account disabled (code INACTIVE_ACCOUNT)
            or awaiting approval (code PENDING_APPROVAL)
    """
    stmt = select(UserModel).where(or_(UserModel.username == login, UserModel.email == login))
    user = (await session.execute(stmt)).scalars().first()

    if user is None or not check_password(password, user.password_hash):
        logger.info("login_failed", login=login)
        raise InvalidCredentials("Invalid username or password")
    if not user.is_active:
        raise AuthenticationRequired("Account is inactive", code=ResponseCode.INACTIVE_ACCOUNT)
    if not user.is_approved:
        raise AuthenticationRequired("Account is pending approval", code=ResponseCode.PENDING_APPROVAL)

    user.last_login = utcnow()
    await session.flush()
    return user


def extract_token(session_cookie: str | None, authorization: str | None) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization[7:].strip() or None
    return session_cookie


def _auth_disabled() -> bool:
    return get_config().auth.disabled


def require_auth(
    session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
) -> Principal:
    """Dependency to require an authenticated caller."""
    if _auth_disabled():
        return SYSTEM_PRINCIPAL

    session_data = validate_session(extract_token(session, authorization))
    if not session_data:
        raise AuthenticationRequired("Authentication required")
    return Principal.from_session(session_data)


def optional_auth(
    session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
) -> Principal | None:
    """Dependency returning the caller when authenticated, otherwise None."""
    if _auth_disabled():
        return SYSTEM_PRINCIPAL
    session_data = validate_session(extract_token(session, authorization))
    return Principal.from_session(session_data) if session_data else None


def require_permission(permission: str):
    """Dependency factory: caller must hold `permission`."""

    def _check(principal: Principal = Depends(require_auth)) -> Principal:
        if not principal.can(permission):
            raise PermissionDenied("Insufficient permissions")
        return principal

    return _check


def require_admin(principal: Principal = Depends(require_auth)) -> Principal:
    """Dependency to require admin role."""
    if principal.role != UserRole.ADMIN.value:
        raise PermissionDenied("Admin access required", code=ResponseCode.INSUFFICIENT_ROLE)
    return principal
