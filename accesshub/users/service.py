"""User account operations.

Admins create, edit, approve and delete accounts. Anyone may register, but
a self-registered account starts unapproved with the viewer role and
cannot log in until an admin approves it; rejecting a pending registration
deletes it. Signed-in users edit their own profile and password.

Functions take the caller's session and raise `AccessHubError` subclasses;
the web layer owns commit/rollback.
"""

from __future__ import annotations

import re
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.core.activity_logger import log_activity
from accesshub.core.errors import Conflict, NotFound, ValidationFailed
from accesshub.core.query import clamp_page, order_clause, page_envelope, paginate, search_filter
from accesshub.db.models import UserModel
from accesshub.models import UserRole, parse_enum
from accesshub.web.auth import check_password, hash_password

logger = structlog.get_logger()

MIN_PASSWORD_LENGTH = 6

_USERNAME = re.compile(r"^[A-Za-z0-9_]{3,50}$")
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_USER_SORT = {
    "username": UserModel.username,
    "full_name": UserModel.full_name,
    "created_at": UserModel.created_at,
    "last_login": UserModel.last_login,
}

_EDITABLE = {"username", "email", "full_name", "phone", "role", "is_active"}
_PROFILE_EDITABLE = {"username", "email", "full_name", "phone"}


def _validate_username(value: Any) -> str:
    username = str(value or "").strip()
    if not _USERNAME.match(username):
        raise ValidationFailed(
            "Username must be 3 to 50 characters of letters, numbers and underscores"
        )
    return username


def _validate_email(value: Any) -> str:
    email = str(value or "").strip().lower()
    if not _EMAIL.match(email):
        raise ValidationFailed("Invalid email format")
    return email


def _validate_full_name(value: Any) -> str:
    full_name = str(value or "").strip()
    if len(full_name) < 2:
        raise ValidationFailed("Full name must be at least 2 characters")
    return full_name


def _validate_password(value: Any, field: str = "Password") -> str:
    password = value or ""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"{field} must be at least {MIN_PASSWORD_LENGTH} characters")
    return password


def _validate_role(value: Any) -> str:
    if parse_enum(UserRole, value) is None:
        raise ValidationFailed("Invalid role. Must be one of admin, manager, operator, viewer")
    return value


async def _ensure_unique(
    session: AsyncSession,
    username: str | None,
    email: str | None,
    exclude_id: int | None = None,
) -> None:
    if username is not None:
        stmt = select(UserModel.id).where(func.lower(UserModel.username) == username.lower())
        if exclude_id is not None:
            stmt = stmt.where(UserModel.id != exclude_id)
        if (await session.execute(stmt)).first() is not None:
            raise Conflict("Username already exists")
    if email is not None:
        stmt = select(UserModel.id).where(func.lower(UserModel.email) == email.lower())
        if exclude_id is not None:
            stmt = stmt.where(UserModel.id != exclude_id)
        if (await session.execute(stmt)).first() is not None:
            raise Conflict("Email already exists")


async def require_user(session: AsyncSession, user_id: int) -> UserModel:
    user = await session.get(UserModel, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


# ============================================================================
# Admin management
# ============================================================================


async def list_users(
    session: AsyncSession,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    status: str | None = None,
    pending: bool = False,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    """Paginated users. `status` is active/inactive; `pending` keeps unapproved accounts only."""
    page, limit = clamp_page(page, limit)
    stmt = select(UserModel)
    term = search_filter([UserModel.username, UserModel.email, UserModel.full_name], search)
    if term is not None:
        stmt = stmt.where(term)
    if status == "active":
        stmt = stmt.where(UserModel.is_active.is_(True))
    elif status == "inactive":
        stmt = stmt.where(UserModel.is_active.is_(False))
    if pending:
        stmt = stmt.where(UserModel.is_approved.is_(False))
    stmt = stmt.order_by(order_clause(_USER_SORT, sort_by, sort_order, "created_at"))

    rows, total = await paginate(session, stmt, page, limit)
    return page_envelope([row[0].as_dict() for row in rows], total, page, limit)


async def get_user(session: AsyncSession, user_id: int) -> dict:
    return (await require_user(session, user_id)).as_dict()


async def create_user(
    session: AsyncSession,
    data: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    """Admin-created accounts are approved and active straight away."""
    username = _validate_username(data.get("username"))
    email = _validate_email(data.get("email"))
    password = _validate_password(data.get("password"))
    full_name = _validate_full_name(data.get("full_name"))
    role = _validate_role(data.get("role") or UserRole.VIEWER.value)
    await _ensure_unique(session, username, email)

    user = UserModel(
        username=username,
        email=email,
        full_name=full_name,
        phone=data.get("phone"),
        password_hash=hash_password(password),
        role=role,
        is_active=True,
        is_approved=True,
    )
    session.add(user)
    await session.flush()

    await log_activity(
        session,
        "Created user",
        "user",
        user.id,
        user_id=user_id,
        details={"username": username, "role": role},
        ip_address=ip_address,
    )
    return user.as_dict()


async def update_user(
    session: AsyncSession,
    target_id: int,
    changes: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    user = await require_user(session, target_id)
    changes = {key: value for key, value in changes.items() if key in _EDITABLE and value is not None}

    if "username" in changes:
        changes["username"] = _validate_username(changes["username"])
    if "email" in changes:
        changes["email"] = _validate_email(changes["email"])
    if "full_name" in changes:
        changes["full_name"] = _validate_full_name(changes["full_name"])
    if "role" in changes:
        _validate_role(changes["role"])
    await _ensure_unique(session, changes.get("username"), changes.get("email"), exclude_id=target_id)

    for key, value in changes.items():
        setattr(user, key, value)
    await session.flush()

    await log_activity(
        session,
        "Updated user",
        "user",
        target_id,
        user_id=user_id,
        details={"fields": sorted(changes)},
        ip_address=ip_address,
    )
    return user.as_dict()


async def delete_user(
    session: AsyncSession,
    target_id: int,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    if user_id is not None and target_id == user_id:
        raise ValidationFailed("You cannot delete your own account")
    user = await require_user(session, target_id)
    username = user.username
    await session.delete(user)
    await session.flush()

    await log_activity(
        session,
        "Deleted user",
        "user",
        target_id,
        user_id=user_id,
        details={"username": username},
        ip_address=ip_address,
    )


async def approve_user(
    session: AsyncSession,
    target_id: int,
    comment: str | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    user = await require_user(session, target_id)
    if user.is_approved:
        raise ValidationFailed("User is already approved")
    user.is_approved = True
    await session.flush()

    await log_activity(
        session,
        "Approved user",
        "user",
        target_id,
        user_id=user_id,
        details={"username": user.username, "comment": comment},
        ip_address=ip_address,
    )
    logger.info("user_approved", user_id=target_id, approved_by=user_id)
    return user.as_dict()


async def reject_user(
    session: AsyncSession,
    target_id: int,
    comment: str | None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    """Delete a pending registration. A reason is required."""
    if not comment or not comment.strip():
        raise ValidationFailed("Rejection reason is required")
    user = await require_user(session, target_id)
    if user.is_approved:
        raise ValidationFailed("Cannot reject an already approved user")
    username = user.username
    await session.delete(user)
    await session.flush()

    await log_activity(
        session,
        "Rejected user",
        "user",
        target_id,
        user_id=user_id,
        details={"username": username, "comment": comment.strip()},
        ip_address=ip_address,
    )
    logger.info("user_rejected", user_id=target_id, rejected_by=user_id)


# ============================================================================
# Self-service
# ============================================================================


async def register_user(
    session: AsyncSession, data: dict[str, Any], ip_address: str | None = None
) -> dict:
    """Create a viewer account that waits for admin approval."""
    username = _validate_username(data.get("username"))
    email = _validate_email(data.get("email"))
    password = _validate_password(data.get("password"))
    full_name = _validate_full_name(data.get("full_name"))
    await _ensure_unique(session, username, email)

    user = UserModel(
        username=username,
        email=email,
        full_name=full_name,
        phone=data.get("phone"),
        password_hash=hash_password(password),
        role=UserRole.VIEWER.value,
        is_active=True,
        is_approved=False,
    )
    session.add(user)
    await session.flush()

    await log_activity(
        session,
        "Registered",
        "user",
        user.id,
        user_id=user.id,
        details={"username": username},
        ip_address=ip_address,
    )
    logger.info("user_registered", user_id=user.id, username=username)
    return user.as_dict()


async def update_profile(
    session: AsyncSession,
    user_id: int,
    changes: dict[str, Any],
    ip_address: str | None = None,
) -> dict:
    """Edit the caller's own account. Role and activation stay admin-only."""
    changes = {
        key: value for key, value in changes.items() if key in _PROFILE_EDITABLE and value is not None
    }
    user = await require_user(session, user_id)
    if "username" in changes:
        changes["username"] = _validate_username(changes["username"])
    if "email" in changes:
        changes["email"] = _validate_email(changes["email"])
    if "full_name" in changes:
        changes["full_name"] = _validate_full_name(changes["full_name"])
    await _ensure_unique(session, changes.get("username"), changes.get("email"), exclude_id=user_id)

    for key, value in changes.items():
        setattr(user, key, value)
    await session.flush()

    await log_activity(
        session,
        "Updated profile",
        "user",
        user_id,
        user_id=user_id,
        details={"fields": sorted(changes)},
        ip_address=ip_address,
    )
    return user.as_dict()


async def change_password(
    session: AsyncSession,
    user_id: int,
    current_password: str,
    new_password: str,
    ip_address: str | None = None,
) -> None:
    user = await require_user(session, user_id)
    if not check_password(current_password or "", user.password_hash):
        raise ValidationFailed("Current password is incorrect")
    user.password_hash = hash_password(_validate_password(new_password, "New password"))
    await session.flush()

    await log_activity(
        session, "Changed password", "user", user_id, user_id=user_id, ip_address=ip_address
    )

