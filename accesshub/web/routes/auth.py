"""Authentication routes.

Routes:
- POST /auth/login     - Verify credentials, open a session, set the cookie
- POST /auth/register  - Self-registration; the account waits for admin approval
- POST /auth/logout    - Drop the session and clear the cookie
- GET  /auth/me        - The current caller
"""

from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.config import get_config
from accesshub.core.activity_logger import log_activity
from accesshub.db.connection import get_db
from accesshub.db.models import UserModel
from accesshub.users import service as users
from accesshub.web.auth import (
    Principal,
    authenticate,
    create_session,
    extract_token,
    require_auth,
)
from accesshub.web.auth import logout as auth_logout
from accesshub.web.dependencies import client_ip
from accesshub.web.models import LoginRequest, RegisterRequest
from accesshub.web.responses import created, respond

router = APIRouter(prefix="/auth", tags=["authentication"])

SESSION_COOKIE = "session"


@router.post("/login")
async def login(body: LoginRequest, request: Request, db: AsyncSession = Depends(get_db)):
    """Exchange credentials for a session token (also set as an httponly cookie)."""
    user = await authenticate(db, body.username, body.password)
    token = create_session(user.username, user.role, user.id)

    await log_activity(db, "Logged in", "user", user.id, user_id=user.id, ip_address=client_ip(request))

    response = respond("Login successful", {"token": token, "user": user.as_dict()})
    config = get_config()
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        secure=config.environment == "production",
        samesite="lax",
        max_age=config.auth.session_expiry_hours * 3600,
    )
    return response


@router.post("/logout")
async def logout(
    session: str | None = Cookie(default=None),
    authorization: str | None = Header(default=None),
):
    auth_logout(extract_token(session, authorization))
    response = respond("Logout successful")
    response.delete_cookie(SESSION_COOKIE)
    return response


@router.get("/me")
async def me(principal: Principal = Depends(require_auth), db: AsyncSession = Depends(get_db)):
    user = await db.get(UserModel, principal.user_id) if principal.user_id is not None else None
    data = {
        "username": principal.username,
        "role": principal.role,
        "permissions": sorted(principal.permissions),
        "user": user.as_dict() if user is not None else None,
    }
    return respond("Current user", data)


@router.post("/register")
async def register(body: RegisterRequest, request: Request, db: AsyncSession = Depends(get_db)):
    user = await users.register_user(db, body.model_dump(), ip_address=client_ip(request))
    return created("Registration successful. Your account is pending approval.", user)
