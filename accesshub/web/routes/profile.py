"""Routes for the signed-in user's own account.

Routes:
- GET  /profile                  - The caller's account
- PUT  /profile                  - Edit username, email, full name, phone
- POST /profile/change-password  - Requires the current password
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.core.errors import AuthenticationRequired
from accesshub.db.connection import get_db
from accesshub.users import service
from accesshub.web.auth import Principal, require_auth
from accesshub.web.dependencies import client_ip
from accesshub.web.models import PasswordChange, ProfileUpdate
from accesshub.web.responses import respond

router = APIRouter(prefix="/profile", tags=["profile"])


def _account_id(principal: Principal) -> int:
    # The built-in admin used when auth is disabled has no account row
    if principal.user_id is None:
        raise AuthenticationRequired("Sign in with a user account to manage a profile")
    return principal.user_id


@router.get("")
async def get_profile(
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    return respond("Profile retrieved successfully", await service.get_user(db, _account_id(principal)))


@router.put("")
async def update_profile(
    body: ProfileUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    user = await service.update_profile(
        db, _account_id(principal), body.model_dump(exclude_unset=True), ip_address=client_ip(request)
    )
    return respond("Profile updated successfully", user)


@router.post("/change-password")
async def change_password(
    body: PasswordChange,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    await service.change_password(
        db,
        _account_id(principal),
        body.current_password,
        body.new_password,
        ip_address=client_ip(request),
    )
    return respond("Password changed successfully")
