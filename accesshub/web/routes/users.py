"""User administration routes.

Routes:
- GET    /users                 - Paginated list (search, active/inactive)
- GET    /users/pending         - Registrations awaiting approval
- POST   /users                 - Create an approved account
- GET    /users/{id}            - Detail
- PUT    /users/{id}            - Edit (role and activation included)
- DELETE /users/{id}            - Delete
- POST   /users/{id}/approve    - Approve a pending registration
- POST   /users/{id}/reject     - Reject (delete) a pending registration; comment required
- GET    /roles                 - Roles and the permissions each grants
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.users import service
from accesshub.web.auth import (
    ROLE_PERMISSIONS,
    USER_APPROVE,
    USER_MANAGE,
    USER_VIEW,
    Principal,
    require_auth,
    require_permission,
)
from accesshub.web.dependencies import client_ip
from accesshub.web.models import UserCreate, UserReview, UserUpdate
from accesshub.web.responses import created, respond

router = APIRouter(tags=["users"])


@router.get("/users")
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    q: str | None = None,
    status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_VIEW)),
):
    data = await service.list_users(
        db, page=page, limit=limit, search=q, status=status, sort_by=sort_by, sort_order=sort_order
    )
    return respond("Users retrieved successfully", data)


@router.get("/users/pending")
async def list_pending_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    q: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_APPROVE)),
):
    data = await service.list_users(db, page=page, limit=limit, search=q, pending=True)
    return respond("Pending users retrieved successfully", data)


@router.post("/users")
async def create_user(
    body: UserCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_MANAGE)),
):
    user = await service.create_user(
        db, body.model_dump(), user_id=principal.user_id, ip_address=client_ip(request)
    )
    return created("User created successfully", user)


@router.get("/users/{user_id}")
async def get_user(
    user_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_VIEW)),
):
    return respond("User retrieved successfully", await service.get_user(db, user_id))


@router.put("/users/{user_id}")
async def update_user(
    user_id: int,
    body: UserUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_MANAGE)),
):
    user = await service.update_user(
        db,
        user_id,
        body.model_dump(exclude_unset=True),
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("User updated successfully", user)


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_MANAGE)),
):
    await service.delete_user(db, user_id, user_id=principal.user_id, ip_address=client_ip(request))
    return respond("User deleted successfully")


@router.post("/users/{user_id}/approve")
async def approve_user(
    user_id: int,
    request: Request,
    body: UserReview | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_APPROVE)),
):
    user = await service.approve_user(
        db,
        user_id,
        comment=body.comment if body else None,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("User approved successfully", user)


@router.post("/users/{user_id}/reject")
async def reject_user(
    user_id: int,
    body: UserReview,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(USER_APPROVE)),
):
    await service.reject_user(
        db, user_id, body.comment, user_id=principal.user_id, ip_address=client_ip(request)
    )
    return respond("User rejected successfully")


@router.get("/roles")
async def list_roles(principal: Principal = Depends(require_auth)):
    roles = [
        {"name": role, "permissions": sorted(permissions)}
        for role, permissions in ROLE_PERMISSIONS.items()
    ]
    return respond("Roles retrieved successfully", roles)
