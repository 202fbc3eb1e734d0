"""Door type routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.directory import service
from accesshub.web.auth import DIRECTORY_MANAGE, Principal, require_auth, require_permission
from accesshub.web.dependencies import client_ip
from accesshub.web.models import DoorTypeCreate, DoorTypeUpdate
from accesshub.web.responses import created, respond

router = APIRouter(prefix="/door-types", tags=["door-types"])


@router.get("")
async def list_door_types(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    data = await service.list_door_types(db, page=page, limit=limit, search=search)
    return respond("Door types retrieved successfully", data)


@router.post("")
async def create_door_type(
    body: DoorTypeCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    door_type = await service.create_door_type(
        db, body.model_dump(), user_id=principal.user_id, ip_address=client_ip(request)
    )
    return created("Door type created successfully", door_type)


@router.get("/{door_type_id}")
async def get_door_type(
    door_type_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    door_type = await service.require_door_type(db, door_type_id)
    return respond("Door type retrieved successfully", door_type.as_dict())


@router.put("/{door_type_id}")
async def update_door_type(
    door_type_id: int,
    body: DoorTypeUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    door_type = await service.update_door_type(
        db,
        door_type_id,
        body.model_dump(exclude_unset=True),
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Door type updated successfully", door_type)


@router.delete("/{door_type_id}")
async def delete_door_type(
    door_type_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    await service.delete_door_type(
        db, door_type_id, user_id=principal.user_id, ip_address=client_ip(request)
    )
    return respond("Door type deleted successfully")
