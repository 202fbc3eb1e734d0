"""Door coordinate routes (position of a door on its floor plan)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.directory import service
from accesshub.web.auth import DIRECTORY_MANAGE, Principal, require_auth, require_permission
from accesshub.web.dependencies import client_ip
from accesshub.web.models import CoordinateCreate, CoordinateUpdate
from accesshub.web.responses import created, respond

router = APIRouter(
    prefix="/buildings/{building_id}/floors/{floor_id}/doors/{door_id}/coordinates",
    tags=["coordinates"],
)


@router.get("")
async def list_coordinates(
    building_id: int,
    floor_id: int,
    door_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    data = await service.list_coordinates(db, building_id, floor_id, door_id)
    return respond("Door coordinates retrieved successfully", data)


@router.post("")
async def create_coordinate(
    building_id: int,
    floor_id: int,
    door_id: int,
    body: CoordinateCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    coordinate = await service.create_coordinate(
        db,
        building_id,
        floor_id,
        door_id,
        body.model_dump(),
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return created("Door coordinate created successfully", coordinate)


@router.get("/{coordinate_id}")
async def get_coordinate(
    building_id: int,
    floor_id: int,
    door_id: int,
    coordinate_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    coordinate = await service.require_coordinate(db, building_id, floor_id, door_id, coordinate_id)
    return respond("Door coordinate retrieved successfully", coordinate.as_dict())


@router.put("/{coordinate_id}")
async def update_coordinate(
    building_id: int,
    floor_id: int,
    door_id: int,
    coordinate_id: int,
    body: CoordinateUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    coordinate = await service.update_coordinate(
        db,
        building_id,
        floor_id,
        door_id,
        coordinate_id,
        body.model_dump(exclude_unset=True),
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Door coordinate updated successfully", coordinate)


@router.delete("/{coordinate_id}")
async def delete_coordinate(
    building_id: int,
    floor_id: int,
    door_id: int,
    coordinate_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    await service.delete_coordinate(
        db,
        building_id,
        floor_id,
        door_id,
        coordinate_id,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Door coordinate deleted successfully")
