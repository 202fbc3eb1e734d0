"""Door routes, scoped to a building and floor.

Creating a door provisions its platform device (best effort) and starts the
telemetry subscription; deleting it removes both.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.directory import service
from accesshub.integration.device_connections import DeviceConnectionManager
from accesshub.integration.device_sync import DeviceSync
from accesshub.web.auth import DIRECTORY_MANAGE, Principal, require_auth, require_permission
from accesshub.web.dependencies import client_ip, get_connection_manager, get_device_sync
from accesshub.web.models import DoorCreate, DoorUpdate, StatusUpdate
from accesshub.web.responses import created, respond

router = APIRouter(prefix="/buildings/{building_id}/floors/{floor_id}/doors", tags=["doors"])


@router.get("")
async def list_doors(
    building_id: int,
    floor_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    status: str | None = None,
    lock_status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    data = await service.list_doors(
        db,
        building_id,
        floor_id,
        page=page,
        limit=limit,
        search=search,
        status=status,
        lock_status=lock_status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return respond("Doors retrieved successfully", data)


@router.post("")
async def create_door(
    building_id: int,
    floor_id: int,
    body: DoorCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    device_sync: DeviceSync | None = Depends(get_device_sync),
    connections: DeviceConnectionManager | None = Depends(get_connection_manager),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    door = await service.create_door(
        db,
        building_id,
        floor_id,
        body.model_dump(),
        device_sync=device_sync,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    if connections is not None and door.thingsboard_device_id:
        connections.watch(door.id, door.thingsboard_device_id)
    return created("Door created successfully", service.door_payload(door))


@router.get("/{door_id}")
async def get_door(
    building_id: int,
    floor_id: int,
    door_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    door = await service.get_door(db, building_id, floor_id, door_id)
    return respond("Door retrieved successfully", door)


@router.put("/{door_id}")
async def update_door(
    building_id: int,
    floor_id: int,
    door_id: int,
    body: DoorUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    device_sync: DeviceSync | None = Depends(get_device_sync),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    door = await service.update_door(
        db,
        building_id,
        floor_id,
        door_id,
        body.model_dump(exclude_unset=True),
        device_sync=device_sync,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Door updated successfully", door)


@router.patch("/{door_id}/status")
async def update_door_status(
    building_id: int,
    floor_id: int,
    door_id: int,
    body: StatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    device_sync: DeviceSync | None = Depends(get_device_sync),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    door = await service.update_door_status(
        db,
        building_id,
        floor_id,
        door_id,
        body.status,
        device_sync=device_sync,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Door status updated successfully", door)


@router.delete("/{door_id}")
async def delete_door(
    building_id: int,
    floor_id: int,
    door_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    device_sync: DeviceSync | None = Depends(get_device_sync),
    connections: DeviceConnectionManager | None = Depends(get_connection_manager),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    await service.delete_door(
        db,
        building_id,
        floor_id,
        door_id,
        device_sync=device_sync,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    if connections is not None:
        await connections.unwatch(door_id)
    return respond("Door deleted successfully")
