"""Floor routes, scoped to a building."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.directory import service
from accesshub.web.auth import DIRECTORY_MANAGE, Principal, require_auth, require_permission
from accesshub.web.dependencies import client_ip
from accesshub.web.models import FloorCreate, FloorPlanUpdate, FloorUpdate, StatusUpdate
from accesshub.web.responses import created, respond

router = APIRouter(prefix="/buildings/{building_id}/floors", tags=["floors"])


@router.get("")
async def list_floors(
    building_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    data = await service.list_floors(
        db,
        building_id,
        page=page,
        limit=limit,
        search=search,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return respond("Floors retrieved successfully", data)


@router.post("")
async def create_floor(
    building_id: int,
    body: FloorCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    floor = await service.create_floor(
        db, building_id, body.model_dump(), user_id=principal.user_id, ip_address=client_ip(request)
    )
    return created("Floor created successfully", floor)


@router.get("/{floor_id}")
async def get_floor(
    building_id: int,
    floor_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    return respond("Floor retrieved successfully", await service.get_floor(db, building_id, floor_id))


@router.put("/{floor_id}")
async def update_floor(
    building_id: int,
    floor_id: int,
    body: FloorUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    floor = await service.update_floor(
        db,
        building_id,
        floor_id,
        body.model_dump(exclude_unset=True),
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Floor updated successfully", floor)


@router.patch("/{floor_id}/status")
async def update_floor_status(
    building_id: int,
    floor_id: int,
    body: StatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    floor = await service.update_floor_status(
        db, building_id, floor_id, body.status, user_id=principal.user_id, ip_address=client_ip(request)
    )
    return respond("Floor status updated successfully", floor)


@router.put("/{floor_id}/floor-plan")
async def set_floor_plan(
    building_id: int,
    floor_id: int,
    body: FloorPlanUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    """Record the stored floor-plan image path (upload handling lives elsewhere)."""
    floor = await service.set_floor_plan(
        db,
        building_id,
        floor_id,
        body.floor_plan_image,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Floor plan updated successfully", floor)


@router.delete("/{floor_id}")
async def delete_floor(
    building_id: int,
    floor_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    await service.delete_floor(
        db, building_id, floor_id, user_id=principal.user_id, ip_address=client_ip(request)
    )
    return respond("Floor deleted successfully")
