"""Building routes.

Routes:
- GET    /buildings               - Paginated list (search, status, sort)
- POST   /buildings               - Create
- GET    /buildings/{id}          - Detail with floor count
- PUT    /buildings/{id}          - Update
- PATCH  /buildings/{id}/status   - Activate / deactivate
- DELETE /buildings/{id}          - Hard delete (floors and doors go with it)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.directory import service
from accesshub.web.auth import DIRECTORY_MANAGE, Principal, require_auth, require_permission
from accesshub.web.dependencies import client_ip
from accesshub.web.models import BuildingCreate, BuildingUpdate, StatusUpdate
from accesshub.web.responses import created, respond

router = APIRouter(prefix="/buildings", tags=["buildings"])


@router.get("")
async def list_buildings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    data = await service.list_buildings(
        db,
        page=page,
        limit=limit,
        search=search,
        status=status,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return respond("Buildings retrieved successfully", data)


@router.post("")
async def create_building(
    body: BuildingCreate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    building = await service.create_building(
        db, body.model_dump(), user_id=principal.user_id, ip_address=client_ip(request)
    )
    return created("Building created successfully", building)


@router.get("/{building_id}")
async def get_building(
    building_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    return respond("Building retrieved successfully", await service.get_building(db, building_id))


@router.put("/{building_id}")
async def update_building(
    building_id: int,
    body: BuildingUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    building = await service.update_building(
        db,
        building_id,
        body.model_dump(exclude_unset=True),
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Building updated successfully", building)


@router.patch("/{building_id}/status")
async def update_building_status(
    building_id: int,
    body: StatusUpdate,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    building = await service.update_building_status(
        db, building_id, body.status, user_id=principal.user_id, ip_address=client_ip(request)
    )
    return respond("Building status updated successfully", building)


@router.delete("/{building_id}")
async def delete_building(
    building_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DIRECTORY_MANAGE)),
):
    await service.delete_building(
        db, building_id, user_id=principal.user_id, ip_address=client_ip(request)
    )
    return respond("Building deleted successfully")
