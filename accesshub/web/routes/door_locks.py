"""Door lock routes.

Routes:
- PUT /buildings/{b}/floors/{f}/doors/{d}/lock          - Administrative open/close
- GET /buildings/{b}/floors/{f}/doors/{d}/lock-history  - Paginated lock history
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.locks.service import LockService, get_lock_history
from accesshub.web.auth import DOOR_LOCK_MANAGE, DOOR_LOCK_VIEW, Principal, require_permission
from accesshub.web.dependencies import client_ip, get_lock_service
from accesshub.web.models import LockUpdate
from accesshub.web.responses import respond

router = APIRouter(prefix="/buildings/{building_id}/floors/{floor_id}/doors/{door_id}", tags=["locks"])


@router.put("/lock")
async def update_lock_status(
    building_id: int,
    floor_id: int,
    door_id: int,
    body: LockUpdate,
    request: Request,
    locks: LockService = Depends(get_lock_service),
    principal: Principal = Depends(require_permission(DOOR_LOCK_MANAGE)),
):
    door = await locks.update_lock_status(
        building_id,
        floor_id,
        door_id,
        body.lock_status,
        reason=body.reason,
        request_id=body.request_id,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond("Door lock status updated successfully", door)


@router.get("/lock-history")
async def lock_history(
    building_id: int,
    floor_id: int,
    door_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_order: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DOOR_LOCK_VIEW)),
):
    data = await get_lock_history(
        db,
        building_id,
        floor_id,
        door_id,
        page=page,
        limit=limit,
        start_date=start_date,
        end_date=end_date,
        sort_order=sort_order,
    )
    return respond("Door lock history retrieved successfully", data)
