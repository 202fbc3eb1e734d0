"""Door request routes.

Routes:
- GET  /door-requests                                 - Paginated, filterable list
- POST /door-requests                                 - Create a pending request (public)
- GET  /door-requests/{id}                            - Detail with door/floor/building names
- PUT  /door-requests/{id}/status                     - Approve or reject
- GET  /door-requests/door/{b}/{f}/{d}/status         - Latest pending request for a door (public)
- GET  /buildings/{b}/floors/{f}/doors/{d}/requests   - Requests for one door
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.requests import service
from accesshub.requests.service import DoorRequestService
from accesshub.web.auth import (
    DOOR_REQUEST_APPROVE,
    DOOR_REQUEST_VIEW,
    Principal,
    optional_auth,
    require_permission,
)
from accesshub.web.dependencies import client_ip, get_request_service
from accesshub.web.models import DoorRequestCreate, DoorRequestResolve
from accesshub.web.responses import created, respond

router = APIRouter(tags=["door-requests"])


@router.get("/door-requests")
async def list_door_requests(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    status: str | None = None,
    building_id: int | None = None,
    floor_id: int | None = None,
    door_id: int | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DOOR_REQUEST_VIEW)),
):
    data = await service.list_requests(
        db,
        page=page,
        limit=limit,
        status=status,
        building_id=building_id,
        floor_id=floor_id,
        door_id=door_id,
        search=search,
        start_date=start_date,
        end_date=end_date,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return respond("Door requests retrieved successfully", data)


@router.post("/door-requests")
async def create_door_request(
    body: DoorRequestCreate,
    request: Request,
    requests: DoorRequestService = Depends(get_request_service),
    principal: Principal | None = Depends(optional_auth),
):
    door_request = await requests.create_request(
        body.door_id,
        body.requester_name,
        body.purpose,
        requester_phone=body.requester_phone,
        requester_email=body.requester_email,
        user_id=principal.user_id if principal else None,
        ip_address=client_ip(request),
    )
    return created("Door request created successfully", door_request)


@router.get("/door-requests/door/{building_id}/{floor_id}/{door_id}/status")
async def door_request_status(
    building_id: int,
    floor_id: int,
    door_id: int,
    db: AsyncSession = Depends(get_db),
):
    data = await service.get_door_request_status(db, building_id, floor_id, door_id)
    return respond("Door request status retrieved successfully", data)


@router.get("/door-requests/{request_id}")
async def get_door_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DOOR_REQUEST_VIEW)),
):
    return respond("Door request retrieved successfully", await service.get_request(db, request_id))


@router.put("/door-requests/{request_id}/status")
async def resolve_door_request(
    request_id: int,
    body: DoorRequestResolve,
    request: Request,
    requests: DoorRequestService = Depends(get_request_service),
    principal: Principal = Depends(require_permission(DOOR_REQUEST_APPROVE)),
):
    resolved = await requests.resolve_request(
        request_id,
        body.status,
        reason=body.reason,
        user_id=principal.user_id,
        ip_address=client_ip(request),
    )
    return respond(f"Door request {resolved['status']} successfully", resolved)


@router.get("/buildings/{building_id}/floors/{floor_id}/doors/{door_id}/requests")
async def list_door_requests_for_door(
    building_id: int,
    floor_id: int,
    door_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    status: str | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(DOOR_REQUEST_VIEW)),
):
    data = await service.list_requests_for_door(
        db, building_id, floor_id, door_id, page=page, limit=limit, status=status
    )
    return respond("Door requests retrieved successfully", data)
