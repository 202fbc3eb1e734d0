"""Guest (unauthenticated) routes.

A read-only mirror of the directory for visitors, plus door request
creation and a door's pending-request status.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.directory import service as directory
from accesshub.models import BuildingStatus
from accesshub.requests import service as door_requests
from accesshub.requests.service import DoorRequestService
from accesshub.web.dependencies import client_ip, get_request_service
from accesshub.web.models import DoorRequestCreate
from accesshub.web.responses import created, respond

router = APIRouter(prefix="/guest", tags=["guest"])

_DOORS = "/buildings/{building_id}/floors/{floor_id}/doors"


@router.get("/buildings")
async def list_buildings(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    data = await directory.list_buildings(
        db, page=page, limit=limit, search=search, status=BuildingStatus.ACTIVE.value
    )
    return respond("Buildings retrieved successfully", data)


@router.get("/buildings/{building_id}")
async def get_building(building_id: int, db: AsyncSession = Depends(get_db)):
    return respond("Building retrieved successfully", await directory.get_building(db, building_id))


@router.get("/buildings/{building_id}/floors")
async def list_floors(
    building_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    db: AsyncSession = Depends(get_db),
):
    data = await directory.list_floors(db, building_id, page=page, limit=limit)
    return respond("Floors retrieved successfully", data)


@router.get("/buildings/{building_id}/floors/{floor_id}")
async def get_floor(building_id: int, floor_id: int, db: AsyncSession = Depends(get_db)):
    return respond("Floor retrieved successfully", await directory.get_floor(db, building_id, floor_id))


@router.get(_DOORS)
async def list_doors(
    building_id: int,
    floor_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
):
    data = await directory.list_doors(db, building_id, floor_id, page=page, limit=limit, search=search)
    return respond("Doors retrieved successfully", data)


@router.get(_DOORS + "/{door_id}")
async def get_door(building_id: int, floor_id: int, door_id: int, db: AsyncSession = Depends(get_db)):
    door = await directory.get_door(db, building_id, floor_id, door_id)
    return respond("Door retrieved successfully", door)


@router.get(_DOORS + "/{door_id}/coordinates")
async def list_coordinates(
    building_id: int, floor_id: int, door_id: int, db: AsyncSession = Depends(get_db)
):
    data = await directory.list_coordinates(db, building_id, floor_id, door_id)
    return respond("Door coordinates retrieved successfully", data)


@router.get(_DOORS + "/{door_id}/request-status")
async def door_request_status(
    building_id: int, floor_id: int, door_id: int, db: AsyncSession = Depends(get_db)
):
    data = await door_requests.get_door_request_status(db, building_id, floor_id, door_id)
    return respond("Door request status retrieved successfully", data)


@router.post("/door-requests")
async def create_door_request(
    body: DoorRequestCreate,
    request: Request,
    requests: DoorRequestService = Depends(get_request_service),
):
    door_request = await requests.create_request(
        body.door_id,
        body.requester_name,
        body.purpose,
        requester_phone=body.requester_phone,
        requester_email=body.requester_email,
        ip_address=client_ip(request),
    )
    return created("Door request created successfully", door_request)
