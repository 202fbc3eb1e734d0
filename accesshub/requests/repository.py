"""Database queries for door requests."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.models import (
    BuildingModel,
    DoorModel,
    DoorRequestModel,
    FloorModel,
    UserModel,
    jsonable,
)
from accesshub.models import RequestStatus


def joined_query() -> Select:
    """Requests with door, floor, building and processor names."""
    return (
        select(
            DoorRequestModel,
            DoorModel.name.label("door_name"),
            FloorModel.id.label("floor_id"),
            FloorModel.name.label("floor_name"),
            FloorModel.floor_number.label("floor_number"),
            BuildingModel.id.label("building_id"),
            BuildingModel.name.label("building_name"),
            UserModel.full_name.label("processed_by_name"),
        )
        .outerjoin(DoorModel, DoorModel.id == DoorRequestModel.door_id)
        .outerjoin(FloorModel, FloorModel.id == DoorModel.floor_id)
        .outerjoin(BuildingModel, BuildingModel.id == FloorModel.building_id)
        .outerjoin(UserModel, UserModel.id == DoorRequestModel.processed_by)
    )


def joined_row(row) -> dict:
    request, *_ = row
    data = request.as_dict()
    mapping = row._mapping
    for key in (
        "door_name",
        "floor_id",
        "floor_name",
        "floor_number",
        "building_id",
        "building_name",
        "processed_by_name",
    ):
        data[key] = jsonable(mapping[key])
    return data


async def get_joined(session: AsyncSession, request_id: int) -> dict | None:
    row = (
        await session.execute(joined_query().where(DoorRequestModel.id == request_id))
    ).first()
    return joined_row(row) if row is not None else None


async def compare_and_resolve(
    session: AsyncSession,
    request_id: int,
    status: str,
    processed_by: int | None,
    processed_at: datetime,
    reason: str | None,
) -> bool:
    """Resolve the request only while it is still pending.

    Returns False when another writer resolved it first.
    """
    result = await session.execute(
        update(DoorRequestModel)
        .where(
            DoorRequestModel.id == request_id,
            DoorRequestModel.status == RequestStatus.PENDING.value,
        )
        .values(
            status=status,
            processed_by=processed_by,
            processed_at=processed_at,
            reason=reason,
        )
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def latest_pending_for_door(session: AsyncSession, door_id: int) -> DoorRequestModel | None:
    stmt = (
        select(DoorRequestModel)
        .where(
            DoorRequestModel.door_id == door_id,
            DoorRequestModel.status == RequestStatus.PENDING.value,
        )
        .order_by(DoorRequestModel.created_at.desc(), DoorRequestModel.id.desc())
        .limit(1)
    )
    return (await session.execute(stmt)).scalar_one_or_none()
