"""Database queries for buildings, floors, doors, door types and coordinates.

Every lookup below a building is scoped to its parent so an id belonging to
another building or floor reads as missing.
"""

from __future__ import annotations

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.models import (
    BuildingModel,
    DoorCoordinateModel,
    DoorModel,
    DoorTypeModel,
    FloorModel,
)


# ============================================================================
# Buildings
# ============================================================================


async def get_building(session: AsyncSession, building_id: int) -> BuildingModel | None:
    return await session.get(BuildingModel, building_id)


async def delete_building(session: AsyncSession, building_id: int) -> None:
    await session.execute(delete(BuildingModel).where(BuildingModel.id == building_id))


# ============================================================================
# Floors
# ============================================================================


async def get_floor(session: AsyncSession, building_id: int, floor_id: int) -> FloorModel | None:
    stmt = select(FloorModel).where(
        FloorModel.id == floor_id,
        FloorModel.building_id == building_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def find_duplicate_floor(
    session: AsyncSession,
    building_id: int,
    name: str | None = None,
    floor_number: int | None = None,
    exclude_id: int | None = None,
) -> FloorModel | None:
    """Return a floor of the building sharing `name` or `floor_number`."""
    clauses = []
    if name is not None:
        clauses.append(func.lower(FloorModel.name) == name.lower())
    if floor_number is not None:
        clauses.append(FloorModel.floor_number == floor_number)
    if not clauses:
        return None

    stmt = select(FloorModel).where(FloorModel.building_id == building_id, or_(*clauses))
    if exclude_id is not None:
        stmt = stmt.where(FloorModel.id != exclude_id)
    return (await session.execute(stmt.limit(1))).scalar_one_or_none()


async def delete_floor(session: AsyncSession, floor_id: int) -> None:
    await session.execute(delete(FloorModel).where(FloorModel.id == floor_id))


# ============================================================================
# Doors
# ============================================================================


async def get_door(session: AsyncSession, floor_id: int, door_id: int) -> DoorModel | None:
    stmt = select(DoorModel).where(DoorModel.id == door_id, DoorModel.floor_id == floor_id)
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_door_in_building(
    session: AsyncSession, building_id: int, floor_id: int, door_id: int
) -> DoorModel | None:
    stmt = (
        select(DoorModel)
        .join(FloorModel, FloorModel.id == DoorModel.floor_id)
        .where(
            DoorModel.id == door_id,
            DoorModel.floor_id == floor_id,
            FloorModel.building_id == building_id,
        )
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def get_door_with_location(session: AsyncSession, door_id: int) -> dict | None:
    """Door row plus its floor and building names."""
    stmt = (
        select(DoorModel, FloorModel, BuildingModel)
        .join(FloorModel, FloorModel.id == DoorModel.floor_id)
        .join(BuildingModel, BuildingModel.id == FloorModel.building_id)
        .where(DoorModel.id == door_id)
    )
    row = (await session.execute(stmt)).first()
    if row is None:
        return None
    door, floor, building = row
    data = door.as_dict()
    data.update(
        floor_name=floor.name,
        floor_number=floor.floor_number,
        building_id=building.id,
        building_name=building.name,
    )
    return data


async def list_bound_doors(session: AsyncSession) -> list[DoorModel]:
    """Doors bound to an external device."""
    stmt = select(DoorModel).where(
        DoorModel.thingsboard_device_id.is_not(None),
        DoorModel.thingsboard_access_token.is_not(None),
    )
    return list((await session.execute(stmt)).scalars().all())


async def delete_door(session: AsyncSession, door_id: int) -> None:
    await session.execute(delete(DoorModel).where(DoorModel.id == door_id))


# ============================================================================
# Door types
# ============================================================================


async def find_door_type_by_name(
    session: AsyncSession, name: str, exclude_id: int | None = None
) -> DoorTypeModel | None:
    stmt = select(DoorTypeModel).where(func.lower(DoorTypeModel.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(DoorTypeModel.id != exclude_id)
    return (await session.execute(stmt.limit(1))).scalar_one_or_none()


# ============================================================================
# Coordinates
# ============================================================================


async def list_coordinates(session: AsyncSession, door_id: int) -> list[DoorCoordinateModel]:
    stmt = (
        select(DoorCoordinateModel)
        .where(DoorCoordinateModel.door_id == door_id)
        .order_by(DoorCoordinateModel.id)
    )
    return list((await session.execute(stmt)).scalars().all())


async def get_coordinate(
    session: AsyncSession, door_id: int, coordinate_id: int
) -> DoorCoordinateModel | None:
    stmt = select(DoorCoordinateModel).where(
        DoorCoordinateModel.id == coordinate_id,
        DoorCoordinateModel.door_id == door_id,
    )
    return (await session.execute(stmt)).scalar_one_or_none()
