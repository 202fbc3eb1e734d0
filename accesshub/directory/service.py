"""Building directory operations: buildings, floors, doors, door types, coordinates.

Functions take the caller's session and raise `AccessHubError` subclasses;
the web layer owns commit/rollback. Door operations that reach the device
platform commit their own writes first, so no transaction (and on SQLite no
write lock) is held across a network call.
"""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.core.activity_logger import log_activity
from accesshub.core.errors import Conflict, InvalidStatus, NotFound, ValidationFailed
from accesshub.core.query import clamp_page, order_clause, page_envelope, paginate, search_filter
from accesshub.db.models import (
    BuildingModel,
    DoorCoordinateModel,
    DoorModel,
    DoorTypeModel,
    FloorModel,
)
from accesshub.directory import repository as repo
from accesshub.integration.device_sync import DeviceSync
from accesshub.models import BuildingStatus, DoorStatus, FloorStatus, LockStatus, parse_enum

logger = structlog.get_logger()

_BUILDING_SORT = {
    "name": BuildingModel.name,
    "created_at": BuildingModel.created_at,
    "updated_at": BuildingModel.updated_at,
    "status": BuildingModel.status,
}
_FLOOR_SORT = {
    "floor_number": FloorModel.floor_number,
    "name": FloorModel.name,
    "created_at": FloorModel.created_at,
}
_DOOR_SORT = {
    "name": DoorModel.name,
    "status": DoorModel.status,
    "lock_status": DoorModel.lock_status,
    "created_at": DoorModel.created_at,
}


def _require_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationFailed(f"{field} is required")
    return str(value).strip()


def _apply(model, changes: dict[str, Any], allowed: set[str]) -> None:
    for key, value in changes.items():
        if key in allowed:
            setattr(model, key, value)


# ============================================================================
# Buildings
# ============================================================================


async def require_building(session: AsyncSession, building_id: int) -> BuildingModel:
    building = await repo.get_building(session, building_id)
    if building is None:
        raise NotFound("Building not found")
    return building


async def list_buildings(
    session: AsyncSession,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    page, limit = clamp_page(page, limit)
    stmt = select(BuildingModel)
    term = search_filter([BuildingModel.name, BuildingModel.address], search)
    if term is not None:
        stmt = stmt.where(term)
    if status:
        stmt = stmt.where(BuildingModel.status == status)
    stmt = stmt.order_by(order_clause(_BUILDING_SORT, sort_by, sort_order, "created_at"))

    rows, total = await paginate(session, stmt, page, limit)
    return page_envelope([row[0].as_dict() for row in rows], total, page, limit)


async def get_building(session: AsyncSession, building_id: int) -> dict:
    building = await require_building(session, building_id)
    data = building.as_dict()
    data["floor_count"] = (
        await session.execute(
            select(func.count(FloorModel.id)).where(FloorModel.building_id == building_id)
        )
    ).scalar_one()
    return data


async def create_building(
    session: AsyncSession,
    data: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    name = _require_text(data.get("name"), "Building name")
    status = data.get("status") or BuildingStatus.ACTIVE.value
    if parse_enum(BuildingStatus, status) is None:
        raise InvalidStatus("Invalid status. Must be either active or inactive")

    building = BuildingModel(name=name, address=data.get("address"), status=status)
    session.add(building)
    await session.flush()

    await log_activity(
        session,
        "Created building",
        "building",
        building.id,
        user_id=user_id,
        details={"name": name},
        ip_address=ip_address,
    )
    return building.as_dict()


async def update_building(
    session: AsyncSession,
    building_id: int,
    changes: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    building = await require_building(session, building_id)
    if "name" in changes:
        changes["name"] = _require_text(changes["name"], "Building name")
    if "status" in changes and parse_enum(BuildingStatus, changes["status"]) is None:
        raise InvalidStatus("Invalid status. Must be either active or inactive")

    _apply(building, changes, {"name", "address", "status"})
    await session.flush()

    await log_activity(
        session,
        "Updated building",
        "building",
        building.id,
        user_id=user_id,
        details={"changes": changes},
        ip_address=ip_address,
    )
    return building.as_dict()


async def update_building_status(
    session: AsyncSession,
    building_id: int,
    status: str | None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    if parse_enum(BuildingStatus, status) is None:
        raise InvalidStatus("Invalid status. Must be either active or inactive")
    building = await require_building(session, building_id)
    previous = building.status
    building.status = status
    await session.flush()

    await log_activity(
        session,
        f"Changed building status from {previous} to {status}",
        "building",
        building.id,
        user_id=user_id,
        ip_address=ip_address,
    )
    return building.as_dict()


async def delete_building(
    session: AsyncSession,
    building_id: int,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    """Hard delete; floors, doors and coordinates go with it."""
    building = await require_building(session, building_id)
    name = building.name
    await repo.delete_building(session, building_id)
    await log_activity(
        session,
        "Deleted building",
        "building",
        building_id,
        user_id=user_id,
        details={"name": name},
        ip_address=ip_address,
    )


# ============================================================================
# Floors
# ============================================================================


async def require_floor(session: AsyncSession, building_id: int, floor_id: int) -> FloorModel:
    await require_building(session, building_id)
    floor = await repo.get_floor(session, building_id, floor_id)
    if floor is None:
        raise NotFound("Floor not found")
    return floor


async def _check_floor_unique(
    session: AsyncSession,
    building_id: int,
    name: str | None,
    floor_number: int | None,
    exclude_id: int | None = None,
) -> None:
    duplicate = await repo.find_duplicate_floor(
        session, building_id, name=name, floor_number=floor_number, exclude_id=exclude_id
    )
    if duplicate is None:
        return
    if name is not None and duplicate.name.lower() == name.lower():
        raise Conflict("A floor with this name already exists in this building")
    raise Conflict("A floor with this number already exists in this building")


async def list_floors(
    session: AsyncSession,
    building_id: int,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    await require_building(session, building_id)
    page, limit = clamp_page(page, limit)

    stmt = select(FloorModel).where(FloorModel.building_id == building_id)
    term = search_filter([FloorModel.name], search)
    if term is not None:
        stmt = stmt.where(term)
    if status:
        stmt = stmt.where(FloorModel.status == status)
    stmt = stmt.order_by(order_clause(_FLOOR_SORT, sort_by, sort_order or "asc", "floor_number"))

    rows, total = await paginate(session, stmt, page, limit)
    return page_envelope([row[0].as_dict() for row in rows], total, page, limit)


async def get_floor(session: AsyncSession, building_id: int, floor_id: int) -> dict:
    floor = await require_floor(session, building_id, floor_id)
    return floor.as_dict()


async def create_floor(
    session: AsyncSession,
    building_id: int,
    data: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    await require_building(session, building_id)
    name = _require_text(data.get("name"), "Floor name")
    floor_number = data.get("floor_number")
    if floor_number is None:
        raise ValidationFailed("Floor number is required")
    status = data.get("status") or FloorStatus.ACTIVE.value
    if parse_enum(FloorStatus, status) is None:
        raise InvalidStatus("Invalid status. Must be either active or inactive")

    await _check_floor_unique(session, building_id, name, floor_number)

    floor = FloorModel(
        building_id=building_id,
        name=name,
        floor_number=floor_number,
        status=status,
        floor_plan_image=data.get("floor_plan_image"),
    )
    session.add(floor)
    await session.flush()

    await log_activity(
        session,
        "Created floor",
        "floor",
        floor.id,
        user_id=user_id,
        details={"building_id": building_id, "name": name, "floor_number": floor_number},
        ip_address=ip_address,
    )
    return floor.as_dict()


async def update_floor(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    changes: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    """Update a floor; `building_id` cannot be changed here."""
    floor = await require_floor(session, building_id, floor_id)
    changes.pop("building_id", None)
    if "name" in changes:
        changes["name"] = _require_text(changes["name"], "Floor name")
    if "status" in changes and parse_enum(FloorStatus, changes["status"]) is None:
        raise InvalidStatus("Invalid status. Must be either active or inactive")

    await _check_floor_unique(
        session,
        building_id,
        changes.get("name"),
        changes.get("floor_number"),
        exclude_id=floor.id,
    )

    _apply(floor, changes, {"name", "floor_number", "status", "floor_plan_image"})
    await session.flush()

    await log_activity(
        session,
        "Updated floor",
        "floor",
        floor.id,
        user_id=user_id,
        details={"changes": changes},
        ip_address=ip_address,
    )
    return floor.as_dict()


async def update_floor_status(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    status: str | None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    if parse_enum(FloorStatus, status) is None:
        raise InvalidStatus("Invalid status. Must be either active or inactive")
    floor = await require_floor(session, building_id, floor_id)
    previous = floor.status
    floor.status = status
    await session.flush()

    await log_activity(
        session,
        f"Changed floor status from {previous} to {status}",
        "floor",
        floor.id,
        user_id=user_id,
        ip_address=ip_address,
    )
    return floor.as_dict()


async def set_floor_plan(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    image_path: str | None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    floor = await require_floor(session, building_id, floor_id)
    floor.floor_plan_image = image_path
    await session.flush()

    await log_activity(
        session,
        "Updated floor plan",
        "floor",
        floor.id,
        user_id=user_id,
        details={"floor_plan_image": image_path},
        ip_address=ip_address,
    )
    return floor.as_dict()


async def delete_floor(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    floor = await require_floor(session, building_id, floor_id)
    name = floor.name
    await repo.delete_floor(session, floor_id)
    await log_activity(
        session,
        "Deleted floor",
        "floor",
        floor_id,
        user_id=user_id,
        details={"building_id": building_id, "name": name},
        ip_address=ip_address,
    )


# ============================================================================
# Doors
# ============================================================================


async def require_door(
    session: AsyncSession, building_id: int, floor_id: int, door_id: int
) -> DoorModel:
    await require_floor(session, building_id, floor_id)
    door = await repo.get_door(session, floor_id, door_id)
    if door is None:
        raise NotFound("Door not found")
    return door


async def _require_door_type(session: AsyncSession, door_type_id: int | None) -> None:
    if door_type_id is not None and await session.get(DoorTypeModel, door_type_id) is None:
        raise NotFound("Door type not found")


def door_payload(door: DoorModel, door_type_name: str | None = None) -> dict:
    """Door row for API responses; the device access token is never exposed."""
    data = door.as_dict()
    data.pop("thingsboard_access_token", None)
    data["door_type_name"] = door_type_name
    return data


async def list_doors(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
    status: str | None = None,
    lock_status: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    await require_floor(session, building_id, floor_id)
    page, limit = clamp_page(page, limit)

    stmt = (
        select(DoorModel, DoorTypeModel.name)
        .outerjoin(DoorTypeModel, DoorTypeModel.id == DoorModel.door_type_id)
        .where(DoorModel.floor_id == floor_id)
    )
    term = search_filter([DoorModel.name, DoorModel.description], search)
    if term is not None:
        stmt = stmt.where(term)
    if status:
        stmt = stmt.where(DoorModel.status == status)
    if lock_status:
        stmt = stmt.where(DoorModel.lock_status == lock_status)
    stmt = stmt.order_by(order_clause(_DOOR_SORT, sort_by, sort_order or "asc", "name"))

    rows, total = await paginate(session, stmt, page, limit)
    return page_envelope([door_payload(door, type_name) for door, type_name in rows], total, page, limit)


async def get_door(session: AsyncSession, building_id: int, floor_id: int, door_id: int) -> dict:
    door = await require_door(session, building_id, floor_id, door_id)
    type_name = None
    if door.door_type_id is not None:
        door_type = await session.get(DoorTypeModel, door.door_type_id)
        type_name = door_type.name if door_type else None
    data = door_payload(door, type_name)
    data["coordinates"] = [c.as_dict() for c in await repo.list_coordinates(session, door.id)]
    return data


async def create_door(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    data: dict[str, Any],
    device_sync: DeviceSync | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> DoorModel:
    """Create a door (active, closed) and try to provision its device."""
    await require_floor(session, building_id, floor_id)
    name = _require_text(data.get("name"), "Door name")
    status = data.get("status") or DoorStatus.ACTIVE.value
    if parse_enum(DoorStatus, status) is None:
        raise InvalidStatus("Invalid status. Must be one of active, inactive or maintenance")
    await _require_door_type(session, data.get("door_type_id"))

    door = DoorModel(
        floor_id=floor_id,
        name=name,
        description=data.get("description"),
        door_type_id=data.get("door_type_id"),
        status=status,
        lock_status=LockStatus.CLOSED.value,
    )

    session.add(door)
    await session.flush()

    await log_activity(
        session,
        "Created door",
        "door",
        door.id,
        user_id=user_id,
        details={"floor_id": floor_id, "name": name},
        ip_address=ip_address,
    )
    await session.commit()

    if device_sync is not None:
        result = await device_sync.provision_device(name)
        if result.ok:
            door.thingsboard_device_id = result.data.get("device_id")
            door.thingsboard_access_token = result.data.get("access_token")
            await session.commit()
    return door


async def update_door(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    changes: dict[str, Any],
    device_sync: DeviceSync | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    """Update door details. `floor_id` and `lock_status` are not writable here."""
    door = await require_door(session, building_id, floor_id, door_id)
    changes.pop("floor_id", None)
    changes.pop("lock_status", None)
    if "name" in changes:
        changes["name"] = _require_text(changes["name"], "Door name")
    if "status" in changes and parse_enum(DoorStatus, changes["status"]) is None:
        raise InvalidStatus("Invalid status. Must be one of active, inactive or maintenance")
    if "door_type_id" in changes:
        await _require_door_type(session, changes["door_type_id"])

    _apply(door, changes, {"name", "description", "door_type_id", "status"})
    await session.flush()

    await log_activity(
        session,
        "Updated door",
        "door",
        door.id,
        user_id=user_id,
        details={"changes": changes},
        ip_address=ip_address,
    )
    await session.commit()

    if device_sync is not None:
        await device_sync.push_door_state(
            door.thingsboard_device_id,
            door_status=door.status,
            lock_status=door.lock_status,
            user_id=user_id,
        )
    return door_payload(door)


async def update_door_status(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    status: str | None,
    device_sync: DeviceSync | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    if parse_enum(DoorStatus, status) is None:
        raise InvalidStatus("Invalid status. Must be one of active, inactive or maintenance")
    door = await require_door(session, building_id, floor_id, door_id)
    previous = door.status
    door.status = status
    await session.flush()

    await log_activity(
        session,
        f"Changed door status from {previous} to {status}",
        "door",
        door.id,
        user_id=user_id,
        details={"previous_status": previous, "new_status": status},
        ip_address=ip_address,
    )
    await session.commit()

    if device_sync is not None:
        await device_sync.push_door_state(
            door.thingsboard_device_id,
            door_status=status,
            lock_status=door.lock_status,
            user_id=user_id,
            reason=f"Door status changed to {status}",
        )
    return door_payload(door)


async def delete_door(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    device_sync: DeviceSync | None = None,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> DoorModel:
    door = await require_door(session, building_id, floor_id, door_id)
    device_id = door.thingsboard_device_id
    name = door.name
    await repo.delete_door(session, door_id)
    await log_activity(
        session,
        "Deleted door",
        "door",
        door_id,
        user_id=user_id,
        details={"floor_id": floor_id, "name": name},
        ip_address=ip_address,
    )
    await session.commit()

    if device_sync is not None:
        await device_sync.remove_device(device_id)
    return door


# ============================================================================
# Door types
# ============================================================================


async def require_door_type(session: AsyncSession, door_type_id: int) -> DoorTypeModel:
    door_type = await session.get(DoorTypeModel, door_type_id)
    if door_type is None:
        raise NotFound("Door type not found")
    return door_type


async def list_door_types(
    session: AsyncSession,
    page: int | None = None,
    limit: int | None = None,
    search: str | None = None,
) -> dict:
    page, limit = clamp_page(page, limit)
    stmt = select(DoorTypeModel)
    term = search_filter([DoorTypeModel.name, DoorTypeModel.description], search)
    if term is not None:
        stmt = stmt.where(term)
    stmt = stmt.order_by(DoorTypeModel.name.asc())

    rows, total = await paginate(session, stmt, page, limit)
    return page_envelope([row[0].as_dict() for row in rows], total, page, limit)


async def create_door_type(
    session: AsyncSession,
    data: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    name = _require_text(data.get("name"), "Door type name")
    if await repo.find_door_type_by_name(session, name) is not None:
        raise Conflict("Door type with this name already exists")

    door_type = DoorTypeModel(name=name, description=data.get("description"))
    session.add(door_type)
    await session.flush()

    await log_activity(
        session, "Created door type", "door_type", door_type.id,
        user_id=user_id, details={"name": name}, ip_address=ip_address,
    )
    return door_type.as_dict()


async def update_door_type(
    session: AsyncSession,
    door_type_id: int,
    changes: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    door_type = await require_door_type(session, door_type_id)
    if "name" in changes:
        changes["name"] = _require_text(changes["name"], "Door type name")
        if await repo.find_door_type_by_name(session, changes["name"], exclude_id=door_type_id):
            raise Conflict("Door type with this name already exists")

    _apply(door_type, changes, {"name", "description"})
    await session.flush()

    await log_activity(
        session, "Updated door type", "door_type", door_type.id,
        user_id=user_id, details={"changes": changes}, ip_address=ip_address,
    )
    return door_type.as_dict()


async def delete_door_type(
    session: AsyncSession,
    door_type_id: int,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    door_type = await require_door_type(session, door_type_id)
    await session.delete(door_type)
    await session.flush()
    await log_activity(
        session, "Deleted door type", "door_type", door_type_id,
        user_id=user_id, details={"name": door_type.name}, ip_address=ip_address,
    )


# ============================================================================
# Coordinates
# ============================================================================


def _coordinate_value(data: dict[str, Any], field: str, required: bool) -> float | None:
    value = data.get(field)
    if value is None:
        if required:
            raise ValidationFailed(f"{field} is required")
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"{field} must be a number") from None


async def list_coordinates(
    session: AsyncSession, building_id: int, floor_id: int, door_id: int
) -> list[dict]:
    await require_door(session, building_id, floor_id, door_id)
    return [c.as_dict() for c in await repo.list_coordinates(session, door_id)]


async def require_coordinate(
    session: AsyncSession, building_id: int, floor_id: int, door_id: int, coordinate_id: int
) -> DoorCoordinateModel:
    await require_door(session, building_id, floor_id, door_id)
    coordinate = await repo.get_coordinate(session, door_id, coordinate_id)
    if coordinate is None:
        raise NotFound("Door coordinate not found")
    return coordinate


async def create_coordinate(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    data: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    await require_door(session, building_id, floor_id, door_id)
    coordinate = DoorCoordinateModel(
        door_id=door_id,
        x_coordinate=_coordinate_value(data, "x_coordinate", required=True),
        y_coordinate=_coordinate_value(data, "y_coordinate", required=True),
        z_coordinate=_coordinate_value(data, "z_coordinate", required=False),
        rotation=_coordinate_value(data, "rotation", required=False),
    )
    session.add(coordinate)
    await session.flush()

    await log_activity(
        session, "Created door coordinate", "door_coordinate", coordinate.id,
        user_id=user_id, details={"door_id": door_id}, ip_address=ip_address,
    )
    return coordinate.as_dict()


async def update_coordinate(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    coordinate_id: int,
    changes: dict[str, Any],
    user_id: int | None = None,
    ip_address: str | None = None,
) -> dict:
    """Update a coordinate; `door_id` cannot be changed here."""
    coordinate = await require_coordinate(session, building_id, floor_id, door_id, coordinate_id)
    changes.pop("door_id", None)
    for field in ("x_coordinate", "y_coordinate"):
        if field in changes:
            changes[field] = _coordinate_value(changes, field, required=True)
    for field in ("z_coordinate", "rotation"):
        if field in changes:
            changes[field] = _coordinate_value(changes, field, required=False)

    _apply(coordinate, changes, {"x_coordinate", "y_coordinate", "z_coordinate", "rotation"})
    await session.flush()

    await log_activity(
        session, "Updated door coordinate", "door_coordinate", coordinate.id,
        user_id=user_id, details={"door_id": door_id, "changes": changes}, ip_address=ip_address,
    )
    return coordinate.as_dict()


async def delete_coordinate(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    coordinate_id: int,
    user_id: int | None = None,
    ip_address: str | None = None,
) -> None:
    coordinate = await require_coordinate(session, building_id, floor_id, door_id, coordinate_id)
    await session.delete(coordinate)
    await session.flush()
    await log_activity(
        session, "Deleted door coordinate", "door_coordinate", coordinate_id,
        user_id=user_id, details={"door_id": door_id}, ip_address=ip_address,
    )
