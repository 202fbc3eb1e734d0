"""Database queries for door lock state and lock history."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Select, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.models import DoorLockHistoryModel, DoorModel, UserModel


async def compare_and_set_lock(
    session: AsyncSession, door_id: int, expected: str, new_status: str
) -> bool:
    """Set the door's lock status only if it still equals `expected`.

    Returns False when another writer changed it first.
    """
    result = await session.execute(
        update(DoorModel)
        .where(DoorModel.id == door_id, DoorModel.lock_status == expected)
        .values(lock_status=new_status)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


async def insert_history(
    session: AsyncSession,
    door_id: int,
    previous_status: str | None,
    new_status: str,
    changed_by: int | None,
    request_id: int | None = None,
    reason: str | None = None,
) -> DoorLockHistoryModel:
    entry = DoorLockHistoryModel(
        door_id=door_id,
        previous_status=previous_status,
        new_status=new_status,
        changed_by=changed_by,
        request_id=request_id,
        reason=reason,
    )
    session.add(entry)
    await session.flush()
    return entry


def history_query(
    door_ids: list[int] | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> Select:
    """History rows with the acting user's name and the door's name."""
    stmt = (
        select(
            DoorLockHistoryModel,
            UserModel.username,
            UserModel.full_name,
            DoorModel.name.label("door_name"),
        )
        .outerjoin(UserModel, UserModel.id == DoorLockHistoryModel.changed_by)
        .join(DoorModel, DoorModel.id == DoorLockHistoryModel.door_id)
    )
    if door_ids is not None:
        stmt = stmt.where(DoorLockHistoryModel.door_id.in_(door_ids))
    if start_date is not None:
        stmt = stmt.where(DoorLockHistoryModel.created_at >= start_date)
    if end_date is not None:
        stmt = stmt.where(DoorLockHistoryModel.created_at <= end_date)
    return stmt


async def list_history_for_doors(
    session: AsyncSession,
    door_ids: list[int],
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> list[dict]:
    """All history rows for the doors, oldest first, as flat dicts."""
    stmt = history_query(door_ids, start_date, end_date).order_by(
        DoorLockHistoryModel.created_at.asc(), DoorLockHistoryModel.id.asc()
    )
    rows = (await session.execute(stmt)).all()
    return [history_row(*row) for row in rows]


def history_row(entry: DoorLockHistoryModel, username, full_name, door_name) -> dict:
    return {
        "id": entry.id,
        "door_id": entry.door_id,
        "door_name": door_name,
        "previous_status": entry.previous_status,
        "new_status": entry.new_status,
        "changed_by": entry.changed_by,
        "changed_by_username": username,
        "changed_by_name": full_name,
        "request_id": entry.request_id,
        "reason": entry.reason,
        "created_at": entry.created_at,
    }
