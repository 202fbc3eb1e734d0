"""Door lock state changes and lock history.

`apply_lock_change` is the only writer of `Door.lock_status`; both the
administrative lock endpoint and request approval go through it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accesshub.core.activity_logger import log_activity
from accesshub.core.errors import Conflict, DoorInactive, InvalidStatus, NoOpRejected
from accesshub.core.query import clamp_page, page_envelope, paginate
from accesshub.db.models import DoorLockHistoryModel, DoorModel, UserModel, jsonable
from accesshub.directory.service import door_payload, require_door
from accesshub.integration.device_sync import DeviceSync, SyncResult
from accesshub.locks import repository as repo
from accesshub.models import DoorStatus, LockStatus, parse_enum
from accesshub.realtime.hub import NotificationHub, door_room

logger = structlog.get_logger()


async def apply_lock_change(
    session: AsyncSession,
    door: DoorModel,
    new_status: str,
    changed_by: int | None,
    request_id: int | None = None,
    reason: str | None = None,
) -> str:
    """Move the door's lock to `new_status` and record history.

    The write is conditional on the lock status the caller read; losing that
    race raises `Conflict`. Returns the previous status.
    """
    if door.status != DoorStatus.ACTIVE.value:
        raise DoorInactive(f"Cannot change lock status. Door is {door.status}.")

    previous = door.lock_status
    if not await repo.compare_and_set_lock(session, door.id, previous, new_status):
        raise Conflict("Door lock status was changed by another request")

    door.lock_status = new_status
    await repo.insert_history(
        session,
        door_id=door.id,
        previous_status=previous,
        new_status=new_status,
        changed_by=changed_by,
        request_id=request_id,
        reason=reason,
    )
    return previous


async def sync_lock_state(
    device_sync: DeviceSync | None,
    door: dict[str, Any],
    device_token: str | None,
    user_id: int | None,
    request_id: int | None = None,
    reason: str | None = None,
    *,
    user_name: str | None = None,
    requester_name: str | None = None,
) -> SyncResult:
    if device_sync is None:
        return SyncResult.skip("device sync disabled")
    return await device_sync.push_lock_state(
        door.get("thingsboard_device_id"),
        device_token,
        lock_status=door["lock_status"],
        door_status=door["status"],
        user_id=user_id,
        user_name=user_name,
        request_id=request_id,
        requester_name=requester_name,
        reason=reason,
    )


class LockService:
    """Administrative lock changes: validate, write, then sync and broadcast."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        device_sync: DeviceSync | None,
        hub: NotificationHub | None,
    ):
        self._session_factory = session_factory
        self.device_sync = device_sync
        self.hub = hub

    async def update_lock_status(
        self,
        building_id: int,
        floor_id: int,
        door_id: int,
        lock_status: str | None,
        reason: str | None = None,
        request_id: int | None = None,
        user_id: int | None = None,
        ip_address: str | None = None,
    ) -> dict:
        if parse_enum(LockStatus, lock_status) is None:
            raise InvalidStatus("Invalid lock status. Must be either open or closed")

        async with self._session_factory() as session, session.begin():
            door = await require_door(session, building_id, floor_id, door_id)
            if door.status != DoorStatus.ACTIVE.value:
                raise DoorInactive(f"Cannot change lock status. Door is {door.status}.")
            if door.lock_status == lock_status:
                raise NoOpRejected(f"Door is already {lock_status}")

            previous = await apply_lock_change(
                session, door, lock_status, user_id, request_id=request_id, reason=reason
            )
            await log_activity(
                session,
                f"Changed door lock status from {previous} to {lock_status}",
                "door",
                door.id,
                user_id=user_id,
                details={
                    "door_name": door.name,
                    "previous_status": previous,
                    "new_status": lock_status,
                    "reason": reason,
                    "request_id": request_id,
                },
                ip_address=ip_address,
            )
            snapshot = door_payload(door)
            device_token = door.thingsboard_access_token
            actor = await session.get(UserModel, user_id) if user_id is not None else None
            actor_name = actor.full_name if actor is not None else None

        # Committed; the rest is best effort
        sync = await sync_lock_state(
            self.device_sync, snapshot, device_token, user_id, request_id, reason, user_name=actor_name
        )
        logger.info(
            "door_lock_updated",
            door_id=door_id,
            previous_status=previous,
            new_status=lock_status,
            device_synced=sync.ok,
        )

        if self.hub is not None:
            event = {
                "door_id": door_id,
                "previous_status": previous,
                "lock_status": lock_status,
                "changed_by": user_id,
                "request_id": request_id,
            }
            await self.hub.emit_event("door-lock-status-updated", event)
            await self.hub.emit_to_room(door_room(door_id), "door-lock-status-updated", event)

        return snapshot


_HISTORY_SORT = {
    "asc": DoorLockHistoryModel.created_at.asc(),
    "desc": DoorLockHistoryModel.created_at.desc(),
}


async def get_lock_history(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    page: int | None = None,
    limit: int | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_order: str | None = None,
) -> dict:
    """Paginated history for one door plus a summary of the door itself."""
    door = await require_door(session, building_id, floor_id, door_id)
    page, limit = clamp_page(page, limit)

    order = _HISTORY_SORT.get((sort_order or "desc").lower(), _HISTORY_SORT["desc"])
    stmt = repo.history_query([door.id], start_date, end_date).order_by(
        order, DoorLockHistoryModel.id.desc()
    )
    rows, total = await paginate(session, stmt, page, limit)

    envelope = page_envelope(
        [{k: jsonable(v) for k, v in repo.history_row(*row).items()} for row in rows],
        total,
        page,
        limit,
    )
    envelope["door"] = {
        "id": door.id,
        "name": door.name,
        "current_lock_status": door.lock_status,
    }
    return envelope
