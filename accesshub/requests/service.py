"""Door request lifecycle: create, resolve (approve/reject) and queries.

Resolution is a single-writer transition. The pending -> resolved update is
conditional on the row still being pending, approval toggles the door lock
in the same transaction, and device sync plus broadcasts run only after the
transaction has committed.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accesshub.core.activity_logger import log_activity
from accesshub.core.errors import AlreadyProcessed, DoorInactive, InvalidStatus, NotFound, ValidationFailed
from accesshub.core.query import clamp_page, order_clause, page_envelope, paginate, search_filter
from accesshub.db.models import DoorModel, DoorRequestModel, FloorModel, utcnow
from accesshub.directory.service import door_payload, require_door
from accesshub.integration.device_sync import DeviceSync
from accesshub.locks.service import apply_lock_change, sync_lock_state
from accesshub.models import DoorStatus, RequestStatus, parse_enum, toggle_lock_status
from accesshub.realtime.hub import NotificationHub, door_room
from accesshub.requests import repository as repo

logger = structlog.get_logger()

_RESOLVED_STATUSES = {RequestStatus.APPROVED, RequestStatus.REJECTED}

_REQUEST_SORT = {
    "created_at": DoorRequestModel.created_at,
    "updated_at": DoorRequestModel.updated_at,
    "processed_at": DoorRequestModel.processed_at,
    "status": DoorRequestModel.status,
    "requester_name": DoorRequestModel.requester_name,
}


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class DoorRequestService:
    """Creates and resolves door requests."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        device_sync: DeviceSync | None,
        hub: NotificationHub | None,
    ):
        self._session_factory = session_factory
        self.device_sync = device_sync
        self.hub = hub

    async def _broadcast(self, event: str, data: dict, door_id: int | None) -> None:
        if self.hub is None:
            return
        await self.hub.emit_event(event, data)
        if door_id is not None:
            await self.hub.emit_to_room(door_room(door_id), event, data)

    async def create_request(
        self,
        door_id: int | None,
        requester_name: str | None,
        purpose: str | None,
        requester_phone: str | None = None,
        requester_email: str | None = None,
        user_id: int | None = None,
        ip_address: str | None = None,
    ) -> dict:
        """Create a pending request for an active door."""
        name = _clean(requester_name)
        reason_for_visit = _clean(purpose)
        if door_id is None or name is None or reason_for_visit is None:
            raise ValidationFailed("Door ID, requester name, and purpose are required")

        async with self._session_factory() as session, session.begin():
            door = await session.get(DoorModel, door_id)
            if door is None:
                raise NotFound("Door not found")
            if door.status != DoorStatus.ACTIVE.value:
                raise DoorInactive(f"Cannot create request. Door is {door.status}.")

            request = DoorRequestModel(
                door_id=door.id,
                requester_name=name,
                requester_phone=_clean(requester_phone),
                requester_email=_clean(requester_email),
                purpose=reason_for_visit,
                status=RequestStatus.PENDING.value,
            )
            session.add(request)
            await session.flush()

            await log_activity(
                session,
                "Created door request",
                "door_request",
                request.id,
                user_id=user_id,
                details={
                    "door_id": door.id,
                    "door_name": door.name,
                    "requester_name": name,
                    "purpose": reason_for_visit,
                },
                ip_address=ip_address,
            )
            created = await repo.get_joined(session, request.id)

        logger.info("door_request_created", request_id=created["id"], door_id=door_id)
        await self._broadcast(
            "new-door-request",
            {
                "id": created["id"],
                "door_id": door_id,
                "door_name": created["door_name"],
                "requester_name": name,
                "created_at": created["created_at"],
            },
            door_id,
        )
        return created

    async def resolve_request(
        self,
        request_id: int,
        status: str | None,
        reason: str | None = None,
        user_id: int | None = None,
        ip_address: str | None = None,
    ) -> dict:
        """Approve or reject a pending request.

        Approval blindly toggles the door lock (closed opens, anything else
        closes). A door that is no longer active fails the approval and the
        request stays pending.

        Raises:
            InvalidStatus: status is not approved/rejected
            NotFound: no such request
            AlreadyProcessed: the request was resolved earlier or concurrently
            DoorInactive: approving against a door that is not active
        """
        target = parse_enum(RequestStatus, status)
        if target not in _RESOLVED_STATUSES:
            raise InvalidStatus("Invalid status. Must be either approved or rejected")
        reason = _clean(reason)
        approved = target is RequestStatus.APPROVED

        lock_event: dict | None = None
        door_snapshot: dict | None = None
        device_token: str | None = None
        lock_reason: str | None = None

        async with self._session_factory() as session, session.begin():
            request = await session.get(DoorRequestModel, request_id)
            if request is None:
                raise NotFound("Door request not found")
            if request.status != RequestStatus.PENDING.value:
                raise AlreadyProcessed(f"Door request is already {request.status}")

            processed_at = utcnow()
            if not await repo.compare_and_resolve(
                session, request.id, target.value, user_id, processed_at, reason
            ):
                await session.refresh(request)
                raise AlreadyProcessed(f"Door request is already {request.status}")

            door = await session.get(DoorModel, request.door_id) if request.door_id else None

            if approved and door is not None:
                new_lock = toggle_lock_status(door.lock_status).value
                lock_reason = reason or f"Approved door request from {request.requester_name}"
                previous = await apply_lock_change(
                    session,
                    door,
                    new_lock,
                    changed_by=user_id,
                    request_id=request.id,
                    reason=lock_reason,
                )
                await log_activity(
                    session,
                    "Changed door lock status due to request approval",
                    "door",
                    door.id,
                    user_id=user_id,
                    details={
                        "door_name": door.name,
                        "previous_status": previous,
                        "new_status": new_lock,
                        "request_id": request.id,
                    },
                    ip_address=ip_address,
                )
                lock_event = {
                    "door_id": door.id,
                    "previous_status": previous,
                    "lock_status": new_lock,
                    "changed_by": user_id,
                    "request_id": request.id,
                }
                door_snapshot = door_payload(door)
                device_token = door.thingsboard_access_token

            await log_activity(
                session,
                "Approved door request" if approved else "Rejected door request",
                "door_request",
                request.id,
                user_id=user_id,
                details={
                    "requester_name": request.requester_name,
                    "door_id": request.door_id,
                    "door_name": door.name if door is not None else None,
                    "reason": reason,
                },
                ip_address=ip_address,
            )
            resolved = await repo.get_joined(session, request.id)

        # Committed; the rest is best effort
        if door_snapshot is not None:
            sync = await sync_lock_state(
                self.device_sync,
                door_snapshot,
                device_token,
                user_id,
                request_id=request_id,
                reason=lock_reason,
                user_name=resolved["processed_by_name"],
                requester_name=resolved["requester_name"],
            )
            logger.info(
                "door_lock_toggled_by_request",
                request_id=request_id,
                door_id=door_snapshot["id"],
                lock_status=door_snapshot["lock_status"],
                device_synced=sync.ok,
            )

        logger.info("door_request_resolved", request_id=request_id, status=target.value, user_id=user_id)

        await self._broadcast(
            "door-request-status-updated",
            {
                "id": request_id,
                "door_id": resolved["door_id"],
                "status": target.value,
                "processed_by": user_id,
                "processed_at": resolved["processed_at"],
            },
            resolved["door_id"],
        )
        if lock_event is not None:
            await self._broadcast("door-lock-status-updated", lock_event, lock_event["door_id"])

        return resolved


# ============================================================================
# Queries
# ============================================================================


async def get_request(session: AsyncSession, request_id: int) -> dict:
    request = await repo.get_joined(session, request_id)
    if request is None:
        raise NotFound("Door request not found")
    return request


async def list_requests(
    session: AsyncSession,
    page: int | None = None,
    limit: int | None = None,
    status: str | None = None,
    building_id: int | None = None,
    floor_id: int | None = None,
    door_id: int | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
) -> dict:
    page, limit = clamp_page(page, limit)
    stmt = repo.joined_query()

    if status:
        stmt = stmt.where(DoorRequestModel.status == status)
    if building_id is not None:
        stmt = stmt.where(FloorModel.building_id == building_id)
    if floor_id is not None:
        stmt = stmt.where(DoorModel.floor_id == floor_id)
    if door_id is not None:
        stmt = stmt.where(DoorRequestModel.door_id == door_id)
    term = search_filter(
        [
            DoorRequestModel.requester_name,
            DoorRequestModel.requester_email,
            DoorRequestModel.requester_phone,
            DoorRequestModel.purpose,
        ],
        search,
    )
    if term is not None:
        stmt = stmt.where(term)
    if start_date is not None:
        stmt = stmt.where(DoorRequestModel.created_at >= start_date)
    if end_date is not None:
        stmt = stmt.where(DoorRequestModel.created_at <= end_date)

    stmt = stmt.order_by(
        order_clause(_REQUEST_SORT, sort_by, sort_order, "created_at"),
        DoorRequestModel.id.desc(),
    )
    rows, total = await paginate(session, stmt, page, limit)
    return page_envelope([repo.joined_row(row) for row in rows], total, page, limit)


async def list_requests_for_door(
    session: AsyncSession,
    building_id: int,
    floor_id: int,
    door_id: int,
    page: int | None = None,
    limit: int | None = None,
    status: str | None = None,
) -> dict:
    door = await require_door(session, building_id, floor_id, door_id)
    envelope = await list_requests(session, page=page, limit=limit, status=status, door_id=door.id)
    envelope["door"] = door_payload(door)
    return envelope


async def get_door_request_status(
    session: AsyncSession, building_id: int, floor_id: int, door_id: int
) -> dict:
    """Latest pending request for the door, if any."""
    door = await require_door(session, building_id, floor_id, door_id)
    pending = await repo.latest_pending_for_door(session, door.id)
    return {
        "door_id": door.id,
        "door_name": door.name,
        "lock_status": door.lock_status,
        "has_pending_request": pending is not None,
        "request": pending.as_dict() if pending is not None else None,
    }


async def count_pending(session: AsyncSession) -> int:
    stmt = select(func.count(DoorRequestModel.id)).where(
        DoorRequestModel.status == RequestStatus.PENDING.value
    )
    return (await session.execute(stmt)).scalar_one()

