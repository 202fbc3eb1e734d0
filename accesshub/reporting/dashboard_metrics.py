"""Operations dashboard metrics.

Directory counts, door lock-state distribution and the last week's door
request activity, plus a per-floor door status breakdown for one building.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.models import BuildingModel, DoorModel, DoorRequestModel, FloorModel, UserModel
from accesshub.directory.service import require_building
from accesshub.models import DoorStatus, LockStatus, RequestStatus


@dataclass
class DashboardMetrics:
    """Unified dashboard metrics."""

    # Directory
    total_buildings: int
    total_floors: int
    total_doors: int
    total_users: int

    # Doors
    lock_status: list[dict] = field(default_factory=list)
    door_status: list[dict] = field(default_factory=list)

    # Requests
    pending_requests: int = 0
    weekly_activity: list[dict] = field(default_factory=list)
    hourly_activity: list[dict] = field(default_factory=list)

    generated_at: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


async def _count(session: AsyncSession, column) -> int:
    return (await session.execute(select(func.count(column)))).scalar_one()


async def _grouped(session: AsyncSession, column) -> list[dict]:
    stmt = select(column, func.count()).group_by(column).order_by(column)
    return [{"status": value, "count": count} for value, count in (await session.execute(stmt)).all()]


def _as_date(value: datetime | date) -> date:
    return value.date() if isinstance(value, datetime) else value


async def compute_dashboard_metrics(
    session: AsyncSession, now: datetime | None = None, days: int = 7
) -> DashboardMetrics:
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(days=days)

    stmt = select(DoorRequestModel.created_at, DoorRequestModel.status).where(
        DoorRequestModel.created_at >= since
    )
    recent = (await session.execute(stmt)).all()

    per_day: dict[date, dict[str, int]] = defaultdict(lambda: {"total": 0, "approved": 0})
    per_hour: dict[int, dict[str, int]] = defaultdict(lambda: {"total": 0, "approved": 0})
    for created_at, status in recent:
        approved = int(status == RequestStatus.APPROVED.value)
        day = per_day[_as_date(created_at)]
        day["total"] += 1
        day["approved"] += approved
        hour = per_hour[created_at.hour]
        hour["total"] += 1
        hour["approved"] += approved

    pending = (
        await session.execute(
            select(func.count(DoorRequestModel.id)).where(
                DoorRequestModel.status == RequestStatus.PENDING.value
            )
        )
    ).scalar_one()

    return DashboardMetrics(
        total_buildings=await _count(session, BuildingModel.id),
        total_floors=await _count(session, FloorModel.id),
        total_doors=await _count(session, DoorModel.id),
        total_users=await _count(session, UserModel.id),
        lock_status=await _grouped(session, DoorModel.lock_status),
        door_status=await _grouped(session, DoorModel.status),
        pending_requests=pending,
        weekly_activity=[
            {
                "date": day.isoformat(),
                "total_requests": counts["total"],
                "approved_requests": counts["approved"],
            }
            for day, counts in sorted(per_day.items(), reverse=True)
        ],
        hourly_activity=[
            {
                "hour": hour,
                "total_requests": counts["total"],
                "approved_requests": counts["approved"],
            }
            for hour, counts in sorted(per_hour.items())
        ],
        generated_at=now.isoformat(),
    )


async def door_status_by_floor(session: AsyncSession, building_id: int) -> list[dict]:
    """Per-floor lock and door status counts for one building.

    Floors with no doors are listed with zero counts.

    Raises:
        NotFound: unknown building
    """
    await require_building(session, building_id)

    floors = (
        await session.execute(
            select(FloorModel.id, FloorModel.name, FloorModel.floor_number)
            .where(FloorModel.building_id == building_id)
            .order_by(FloorModel.floor_number, FloorModel.id)
        )
    ).all()
    stats = {
        floor_id: {
            "floor_id": floor_id,
            "floor_name": name,
            "floor_number": number,
            "total_doors": 0,
            "lock_status": {status.value: 0 for status in LockStatus},
            "door_status": {status.value: 0 for status in DoorStatus},
        }
        for floor_id, name, number in floors
    }

    stmt = (
        select(DoorModel.floor_id, DoorModel.lock_status, DoorModel.status, func.count())
        .join(FloorModel, FloorModel.id == DoorModel.floor_id)
        .where(FloorModel.building_id == building_id)
        .group_by(DoorModel.floor_id, DoorModel.lock_status, DoorModel.status)
    )
    for floor_id, lock_status, door_status, count in (await session.execute(stmt)).all():
        floor = stats[floor_id]
        floor["total_doors"] += count
        floor["lock_status"][lock_status] = floor["lock_status"].get(lock_status, 0) + count
        floor["door_status"][door_status] = floor["door_status"].get(door_status, 0) + count

    return list(stats.values())
