"""Door access reports computed from lock history.

Aggregation happens in Python over the history rows for the selected doors,
so the same code runs on SQLite and PostgreSQL.
"""

from __future__ import annotations

from collections import Counter, defaultdict
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.core.errors import NotFound, ValidationFailed
from accesshub.db.models import DoorModel, FloorModel, jsonable
from accesshub.directory.service import require_building
from accesshub.locks.repository import list_history_for_doors
from accesshub.models import GroupBy, LockStatus, ReportType, parse_enum
from accesshub.reporting.csv_export import rows_to_csv

logger = structlog.get_logger()

ALL = "all"

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

_PERIOD_FORMATS = {
    GroupBy.HOUR: "%Y-%m-%d %H:00:00",
    GroupBy.DAY: "%Y-%m-%d",
    GroupBy.WEEK: "%G-%V",  # ISO year and week
    GroupBy.MONTH: "%Y-%m",
    GroupBy.YEAR: "%Y",
}


def parse_scope(value: str | int | None, label: str) -> int | None:
    """`all` (or empty) selects everything; anything else must be an id."""
    if value is None or str(value).lower() in ("", ALL):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationFailed(f"Invalid {label} id: {value}") from None


def day_number(moment: datetime) -> int:
    """Day of week numbered 1 (Sunday) to 7 (Saturday)."""
    return (moment.weekday() + 1) % 7 + 1


def time_bucket(moment: datetime, group_by: GroupBy) -> str:
    return moment.strftime(_PERIOD_FORMATS[group_by])


def _period(start_date: datetime | None, end_date: datetime | None) -> dict[str, Any]:
    return {
        "start_date": start_date.isoformat() if start_date else "All time",
        "end_date": end_date.isoformat() if end_date else "All time",
    }


def _open_close(rows: list[dict]) -> tuple[int, int]:
    opened = sum(1 for row in rows if row["new_status"] == LockStatus.OPEN.value)
    closed = sum(1 for row in rows if row["new_status"] == LockStatus.CLOSED.value)
    return opened, closed


async def select_doors(
    session: AsyncSession, building_id: int, floor_id: int | None, door_id: int | None
) -> list[dict]:
    await require_building(session, building_id)
    stmt = (
        select(DoorModel.id, DoorModel.name, FloorModel.name.label("floor_name"))
        .join(FloorModel, FloorModel.id == DoorModel.floor_id)
        .where(FloorModel.building_id == building_id)
        .order_by(DoorModel.id)
    )
    if floor_id is not None:
        stmt = stmt.where(FloorModel.id == floor_id)
    if door_id is not None:
        stmt = stmt.where(DoorModel.id == door_id)
    rows = (await session.execute(stmt)).all()
    return [{"id": row.id, "name": row.name, "floor_name": row.floor_name} for row in rows]


# ============================================================================
# Report builders (pure functions over history rows)
# ============================================================================


def build_summary(doors: list[dict], history: list[dict]) -> dict:
    opened, closed = _open_close(history)
    door_names = {door["id"]: door["name"] for door in doors}

    door_counts = Counter(row["door_id"] for row in history)
    most_active_doors = [
        {"door_id": door_id, "door_name": door_names.get(door_id), "access_count": count}
        for door_id, count in door_counts.most_common(5)
    ]

    user_rows = [row for row in history if row["changed_by"] is not None]
    user_counts = Counter(row["changed_by"] for row in user_rows)
    user_names = {row["changed_by"]: row["changed_by_name"] for row in user_rows}
    most_active_users = [
        {"changed_by": user_id, "user_name": user_names.get(user_id), "access_count": count}
        for user_id, count in user_counts.most_common(5)
    ]

    recent = sorted(history, key=lambda row: (row["created_at"], row["id"]), reverse=True)[:10]

    return {
        "summary": {
            "total_doors": len(doors),
            "total_access_events": len(history),
            "unique_users": len({row["changed_by"] for row in history if row["changed_by"] is not None}),
            "open_events": opened,
            "close_events": closed,
        },
        "most_active_doors": most_active_doors,
        "most_active_users": most_active_users,
        "recent_activity": [
            {
                "id": row["id"],
                "door_id": row["door_id"],
                "door_name": row["door_name"],
                "previous_status": row["previous_status"],
                "new_status": row["new_status"],
                "changed_by": row["changed_by"],
                "user_name": row["changed_by_name"],
                "reason": row["reason"],
                "created_at": jsonable(row["created_at"]),
            }
            for row in recent
        ],
    }


def build_frequency(history: list[dict], group_by: GroupBy) -> list[dict]:
    buckets: dict[str, list[dict]] = defaultdict(list)
    for row in history:
        buckets[time_bucket(row["created_at"], group_by)].append(row)

    frequency = []
    for period in sorted(buckets):
        opened, closed = _open_close(buckets[period])
        frequency.append(
            {
                "time_period": period,
                "access_count": len(buckets[period]),
                "open_events": opened,
                "close_events": closed,
            }
        )
    return frequency


def build_user_activity(history: list[dict]) -> list[dict]:
    by_user: dict[int, list[dict]] = defaultdict(list)
    for row in history:
        if row["changed_by"] is not None:
            by_user[row["changed_by"]].append(row)

    activity = []
    for user_id, rows in by_user.items():
        opened, closed = _open_close(rows)
        times = [row["created_at"] for row in rows]
        activity.append(
            {
                "changed_by": user_id,
                "user_name": rows[0]["changed_by_name"],
                "username": rows[0]["changed_by_username"],
                "access_count": len(rows),
                "open_events": opened,
                "close_events": closed,
                "first_access": jsonable(min(times)),
                "last_access": jsonable(max(times)),
            }
        )
    activity.sort(key=lambda item: item["access_count"], reverse=True)
    return activity


def build_time_analysis(history: list[dict]) -> dict:
    hourly = Counter(row["created_at"].hour for row in history)
    daily = Counter(day_number(row["created_at"]) for row in history)
    return {
        "hourly_distribution": [
            {"hour_of_day": hour, "access_count": hourly[hour]} for hour in sorted(hourly)
        ],
        "daily_distribution": [
            {"day_of_week": DAY_NAMES[number - 1], "day_number": number, "access_count": daily[number]}
            for number in sorted(daily)
        ],
    }


def build_door_comparison(doors: list[dict], history: list[dict]) -> list[dict]:
    by_door: dict[int, list[dict]] = defaultdict(list)
    for row in history:
        by_door[row["door_id"]].append(row)

    floor_names = {door["id"]: door["floor_name"] for door in doors}
    comparison = []
    for door_id, rows in by_door.items():
        opened, closed = _open_close(rows)
        times = [row["created_at"] for row in rows]
        comparison.append(
            {
                "door_id": door_id,
                "door_name": rows[0]["door_name"],
                "floor_name": floor_names.get(door_id),
                "access_count": len(rows),
                "open_events": opened,
                "close_events": closed,
                "unique_users": len({row["changed_by"] for row in rows if row["changed_by"] is not None}),
                "first_access": jsonable(min(times)),
                "last_access": jsonable(max(times)),
            }
        )
    comparison.sort(key=lambda item: item["access_count"], reverse=True)
    return comparison


# ============================================================================
# Entry point
# ============================================================================


async def generate_report(
    session: AsyncSession,
    building_id: int,
    floor: str | int | None = ALL,
    door: str | int | None = ALL,
    report_type: str | None = ReportType.SUMMARY.value,
    group_by: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    output_format: str = "json",
) -> dict | str:
    """Build an access report for a building, floor or door.

    Returns the report dict, or CSV text when `output_format` is ``csv``.

    Raises:
        ValidationFailed: unknown report type, group_by or scope id
        NotFound: building missing, or a floor/door scope with no doors
    """
    kind = parse_enum(ReportType, report_type or ReportType.SUMMARY.value)
    if kind is None:
        raise ValidationFailed(
            "Invalid report type. Must be one of: "
            + ", ".join(member.value for member in ReportType)
        )
    grouping = parse_enum(GroupBy, group_by or GroupBy.DAY.value)
    if grouping is None:
        raise ValidationFailed(
            "Invalid group_by. Must be one of: " + ", ".join(member.value for member in GroupBy)
        )

    floor_id = parse_scope(floor, "floor")
    door_id = None if kind is ReportType.DOOR_COMPARISON else parse_scope(door, "door")

    doors = await select_doors(session, building_id, floor_id, door_id)
    if not doors and (floor_id is not None or door_id is not None):
        raise NotFound("No doors found for the selected scope")

    history = await list_history_for_doors(session, [d["id"] for d in doors], start_date, end_date)
    logger.info(
        "access_report_generated",
        report_type=kind.value,
        building_id=building_id,
        doors=len(doors),
        events=len(history),
    )

    report: dict[str, Any] = {
        "report_type": kind.value,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "period": _period(start_date, end_date),
    }
    csv_rows: list[dict]

    if kind is ReportType.SUMMARY:
        report.update(build_summary(doors, history))
        csv_rows = [
            {
                "report_type": kind.value,
                "generated_at": report["generated_at"],
                "start_date": report["period"]["start_date"],
                "end_date": report["period"]["end_date"],
                **report["summary"],
            }
        ]
    elif kind is ReportType.FREQUENCY:
        report["period"]["group_by"] = grouping.value
        report["doors"] = [{"id": d["id"], "name": d["name"]} for d in doors]
        report["frequency_data"] = csv_rows = build_frequency(history, grouping)
    elif kind is ReportType.USER_ACTIVITY:
        report["doors"] = [{"id": d["id"], "name": d["name"]} for d in doors]
        report["user_activity"] = csv_rows = build_user_activity(history)
    elif kind is ReportType.TIME_ANALYSIS:
        report["doors"] = [{"id": d["id"], "name": d["name"]} for d in doors]
        report.update(build_time_analysis(history))
        csv_rows = [
            {
                "time_period": "hour",
                "period_value": item["hour_of_day"],
                "period_name": f"{item['hour_of_day']}:00",
                "access_count": item["access_count"],
            }
            for item in report["hourly_distribution"]
        ] + [
            {
                "time_period": "day",
                "period_value": item["day_number"],
                "period_name": item["day_of_week"],
                "access_count": item["access_count"],
            }
            for item in report["daily_distribution"]
        ]
    else:
        report["door_comparison"] = csv_rows = build_door_comparison(doors, history)

    if output_format == "csv":
        return rows_to_csv(csv_rows)
    return report
