from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.models import ActivityLogModel, UserModel

logger = structlog.get_logger()


async def log_activity(
    session: AsyncSession,
    action: str,
    entity_type: str,
    entity_id: int | None = None,
    user_id: int | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> ActivityLogModel:
    """Append an entry to the activity log.

    Args:
        session: Session of the surrounding unit of work. The entry is
            committed (or rolled back) together with the change it describes.
        action: Human-readable action (e.g. "Approved door request")
        entity_type: Kind of entity affected (e.g. "door", "door_request")
        entity_id: ID of the entity affected
        user_id: ID of the acting user
        details: Additional JSON details
        ip_address: Client address of the request
    """
    entry = ActivityLogModel(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details,
        ip_address=ip_address,
    )
    session.add(entry)
    await session.flush()

    logger.info(
        "activity_logged",
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
    )
    return entry


async def list_activity_logs(
    session: AsyncSession,
    page: int = 1,
    limit: int = 20,
    user_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
) -> dict:
    """Paginated activity log, newest first, with the actor's name."""
    filters = []
    if user_id is not None:
        filters.append(ActivityLogModel.user_id == user_id)
    if entity_type:
        filters.append(ActivityLogModel.entity_type == entity_type)
    if entity_id is not None:
        filters.append(ActivityLogModel.entity_id == entity_id)
    if search:
        filters.append(ActivityLogModel.action.ilike(f"%{search}%"))
    if start_date:
        filters.append(ActivityLogModel.created_at >= start_date)
    if end_date:
        filters.append(ActivityLogModel.created_at <= end_date)

    total = (
        await session.execute(select(func.count(ActivityLogModel.id)).where(*filters))
    ).scalar_one()

    stmt = (
        select(ActivityLogModel, UserModel.username, UserModel.full_name)
        .outerjoin(UserModel, UserModel.id == ActivityLogModel.user_id)
        .where(*filters)
        .order_by(ActivityLogModel.created_at.desc(), ActivityLogModel.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    )
    rows = (await session.execute(stmt)).all()

    data = []
    for entry, username, full_name in rows:
        item = entry.as_dict()
        item["username"] = username
        item["user_full_name"] = full_name
        data.append(item)

    return {"data": data, "total": total, "page": page, "limit": limit}

