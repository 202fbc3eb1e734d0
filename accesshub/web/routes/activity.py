"""Activity log routes."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.core.activity_logger import list_activity_logs
from accesshub.core.query import clamp_page
from accesshub.db.connection import get_db
from accesshub.web.auth import ACTIVITY_VIEW, Principal, require_permission
from accesshub.web.responses import respond

router = APIRouter(tags=["activity"])


@router.get("/activity-logs")
async def activity_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1),
    user_id: int | None = None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(ACTIVITY_VIEW)),
):
    page, limit = clamp_page(page, limit)
    data = await list_activity_logs(
        db,
        page=page,
        limit=limit,
        user_id=user_id,
        entity_type=entity_type,
        entity_id=entity_id,
        search=search,
        start_date=start_date,
        end_date=end_date,
    )
    return respond("Activity logs retrieved successfully", data)
