"""Dashboard routes.

Routes:
- GET /dashboard                                       - Directory and request metrics
- GET /dashboard/buildings/{building_id}/floor-stats  - Door status per floor
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.reporting.dashboard_metrics import compute_dashboard_metrics, door_status_by_floor
from accesshub.web.auth import Principal, require_auth
from accesshub.web.responses import respond

router = APIRouter(tags=["dashboard"])


@router.get("/dashboard")
async def dashboard(
    days: int = Query(7, ge=1, le=90),
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    """Directory totals, lock/door status distribution and recent request activity."""
    metrics = await compute_dashboard_metrics(db, days=days)
    return respond("Dashboard data retrieved successfully", metrics.to_dict())


@router.get("/dashboard/buildings/{building_id}/floor-stats")
async def floor_stats(
    building_id: int,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_auth),
):
    floors = await door_status_by_floor(db, building_id)
    return respond("Door status by floor retrieved successfully", floors)
