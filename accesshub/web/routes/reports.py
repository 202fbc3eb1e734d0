"""Access report routes.

Routes:
- GET /reports/{building_id}/{floor}/{door} - Report over lock history

`floor` and `door` take an id or ``all``. Query parameters: ``type``
(summary, frequency, user_activity, time_analysis, door_comparison),
``group_by`` (frequency only), ``format`` (json or csv), ``start_date``,
``end_date``.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.models import ReportType
from accesshub.reporting.access_reports import generate_report
from accesshub.web.auth import REPORT_VIEW, Principal, require_permission
from accesshub.web.responses import csv_attachment, respond

router = APIRouter(prefix="/reports", tags=["reports"])


@router.get("/{building_id}/{floor}/{door}")
async def access_report(
    building_id: int,
    floor: str,
    door: str,
    report_type: str = Query(ReportType.SUMMARY.value, alias="type"),
    group_by: str | None = None,
    output_format: str = Query("json", alias="format"),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    db: AsyncSession = Depends(get_db),
    principal: Principal = Depends(require_permission(REPORT_VIEW)),
):
    output_format = output_format.lower()
    report = await generate_report(
        db,
        building_id,
        floor=floor,
        door=door,
        report_type=report_type,
        group_by=group_by,
        start_date=start_date,
        end_date=end_date,
        output_format=output_format,
    )
    if output_format == "csv":
        return csv_attachment(report, f"door-access-{report_type}-{building_id}.csv")
    return respond("Report generated successfully", report)
