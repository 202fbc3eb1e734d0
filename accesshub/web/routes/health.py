"""Health check API routes.

Reports database connectivity and the state of the device integration.
"""

import structlog
from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.db.connection import get_db
from accesshub.web.dependencies import get_connection_manager, get_device_sync
from accesshub.web.responses import respond

logger = structlog.get_logger()

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
async def health_check(request: Request, db: AsyncSession = Depends(get_db)):
    """Check application health."""
    try:
        await db.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError as exc:
        logger.error("health_check_database_failed", error=str(exc))
        database = "disconnected"

    device_sync = get_device_sync(request)
    connections = get_connection_manager(request)
    hub = getattr(request.app.state, "hub", None)

    data = {
        "status": "ok" if database == "connected" else "error",
        "database": database,
        "device_sync": bool(device_sync and device_sync.enabled),
        "watched_doors": len(connections.watched_doors) if connections else 0,
        "websocket_clients": hub.connection_count if hub is not None else 0,
    }
    return respond("Service healthy" if database == "connected" else "Service degraded", data)
