"""Shared dependencies for AccessHub web routes.

Long-lived collaborators (notification hub, device sync, lock and request
services) are created in the application lifespan and stored on
``app.state``; these dependencies hand them to route handlers.

Usage:
    from fastapi import Depends
    from accesshub.web.dependencies import get_request_service

    @router.put("/door-requests/{request_id}/status")
    async def resolve(service = Depends(get_request_service)):
        ...
"""

from __future__ import annotations

from fastapi import Request

from accesshub.integration.device_connections import DeviceConnectionManager
from accesshub.integration.device_sync import DeviceSync
from accesshub.locks.service import LockService
from accesshub.realtime.hub import NotificationHub
from accesshub.requests.service import DoorRequestService


def get_hub(request: Request) -> NotificationHub:
    return request.app.state.hub


def get_device_sync(request: Request) -> DeviceSync | None:
    return getattr(request.app.state, "device_sync", None)


def get_connection_manager(request: Request) -> DeviceConnectionManager | None:
    return getattr(request.app.state, "connections", None)


def get_lock_service(request: Request) -> LockService:
    return request.app.state.lock_service


def get_request_service(request: Request) -> DoorRequestService:
    return request.app.state.request_service


def client_ip(request: Request) -> str | None:
    """Caller address, honouring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
