"""AccessHub API route modules.

Each module exports a `router` (APIRouter instance). The application
factory in `accesshub.web.app` mounts them under ``/api``; the WebSocket
router in `realtime` is mounted at the root.

Shared dependencies live in `accesshub.web.dependencies`, request bodies
in `accesshub.web.models`.

Usage:
    from accesshub.web.routes import buildings
    app.include_router(buildings.router, prefix="/api")
"""

from accesshub.web.routes import (
    activity,
    auth,
    buildings,
    coordinates,
    dashboard,
    door_locks,
    door_requests,
    door_types,
    doors,
    floors,
    guest,
    health,
    profile,
    realtime,
    reports,
    users,
)

__all__ = [
    "activity",
    "auth",
    "buildings",
    "coordinates",
    "dashboard",
    "door_locks",
    "door_requests",
    "door_types",
    "doors",
    "floors",
    "guest",
    "health",
    "profile",
    "realtime",
    "reports",
    "users",
]
