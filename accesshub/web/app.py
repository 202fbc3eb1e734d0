"""FastAPI application for AccessHub - door access management API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.base import BaseHTTPMiddleware

from accesshub import __version__
from accesshub.config import AppConfig, get_config
from accesshub.core.errors import AccessHubError
from accesshub.core.logging import configure_logging
from accesshub.core.responses import ResponseCode
from accesshub.db.connection import close_db, get_session, get_session_factory, init_db
from accesshub.directory.repository import list_bound_doors
from accesshub.integration.device_connections import DeviceConnectionManager
from accesshub.integration.device_sync import DeviceSync
from accesshub.integration.thingsboard_client import ThingsBoardClient
from accesshub.locks.service import LockService
from accesshub.realtime.hub import NotificationHub
from accesshub.requests.service import DoorRequestService
from accesshub.web.responses import respond
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

logger = structlog.get_logger()


# Request Logging Middleware
class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


# Exception Handlers
async def accesshub_error_handler(request: Request, exc: AccessHubError):
    return respond(exc.message, code=exc.code)


async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return respond("Validation error", data={"errors": errors}, code=ResponseCode.VALIDATION_ERROR)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return respond(str(exc.detail), code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path)
    return respond("Internal server error", code=ResponseCode.INTERNAL_ERROR)


def install_exception_handlers(app: FastAPI) -> None:
    """Render every error in the response envelope."""
    app.add_exception_handler(AccessHubError, accesshub_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)


API_ROUTERS = (
    auth.router,
    users.router,
    profile.router,
    buildings.router,
    floors.router,
    doors.router,
    door_locks.router,
    door_requests.router,
    coordinates.router,
    door_types.router,
    guest.router,
    reports.router,
    dashboard.router,
    activity.router,
    health.router,
)


async def _bound_devices() -> list[tuple[int, str]]:
    async with get_session() as session:
        return [(door.id, door.thingsboard_device_id) for door in await list_bound_doors(session)]


@asynccontextmanager
async def lifespan(app: FastAPI):
    config: AppConfig = app.state.config
    await init_db()

    hub = NotificationHub()
    client = ThingsBoardClient.from_config(config.thingsboard) if config.thingsboard.enabled else None
    device_sync = DeviceSync(client, enabled=config.thingsboard.enabled)
    session_factory = get_session_factory()

    app.state.hub = hub
    app.state.device_sync = device_sync
    app.state.lock_service = LockService(session_factory, device_sync, hub)
    app.state.request_service = DoorRequestService(session_factory, device_sync, hub)
    app.state.connections = None

    if client is not None and config.thingsboard.ws_enabled:
        connections = DeviceConnectionManager.from_config(config.thingsboard, client, hub)
        connections.start(await _bound_devices())
        app.state.connections = connections

    logger.info(
        "accesshub_started",
        environment=config.environment,
        device_sync=device_sync.enabled,
        watched_doors=len(app.state.connections.watched_doors) if app.state.connections else 0,
    )
    try:
        yield
    finally:
        if app.state.connections is not None:
            await app.state.connections.stop()
        await hub.close()
        await device_sync.close()
        await close_db()
        logger.info("accesshub_stopped")


def create_app(config: AppConfig | None = None) -> FastAPI:
    """Build the AccessHub API application."""
    config = config or get_config()
    configure_logging(config.log_level, config.json_logs)

    app = FastAPI(
        title="AccessHub API",
        description="Building access management: doors, locks and access requests",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config

    origins = ["*"] if config.client_url == "*" else [o.strip() for o in config.client_url.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Prometheus Metrics
    Instrumentator().instrument(app).expose(app)

    install_exception_handlers(app)

    # Include Routers
    for router in API_ROUTERS:
        app.include_router(router, prefix="/api")
    app.include_router(realtime.router)

    return app
