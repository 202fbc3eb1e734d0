"""Pytest configuration and fixtures for AccessHub tests.

Provides an in-memory SQLite database per test, a seeded building/floor/door,
and recording stand-ins for the device platform and WebSocket listeners.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from types import SimpleNamespace

# Must be set before accesshub.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from accesshub.config import reset_config
from accesshub.db.connection import build_engine
from accesshub.db.models import Base, BuildingModel, DoorModel, FloorModel, UserModel
from accesshub.integration.device_sync import SyncResult
from accesshub.realtime.hub import NotificationHub

ACTOR_ID = 42


@pytest.fixture(autouse=True)
def test_env(monkeypatch):
    """Fresh configuration for every test, with authentication switched off."""
    monkeypatch.setenv("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    monkeypatch.setenv("ACCESSHUB_AUTH_DISABLED", "true")
    reset_config()
    yield
    reset_config()


@pytest_asyncio.fixture
async def engine():
    """In-memory database shared by every session of one test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    """A session for direct calls into the directory and query layers."""
    async with session_factory() as session:
        yield session


async def seed_directory(
    factory: async_sessionmaker[AsyncSession],
    *,
    door_id: int = 5,
    door_status: str = "active",
    lock_status: str = "closed",
    device_id: str | None = None,
    access_token: str | None = None,
) -> SimpleNamespace:
    """Commit an actor, a building, a floor and one door."""
    async with factory() as session, session.begin():
        session.add(
            UserModel(
                id=ACTOR_ID,
                username="operator",
                email="operator@example.com",
                full_name="Olive Operator",
                password_hash="x",
                role="admin",
            )
        )
        building = BuildingModel(name="HQ", address="1 Main St")
        session.add(building)
        await session.flush()
        floor = FloorModel(building_id=building.id, name="Ground", floor_number=0)
        session.add(floor)
        await session.flush()
        session.add(
            DoorModel(
                id=door_id,
                floor_id=floor.id,
                name="Front Entrance",
                status=door_status,
                lock_status=lock_status,
                thingsboard_device_id=device_id,
                thingsboard_access_token=access_token,
            )
        )
    return SimpleNamespace(building_id=building.id, floor_id=floor.id, door_id=door_id, user_id=ACTOR_ID)


@pytest_asyncio.fixture
async def seeded(session_factory) -> SimpleNamespace:
    return await seed_directory(session_factory)


class RecordingListener:
    """WebSocket stand-in that keeps decoded frames."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[dict] = []

    async def send_text(self, data: str) -> None:
        if self.fail:
            raise RuntimeError("socket closed")
        self.messages.append(json.loads(data))

    def events(self) -> list[str]:
        return [message["event"] for message in self.messages]


@dataclass
class RecordingDeviceSync:
    """DeviceSync stand-in that records pushes and can be told to fail."""

    fail: bool = False
    lock_pushes: list[dict] = field(default_factory=list)
    door_pushes: list[dict] = field(default_factory=list)
    removed: list[str | None] = field(default_factory=list)
    enabled: bool = True

    async def push_lock_state(self, device_id, access_token, **kwargs) -> SyncResult:
        self.lock_pushes.append({"device_id": device_id, "access_token": access_token, **kwargs})
        return SyncResult.failure("platform down") if self.fail else SyncResult.success()

    async def push_door_state(self, device_id, **kwargs) -> SyncResult:
        self.door_pushes.append({"device_id": device_id, **kwargs})
        return SyncResult.failure("platform down") if self.fail else SyncResult.success()

    async def provision_device(self, name: str) -> SyncResult:
        if self.fail:
            return SyncResult.failure("platform down")
        return SyncResult.success(device_id=f"dev-{name}", access_token=f"tok-{name}")

    async def remove_device(self, device_id) -> SyncResult:
        self.removed.append(device_id)
        return SyncResult.failure("platform down") if self.fail else SyncResult.success()

    async def close(self) -> None:
        return None


@pytest.fixture
def device_sync() -> RecordingDeviceSync:
    return RecordingDeviceSync()


@pytest_asyncio.fixture
async def hub():
    hub = NotificationHub()
    yield hub
    await hub.close()


@pytest_asyncio.fixture
async def listener(hub) -> RecordingListener:
    listener = RecordingListener()
    await hub.connect(listener)
    return listener
