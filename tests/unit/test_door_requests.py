"""Tests for the door request lifecycle."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest
import pytest_asyncio
from conftest import ACTOR_ID, RecordingDeviceSync, seed_directory
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from accesshub.core.errors import AlreadyProcessed, DoorInactive, InvalidStatus, NotFound, ValidationFailed
from accesshub.db.connection import build_engine
from accesshub.db.models import ActivityLogModel, Base, DoorLockHistoryModel, DoorModel
from accesshub.integration.device_sync import DeviceSync
from accesshub.integration.thingsboard_client import ThingsBoardClient
from accesshub.requests.service import (
    DoorRequestService,
    count_pending,
    get_door_request_status,
    get_request,
    list_requests,
    list_requests_for_door,
)


@pytest.fixture
def service(session_factory, device_sync, hub) -> DoorRequestService:
    return DoorRequestService(session_factory, device_sync, hub)


async def door_lock(session_factory, door_id: int) -> str:
    async with session_factory() as session:
        return (await session.get(DoorModel, door_id)).lock_status


async def history_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(DoorLockHistoryModel.id)))).scalar_one()


async def activity_count(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count(ActivityLogModel.id)))).scalar_one()


class TestCreateRequest:
    async def test_creates_pending_request_and_notifies(self, service, seeded, listener):
        created = await service.create_request(
            seeded.door_id, "  Alice ", "Delivery", requester_phone="", requester_email="alice@example.com"
        )

        assert created["status"] == "pending"
        assert created["requester_name"] == "Alice"
        assert created["requester_phone"] is None
        assert created["door_name"] == "Front Entrance"
        assert created["building_name"] == "HQ"
        assert listener.events() == ["new-door-request"]
        assert listener.messages[0]["data"]["door_id"] == seeded.door_id

    async def test_required_fields(self, service, seeded):
        with pytest.raises(ValidationFailed, match="requester name, and purpose are required"):
            await service.create_request(seeded.door_id, "Alice", "   ")

    async def test_missing_door(self, service, seeded):
        with pytest.raises(NotFound, match="Door not found"):
            await service.create_request(999, "Alice", "Delivery")

    async def test_inactive_door(self, service, session_factory):
        seeded = await seed_directory(session_factory, door_status="inactive")

        with pytest.raises(DoorInactive, match="Door is inactive"):
            await service.create_request(seeded.door_id, "Alice", "Delivery")

        async with session_factory() as session:
            assert await count_pending(session) == 0


class TestResolveRequest:
    async def test_approval_toggles_lock(self, service, seeded, session_factory, device_sync, listener):
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")
        listener.messages.clear()

        resolved = await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)

        assert resolved["status"] == "approved"
        assert resolved["processed_by"] == ACTOR_ID
        assert resolved["processed_by_name"] == "Olive Operator"
        assert resolved["processed_at"] is not None
        assert await door_lock(session_factory, seeded.door_id) == "open"

        async with session_factory() as session:
            entry = (await session.execute(select(DoorLockHistoryModel))).scalar_one()
        assert (entry.previous_status, entry.new_status, entry.request_id) == ("closed", "open", created["id"])
        assert entry.reason == "Approved door request from Alice"

        assert device_sync.lock_pushes[0]["request_id"] == created["id"]
        assert listener.events() == ["door-request-status-updated", "door-lock-status-updated"]

    async def test_approval_closes_an_open_door(self, service, session_factory):
        seeded = await seed_directory(session_factory, lock_status="open")
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")

        await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)

        assert await door_lock(session_factory, seeded.door_id) == "closed"

    async def test_rejection_leaves_lock_alone(self, service, seeded, session_factory, device_sync, listener):
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")
        listener.messages.clear()

        resolved = await service.resolve_request(created["id"], "rejected", reason="Not expected", user_id=ACTOR_ID)

        assert resolved["status"] == "rejected"
        assert resolved["reason"] == "Not expected"
        assert await door_lock(session_factory, seeded.door_id) == "closed"
        assert await history_count(session_factory) == 0
        assert device_sync.lock_pushes == []
        assert listener.events() == ["door-request-status-updated"]

    async def test_second_resolution_is_refused(self, service, seeded, session_factory):
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")
        await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)
        logged = await activity_count(session_factory)

        with pytest.raises(AlreadyProcessed, match="already approved"):
            await service.resolve_request(created["id"], "rejected", user_id=ACTOR_ID)

        assert await door_lock(session_factory, seeded.door_id) == "open"
        assert await history_count(session_factory) == 1
        assert await activity_count(session_factory) == logged

    async def test_pending_is_not_a_resolution(self, service, seeded):
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")

        with pytest.raises(InvalidStatus):
            await service.resolve_request(created["id"], "pending")

    async def test_unknown_request(self, service, seeded):
        with pytest.raises(NotFound):
            await service.resolve_request(404, "approved")

    async def test_door_deactivated_before_approval(self, service, seeded, session_factory, listener):
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")
        async with session_factory() as session, session.begin():
            (await session.get(DoorModel, seeded.door_id)).status = "inactive"
        listener.messages.clear()

        with pytest.raises(DoorInactive):
            await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)

        async with session_factory() as session:
            request = await get_request(session, created["id"])
            actions = (await session.execute(select(ActivityLogModel.action))).scalars().all()
        assert request["status"] == "pending"
        assert actions == ["Created door request"]
        assert await door_lock(session_factory, seeded.door_id) == "closed"
        assert listener.messages == []

    async def test_device_failure_does_not_undo_approval(self, service, seeded, session_factory, device_sync):
        device_sync.fail = True
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")

        resolved = await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)

        assert resolved["status"] == "approved"
        assert await door_lock(session_factory, seeded.door_id) == "open"


class ExplodingClient:
    """Platform client whose every call blows up."""

    async def update_device_attributes(self, device_id, attributes):
        raise RuntimeError("socket hang up")

    async def send_telemetry(self, access_token, telemetry):
        raise RuntimeError("socket hang up")


class TestApprovalDeviceSync:
    async def test_payloads_carry_door_and_people(self, session_factory, hub):
        seeded = await seed_directory(session_factory, device_id="dev-5", access_token="tok-5")
        seen: list[httpx.Request] = []

        def platform(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path == "/api/auth/login":
                return httpx.Response(200, json={"token": "jwt"})
            return httpx.Response(200)

        client = ThingsBoardClient("https://tb.example.com", "u", "p", transport=httpx.MockTransport(platform))
        service = DoorRequestService(session_factory, DeviceSync(client), hub)
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")

        await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)
        await client.close()

        shared = json.loads(next(r for r in seen if r.url.path.endswith("SHARED_SCOPE")).content)
        telemetry = json.loads(next(r for r in seen if r.url.path == "/api/v1/tok-5/telemetry").content)
        assert shared["lockStatus"] == "open"
        assert shared["status"] == "active"
        assert shared["lastUpdatedBy"] == ACTOR_ID
        assert shared["lastUpdatedByName"] == "Olive Operator"
        assert telemetry["status"] == "active"
        assert telemetry["requesterName"] == "Alice"
        assert telemetry["userName"] == "Olive Operator"
        assert telemetry["requestId"] == created["id"]
        assert telemetry["reason"] == "Approved door request from Alice"

    async def test_raising_client_does_not_fail_approval(self, session_factory, hub, listener):
        seeded = await seed_directory(session_factory, device_id="dev-5", access_token="tok-5")
        service = DoorRequestService(session_factory, DeviceSync(ExplodingClient()), hub)
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")

        resolved = await service.resolve_request(created["id"], "approved", user_id=ACTOR_ID)

        assert resolved["status"] == "approved"
        assert await door_lock(session_factory, seeded.door_id) == "open"
        assert await history_count(session_factory) == 1
        assert "door-lock-status-updated" in listener.events()


class TestConcurrentResolution:
    @pytest_asyncio.fixture
    async def file_factory(self, tmp_path):
        engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'hub.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        await engine.dispose()

    async def test_exactly_one_approval_wins(self, file_factory, hub):
        seeded = await seed_directory(file_factory)
        device_sync = RecordingDeviceSync()
        first = DoorRequestService(file_factory, device_sync, hub)
        second = DoorRequestService(file_factory, device_sync, hub)
        created = await first.create_request(seeded.door_id, "Alice", "Delivery")

        results = await asyncio.gather(
            first.resolve_request(created["id"], "approved", user_id=ACTOR_ID),
            second.resolve_request(created["id"], "approved", user_id=ACTOR_ID),
            return_exceptions=True,
        )

        winners = [r for r in results if isinstance(r, dict)]
        losers = [r for r in results if isinstance(r, AlreadyProcessed)]
        assert len(winners) == 1
        assert len(losers) == 1
        assert await door_lock(file_factory, seeded.door_id) == "open"
        assert await history_count(file_factory) == 1
        assert len(device_sync.lock_pushes) == 1


class TestQueries:
    async def test_list_filters_and_search(self, service, seeded, session_factory):
        alice = await service.create_request(seeded.door_id, "Alice", "Delivery")
        await service.create_request(seeded.door_id, "Bob", "Interview")
        await service.resolve_request(alice["id"], "rejected", user_id=ACTOR_ID)

        async with session_factory() as session:
            pending = await list_requests(session, status="pending")
            searched = await list_requests(session, search="interv")
            by_building = await list_requests(session, building_id=seeded.building_id)
            elsewhere = await list_requests(session, building_id=seeded.building_id + 1)

        assert [r["requester_name"] for r in pending["data"]] == ["Bob"]
        assert searched["total"] == 1
        assert by_building["total"] == 2
        assert elsewhere["total"] == 0

    async def test_list_for_door(self, service, seeded, session_factory):
        await service.create_request(seeded.door_id, "Alice", "Delivery")

        async with session_factory() as session:
            page = await list_requests_for_door(session, seeded.building_id, seeded.floor_id, seeded.door_id)

        assert page["total"] == 1
        assert page["door"]["name"] == "Front Entrance"
        assert "thingsboard_access_token" not in page["door"]

    async def test_door_request_status(self, service, seeded, session_factory):
        async with session_factory() as session:
            before = await get_door_request_status(session, seeded.building_id, seeded.floor_id, seeded.door_id)
        created = await service.create_request(seeded.door_id, "Alice", "Delivery")
        async with session_factory() as session:
            after = await get_door_request_status(session, seeded.building_id, seeded.floor_id, seeded.door_id)

        assert before["has_pending_request"] is False
        assert before["request"] is None
        assert after["has_pending_request"] is True
        assert after["request"]["id"] == created["id"]
        assert after["lock_status"] == "closed"

    async def test_get_missing_request(self, session):
        with pytest.raises(NotFound, match="Door request not found"):
            await get_request(session, 1)
