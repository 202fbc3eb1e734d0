"""Tests for the building directory service."""

from __future__ import annotations

from dataclasses import dataclass, field

import pytest
from conftest import ACTOR_ID, RecordingDeviceSync, seed_directory
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from accesshub.core.activity_logger import list_activity_logs
from accesshub.core.errors import Conflict, InvalidStatus, NotFound, ValidationFailed
from accesshub.db.models import ActivityLogModel, DoorCoordinateModel, DoorModel, FloorModel
from accesshub.directory import service
from accesshub.integration.device_sync import SyncResult


class TestBuildings:
    async def test_create_defaults_to_active_and_logs(self, session):
        building = await service.create_building(
            session, {"name": "  Annex  ", "address": "2 Side St"}, user_id=None, ip_address="10.0.0.1"
        )

        assert building["name"] == "Annex"
        assert building["status"] == "active"
        entry = (await session.execute(select(ActivityLogModel))).scalar_one()
        assert entry.action == "Created building"
        assert entry.entity_id == building["id"]
        assert entry.ip_address == "10.0.0.1"

    async def test_create_requires_name(self, session):
        with pytest.raises(ValidationFailed, match="Building name is required"):
            await service.create_building(session, {"name": "   "})

    async def test_create_rejects_unknown_status(self, session):
        with pytest.raises(InvalidStatus):
            await service.create_building(session, {"name": "Annex", "status": "archived"})

    async def test_list_search_and_pagination(self, session):
        for name in ("Alpha Tower", "Beta House", "Alpha Annex"):
            await service.create_building(session, {"name": name})

        page = await service.list_buildings(session, search="alpha", sort_by="name", sort_order="asc")

        assert page["total"] == 2
        assert [b["name"] for b in page["data"]] == ["Alpha Annex", "Alpha Tower"]
        assert (page["page"], page["limit"]) == (1, 10)

    async def test_list_limit_is_capped(self, session):
        page = await service.list_buildings(session, page=0, limit=500)

        assert (page["page"], page["limit"]) == (1, 100)

    async def test_get_includes_floor_count(self, seeded, session):
        building = await service.get_building(session, seeded.building_id)

        assert building["floor_count"] == 1

    async def test_missing_building(self, session):
        with pytest.raises(NotFound, match="Building not found"):
            await service.get_building(session, 404)

    async def test_status_change(self, seeded, session):
        building = await service.update_building_status(session, seeded.building_id, "inactive")

        assert building["status"] == "inactive"
        with pytest.raises(InvalidStatus):
            await service.update_building_status(session, seeded.building_id, "closed")

    async def test_delete_cascades(self, seeded, session_factory):
        async with session_factory() as session, session.begin():
            await service.delete_building(session, seeded.building_id, user_id=ACTOR_ID)

        async with session_factory() as session:
            floors = (await session.execute(select(func.count(FloorModel.id)))).scalar_one()
            doors = (await session.execute(select(func.count(DoorModel.id)))).scalar_one()
            actions = (await session.execute(select(ActivityLogModel.action))).scalars().all()

        assert (floors, doors) == (0, 0)
        assert actions == ["Deleted building"]


class TestFloors:
    async def test_duplicate_name_is_case_insensitive(self, seeded, session):
        with pytest.raises(Conflict, match="name already exists"):
            await service.create_floor(session, seeded.building_id, {"name": "ground", "floor_number": 3})

    async def test_duplicate_number(self, seeded, session):
        with pytest.raises(Conflict, match="number already exists"):
            await service.create_floor(session, seeded.building_id, {"name": "Mezzanine", "floor_number": 0})

    async def test_floor_number_required(self, seeded, session):
        with pytest.raises(ValidationFailed):
            await service.create_floor(session, seeded.building_id, {"name": "Roof"})

    async def test_listing_orders_by_floor_number(self, seeded, session):
        await service.create_floor(session, seeded.building_id, {"name": "Basement", "floor_number": -1})
        await service.create_floor(session, seeded.building_id, {"name": "First", "floor_number": 1})

        page = await service.list_floors(session, seeded.building_id)

        assert [f["floor_number"] for f in page["data"]] == [-1, 0, 1]

    async def test_floor_of_other_building_is_missing(self, seeded, session):
        other = await service.create_building(session, {"name": "Annex"})

        with pytest.raises(NotFound, match="Floor not found"):
            await service.get_floor(session, other["id"], seeded.floor_id)

    async def test_update_keeps_building(self, seeded, session):
        floor = await service.update_floor(
            session, seeded.building_id, seeded.floor_id, {"name": "Lobby", "building_id": 999}
        )

        assert floor["name"] == "Lobby"
        assert floor["building_id"] == seeded.building_id

    async def test_update_may_keep_own_name(self, seeded, session):
        floor = await service.update_floor(
            session, seeded.building_id, seeded.floor_id, {"name": "Ground", "floor_number": 0}
        )

        assert floor["name"] == "Ground"

    async def test_set_floor_plan(self, seeded, session):
        floor = await service.set_floor_plan(
            session, seeded.building_id, seeded.floor_id, "/uploads/ground.png"
        )

        assert floor["floor_plan_image"] == "/uploads/ground.png"


class TestDoors:
    async def test_create_provisions_device(self, seeded, session, device_sync):
        door = await service.create_door(
            session, seeded.building_id, seeded.floor_id, {"name": "Loading Bay"}, device_sync=device_sync
        )

        assert door.status == "active"
        assert door.lock_status == "closed"
        assert door.thingsboard_device_id == "dev-Loading Bay"
        payload = service.door_payload(door)
        assert "thingsboard_access_token" not in payload

    async def test_create_survives_provisioning_failure(self, seeded, session, device_sync):
        device_sync.fail = True

        door = await service.create_door(
            session, seeded.building_id, seeded.floor_id, {"name": "Loading Bay"}, device_sync=device_sync
        )

        assert door.id is not None
        assert door.thingsboard_device_id is None

    async def test_create_with_unknown_door_type(self, seeded, session):
        with pytest.raises(NotFound, match="Door type not found"):
            await service.create_door(
                session, seeded.building_id, seeded.floor_id, {"name": "Side", "door_type_id": 77}
            )

    async def test_create_rejects_unknown_status(self, seeded, session):
        with pytest.raises(InvalidStatus):
            await service.create_door(
                session, seeded.building_id, seeded.floor_id, {"name": "Side", "status": "broken"}
            )

    async def test_update_ignores_lock_status(self, seeded, session, device_sync):
        door = await service.update_door(
            session,
            seeded.building_id,
            seeded.floor_id,
            seeded.door_id,
            {"description": "Main doors", "lock_status": "open"},
            device_sync=device_sync,
        )

        assert door["description"] == "Main doors"
        assert door["lock_status"] == "closed"
        assert device_sync.door_pushes[0]["door_status"] == "active"

    async def test_status_change_pushes_door_state(self, seeded, session, device_sync):
        door = await service.update_door_status(
            session,
            seeded.building_id,
            seeded.floor_id,
            seeded.door_id,
            "maintenance",
            device_sync=device_sync,
            user_id=ACTOR_ID,
        )

        assert door["status"] == "maintenance"
        assert device_sync.door_pushes[0]["reason"] == "Door status changed to maintenance"

    async def test_list_filters_by_lock_status(self, seeded, session):
        await service.create_door(session, seeded.building_id, seeded.floor_id, {"name": "Side"})

        page = await service.list_doors(session, seeded.building_id, seeded.floor_id, lock_status="closed")
        assert page["total"] == 2
        page = await service.list_doors(session, seeded.building_id, seeded.floor_id, lock_status="open")
        assert page["total"] == 0

    async def test_get_door_includes_type_and_coordinates(self, seeded, session):
        door_type = await service.create_door_type(session, {"name": "Glass"})
        await service.update_door(
            session, seeded.building_id, seeded.floor_id, seeded.door_id, {"door_type_id": door_type["id"]}
        )
        await service.create_coordinate(
            session, seeded.building_id, seeded.floor_id, seeded.door_id, {"x_coordinate": 1, "y_coordinate": "2.5"}
        )

        door = await service.get_door(session, seeded.building_id, seeded.floor_id, seeded.door_id)

        assert door["door_type_name"] == "Glass"
        assert door["coordinates"][0]["y_coordinate"] == 2.5

    async def test_delete_removes_device_and_coordinates(self, session_factory, device_sync):
        seeded = await seed_directory(session_factory, device_id="dev-5", access_token="tok-5")
        async with session_factory() as session, session.begin():
            await service.create_coordinate(
                session, seeded.building_id, seeded.floor_id, seeded.door_id, {"x_coordinate": 1, "y_coordinate": 2}
            )
        async with session_factory() as session:
            await service.delete_door(
                session, seeded.building_id, seeded.floor_id, seeded.door_id, device_sync=device_sync
            )

        async with session_factory() as session:
            coordinates = (await session.execute(select(func.count(DoorCoordinateModel.id)))).scalar_one()

        assert coordinates == 0
        assert device_sync.removed == ["dev-5"]


@dataclass
class TransactionTrackingSync(RecordingDeviceSync):
    """Notes whether the caller's session held an open transaction at each platform call."""

    session: AsyncSession | None = None
    open_during_call: list[bool] = field(default_factory=list)

    def _note(self) -> None:
        self.open_during_call.append(self.session.in_transaction())

    async def provision_device(self, name: str) -> SyncResult:
        self._note()
        return await super().provision_device(name)

    async def push_door_state(self, device_id, **kwargs) -> SyncResult:
        self._note()
        return await super().push_door_state(device_id, **kwargs)

    async def remove_device(self, device_id) -> SyncResult:
        self._note()
        return await super().remove_device(device_id)


class TestDoorsPlatformCallsAfterCommit:
    async def test_create_commits_before_provisioning(self, seeded, session, session_factory):
        device_sync = TransactionTrackingSync(session=session)

        door = await service.create_door(
            session, seeded.building_id, seeded.floor_id, {"name": "Loading Bay"}, device_sync=device_sync
        )

        assert device_sync.open_during_call == [False]
        async with session_factory() as other:
            stored = await other.get(DoorModel, door.id)
        assert stored.thingsboard_device_id == "dev-Loading Bay"
        assert stored.thingsboard_access_token == "tok-Loading Bay"

    async def test_updates_commit_before_pushing(self, seeded, session):
        device_sync = TransactionTrackingSync(session=session)

        await service.update_door(
            session, seeded.building_id, seeded.floor_id, seeded.door_id, {"name": "Main"}, device_sync=device_sync
        )
        await service.update_door_status(
            session, seeded.building_id, seeded.floor_id, seeded.door_id, "inactive", device_sync=device_sync
        )

        assert device_sync.open_during_call == [False, False]

    async def test_delete_commits_before_removing_device(self, session_factory):
        seeded = await seed_directory(session_factory, device_id="dev-5", access_token="tok-5")

        async with session_factory() as session:
            device_sync = TransactionTrackingSync(session=session)
            await service.delete_door(
                session, seeded.building_id, seeded.floor_id, seeded.door_id, device_sync=device_sync
            )

        assert device_sync.open_during_call == [False]
        assert device_sync.removed == ["dev-5"]

    async def test_failed_validation_never_reaches_platform(self, seeded, session):
        device_sync = TransactionTrackingSync(session=session)

        with pytest.raises(InvalidStatus):
            await service.update_door_status(
                session, seeded.building_id, seeded.floor_id, seeded.door_id, "broken", device_sync=device_sync
            )

        assert device_sync.open_during_call == []


class TestDoorTypes:
    async def test_names_are_unique(self, session):
        await service.create_door_type(session, {"name": "Glass"})

        with pytest.raises(Conflict):
            await service.create_door_type(session, {"name": "Glass"})

    async def test_rename_to_own_name(self, session):
        door_type = await service.create_door_type(session, {"name": "Glass"})

        updated = await service.update_door_type(session, door_type["id"], {"name": "Glass", "description": "Clear"})

        assert updated["description"] == "Clear"

    async def test_delete_missing(self, session):
        with pytest.raises(NotFound):
            await service.delete_door_type(session, 1)


class TestCoordinates:
    async def test_coordinates_must_be_numbers(self, seeded, session):
        with pytest.raises(ValidationFailed, match="x_coordinate must be a number"):
            await service.create_coordinate(
                session, seeded.building_id, seeded.floor_id, seeded.door_id, {"x_coordinate": "left", "y_coordinate": 1}
            )

    async def test_y_is_required(self, seeded, session):
        with pytest.raises(ValidationFailed, match="y_coordinate is required"):
            await service.create_coordinate(
                session, seeded.building_id, seeded.floor_id, seeded.door_id, {"x_coordinate": 1}
            )

    async def test_update_keeps_door(self, seeded, session):
        created = await service.create_coordinate(
            session, seeded.building_id, seeded.floor_id, seeded.door_id, {"x_coordinate": 1, "y_coordinate": 2}
        )

        updated = await service.update_coordinate(
            session,
            seeded.building_id,
            seeded.floor_id,
            seeded.door_id,
            created["id"],
            {"rotation": 90, "door_id": 999},
        )

        assert updated["rotation"] == 90.0
        assert updated["door_id"] == seeded.door_id

    async def test_missing_coordinate(self, seeded, session):
        with pytest.raises(NotFound, match="Door coordinate not found"):
            await service.delete_coordinate(session, seeded.building_id, seeded.floor_id, seeded.door_id, 1)


class TestActivityLog:
    async def test_newest_first_with_actor_name(self, seeded, session):
        await service.create_building(session, {"name": "Annex"}, user_id=ACTOR_ID)
        await service.create_door_type(session, {"name": "Glass"}, user_id=ACTOR_ID)

        page = await list_activity_logs(session, user_id=ACTOR_ID)

        assert page["total"] == 2
        assert [item["action"] for item in page["data"]] == ["Created door type", "Created building"]
        assert page["data"][0]["user_full_name"] == "Olive Operator"

    async def test_filter_by_entity_type(self, seeded, session):
        await service.create_building(session, {"name": "Annex"})
        await service.create_door_type(session, {"name": "Glass"})

        page = await list_activity_logs(session, entity_type="door_type")

        assert [item["entity_type"] for item in page["data"]] == ["door_type"]
