"""Database layer for AccessHub with async SQLAlchemy."""

from accesshub.db.connection import get_db, get_session, init_db
from accesshub.db.models import (
    ActivityLogModel,
    Base,
    BuildingModel,
    DoorCoordinateModel,
    DoorLockHistoryModel,
    DoorModel,
    DoorRequestModel,
    DoorTypeModel,
    FloorModel,
    UserModel,
)

__all__ = [
    "Base",
    "BuildingModel",
    "FloorModel",
    "DoorTypeModel",
    "DoorModel",
    "DoorCoordinateModel",
    "DoorRequestModel",
    "DoorLockHistoryModel",
    "ActivityLogModel",
    "UserModel",
    "get_db",
    "get_session",
    "init_db",
]
