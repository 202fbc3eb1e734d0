"""SQLAlchemy async database models for AccessHub.

Buildings own floors, floors own doors, doors own coordinates and their
lock history. Door requests reference (but are not owned by) doors.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""

    def as_dict(self) -> dict[str, Any]:
        """Column values as a JSON-friendly dict."""
        out: dict[str, Any] = {}
        for column in self.__table__.columns:
            out[column.key] = jsonable(getattr(self, column.key))
        return out


def jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )


class BuildingModel(Base):
    __tablename__ = "buildings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (Index("idx_buildings_status", "status"),)


class FloorModel(Base):
    """Floor of a building.

    (building_id, name) and (building_id, floor_number) are unique per
    building; the directory service checks this before writing.
    """

    __tablename__ = "floors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    building_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("buildings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    floor_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    floor_plan_image: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class DoorTypeModel(Base):
    __tablename__ = "door_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class DoorModel(Base):
    """Door on a floor.

    `lock_status` is written only by the lock service.
    """

    __tablename__ = "doors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    floor_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("floors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    door_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("door_types.id", ondelete="SET NULL")
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    lock_status: Mapped[str] = mapped_column(String(20), nullable=False, default="closed")

    # External device binding
    thingsboard_device_id: Mapped[str | None] = mapped_column(String(255))
    thingsboard_access_token: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (Index("idx_doors_floor_status", "floor_id", "status"),)


class DoorCoordinateModel(Base):
    __tablename__ = "door_coordinates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    door_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doors.id", ondelete="CASCADE"), nullable=False, index=True
    )
    x_coordinate: Mapped[float] = mapped_column(Float, nullable=False)
    y_coordinate: Mapped[float] = mapped_column(Float, nullable=False)
    z_coordinate: Mapped[float | None] = mapped_column(Float)
    rotation: Mapped[float | None] = mapped_column(Float)  # degrees
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class DoorRequestModel(Base):
    """Requester's ask to toggle a door lock.

    Created pending; resolved exactly once to approved or rejected.
    """

    __tablename__ = "door_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    door_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("doors.id", ondelete="SET NULL"), index=True
    )
    requester_name: Mapped[str] = mapped_column(String(255), nullable=False)
    requester_phone: Mapped[str | None] = mapped_column(String(50))
    requester_email: Mapped[str | None] = mapped_column(String(255))
    purpose: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    processed_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL")
    )
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (
        Index("idx_door_requests_status_created", "status", "created_at"),
        Index("idx_door_requests_door_status", "door_id", "status"),
    )


class DoorLockHistoryModel(Base):
    """Append-only record of lock status changes."""

    __tablename__ = "door_lock_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    door_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("doors.id", ondelete="CASCADE"), nullable=False
    )
    previous_status: Mapped[str | None] = mapped_column(String(20))
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    changed_by: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL")
    )
    request_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("door_requests.id", ondelete="SET NULL")
    )
    reason: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (Index("idx_lock_history_door_created", "door_id", "created_at"),)


class ActivityLogModel(Base):
    """Append-only audit trail of administrative actions."""

    __tablename__ = "activity_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int | None] = mapped_column(Integer, index=True)
    action: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)
    entity_id: Mapped[int | None] = mapped_column(Integer)
    details: Mapped[dict | None] = mapped_column(JSON)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (Index("idx_activity_entity", "entity_type", "entity_id"),)


class UserModel(Base):
    """Operator account used by session authentication."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50))
    role: Mapped[str] = mapped_column(String(20), nullable=False, default="viewer")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    # Self-registered accounts wait for an admin before they can log in
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    def as_dict(self) -> dict[str, Any]:
        data = super().as_dict()
        data.pop("password_hash", None)
        return data
