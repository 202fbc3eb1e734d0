"""AccessHub domain enumerations and shared value types."""

from __future__ import annotations

from enum import Enum


class BuildingStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class FloorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class DoorStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class LockStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"

    def toggled(self) -> LockStatus:
        return toggle_lock_status(self.value)


def toggle_lock_status(current: str | None) -> LockStatus:
    """Blind toggle used by request approval: closed opens, anything else closes."""
    return LockStatus.OPEN if current == LockStatus.CLOSED.value else LockStatus.CLOSED


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    OPERATOR = "operator"
    VIEWER = "viewer"


class ReportType(str, Enum):
    SUMMARY = "summary"
    FREQUENCY = "frequency"
    USER_ACTIVITY = "user_activity"
    TIME_ANALYSIS = "time_analysis"
    DOOR_COMPARISON = "door_comparison"


class GroupBy(str, Enum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def parse_enum(enum_cls: type[Enum], value: str | None) -> Enum | None:
    """Return the enum member for `value`, or None when it is not a member."""
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None
