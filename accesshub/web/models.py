"""Shared Pydantic models for the AccessHub web API.

Fields the domain layer validates itself (required names, statuses) are
optional here so a missing value reaches the service and comes back as a
400 envelope with a readable message rather than a schema error.

Usage:
    from accesshub.web.models import LockUpdate

    @router.put("/lock")
    async def update_lock(body: LockUpdate):
        ...
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class _Body(BaseModel):
    model_config = ConfigDict(extra="ignore")


# ============================================================================
# Auth
# ============================================================================


class LoginRequest(_Body):
    username: str
    password: str


class RegisterRequest(_Body):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class ProfileUpdate(_Body):
    username: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None


class PasswordChange(_Body):
    current_password: Optional[str] = None
    new_password: Optional[str] = None


# ============================================================================
# Users
# ============================================================================


class UserCreate(_Body):
    username: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None


class UserUpdate(_Body):
    username: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None


class UserReview(_Body):
    comment: Optional[str] = None


# ============================================================================
# Directory
# ============================================================================


class StatusUpdate(_Body):
    status: Optional[str] = None


class BuildingCreate(_Body):
    name: Optional[str] = None
    address: Optional[str] = None
    status: Optional[str] = None


class BuildingUpdate(_Body):
    name: Optional[str] = None
    address: Optional[str] = None
    status: Optional[str] = None


class FloorCreate(_Body):
    name: Optional[str] = None
    floor_number: Optional[int] = None
    status: Optional[str] = None
    floor_plan_image: Optional[str] = None


class FloorUpdate(_Body):
    name: Optional[str] = None
    floor_number: Optional[int] = None
    status: Optional[str] = None
    floor_plan_image: Optional[str] = None


class FloorPlanUpdate(_Body):
    floor_plan_image: Optional[str] = None


class DoorCreate(_Body):
    name: Optional[str] = None
    description: Optional[str] = None
    door_type_id: Optional[int] = None
    status: Optional[str] = None


class DoorUpdate(_Body):
    """Door edit; lock_status and floor_id are accepted but ignored."""

    name: Optional[str] = None
    description: Optional[str] = None
    door_type_id: Optional[int] = None
    status: Optional[str] = None
    lock_status: Optional[str] = None
    floor_id: Optional[int] = None


class DoorTypeCreate(_Body):
    name: Optional[str] = None
    description: Optional[str] = None


class DoorTypeUpdate(_Body):
    name: Optional[str] = None
    description: Optional[str] = None


class CoordinateCreate(_Body):
    x_coordinate: Optional[float] = None
    y_coordinate: Optional[float] = None
    z_coordinate: Optional[float] = None
    rotation: Optional[float] = None


class CoordinateUpdate(_Body):
    x_coordinate: Optional[float] = None
    y_coordinate: Optional[float] = None
    z_coordinate: Optional[float] = None
    rotation: Optional[float] = None
    door_id: Optional[int] = None


# ============================================================================
# Locks & Requests
# ============================================================================


class LockUpdate(_Body):
    lock_status: Optional[str] = None
    reason: Optional[str] = None
    request_id: Optional[int] = None


class DoorRequestCreate(_Body):
    door_id: Optional[int] = None
    requester_name: Optional[str] = None
    requester_phone: Optional[str] = None
    requester_email: Optional[str] = None
    purpose: Optional[str] = None


class DoorRequestResolve(_Body):
    status: Optional[str] = None
    reason: Optional[str] = None
