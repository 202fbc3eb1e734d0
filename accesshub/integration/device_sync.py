"""Best-effort synchronisation of door state to the device platform.

Local state wins: every call here returns a `SyncResult` instead of raising,
so a platform outage never fails or rolls back a local change.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import structlog

from accesshub.core.errors import DeviceSyncError
from accesshub.integration.thingsboard_client import ThingsBoardClient

logger = structlog.get_logger()


@dataclass(frozen=True)
class SyncResult:
    """Outcome of one device-sync attempt."""

    ok: bool
    skipped: bool = False
    error: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, **data) -> SyncResult:
        return cls(ok=True, data=data)

    @classmethod
    def skip(cls, reason: str) -> SyncResult:
        return cls(ok=False, skipped=True, error=reason)

    @classmethod
    def failure(cls, error: str) -> SyncResult:
        return cls(ok=False, error=error)


class DeviceSync:
    """Failure boundary around `ThingsBoardClient`."""

    def __init__(self, client: ThingsBoardClient | None, enabled: bool = True):
        self.client = client
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled and self.client is not None

    async def _guard(self, operation: str, call: Callable[[], Awaitable[SyncResult]], **context) -> SyncResult:
        if not self.enabled:
            return SyncResult.skip("device platform not configured")
        try:
            result = await call()
        except DeviceSyncError as exc:
            logger.warning("device_sync_failed", operation=operation, error=str(exc), **context)
            return SyncResult.failure(str(exc))
        except Exception as exc:
            logger.exception("device_sync_error", operation=operation, **context)
            return SyncResult.failure(str(exc))
        logger.info("device_sync_succeeded", operation=operation, **context)
        return result

    async def push_lock_state(
        self,
        device_id: str | None,
        access_token: str | None,
        *,
        lock_status: str,
        door_status: str,
        user_id: int | None,
        user_name: str | None = None,
        request_id: int | None = None,
        requester_name: str | None = None,
        reason: str | None = None,
    ) -> SyncResult:
        """Push a lock change as shared attributes plus a telemetry sample."""
        if not device_id:
            return SyncResult.skip("door has no device")

        async def _push() -> SyncResult:
            await self.client.update_device_attributes(
                device_id,
                {
                    "lockStatus": lock_status,
                    "status": door_status,
                    "lastUpdatedBy": user_id,
                    "lastUpdatedByName": user_name,
                    "lastUpdateReason": reason or "Manual update",
                },
            )
            if access_token:
                await self.client.send_telemetry(
                    access_token,
                    {
                        "lockStatus": lock_status,
                        "status": door_status,
                        "ts": int(time.time() * 1000),
                        "userId": user_id,
                        "userName": user_name,
                        "requesterName": requester_name,
                        "requestId": request_id,
                        "reason": reason or "Manual update",
                    },
                )
            return SyncResult.success()

        return await self._guard("push_lock_state", _push, device_id=device_id, lock_status=lock_status)

    async def push_door_state(
        self,
        device_id: str | None,
        *,
        door_status: str,
        lock_status: str,
        user_id: int | None,
        reason: str | None = None,
    ) -> SyncResult:
        """Push door status/details after an administrative edit."""
        if not device_id:
            return SyncResult.skip("door has no device")

        async def _push() -> SyncResult:
            await self.client.update_device_attributes(
                device_id,
                {
                    "lockStatus": lock_status,
                    "status": door_status,
                    "lastUpdatedBy": user_id,
                    "lastUpdateReason": reason or "Door updated",
                },
            )
            return SyncResult.success()

        return await self._guard("push_door_state", _push, device_id=device_id, door_status=door_status)

    async def provision_device(self, name: str) -> SyncResult:
        """Create a device for a new door; `data` holds device_id and access_token."""

        async def _provision() -> SyncResult:
            device = await self.client.create_device(name, "door")
            device_id = device["id"]["id"]
            credentials = await self.client.get_device_credentials(device_id)
            return SyncResult.success(
                device_id=device_id,
                access_token=credentials.get("credentialsId"),
            )

        return await self._guard("provision_device", _provision, door_name=name)

    async def remove_device(self, device_id: str | None) -> SyncResult:
        if not device_id:
            return SyncResult.skip("door has no device")

        async def _remove() -> SyncResult:
            await self.client.delete_device(device_id)
            return SyncResult.success()

        return await self._guard("remove_device", _remove, device_id=device_id)

    async def close(self) -> None:
        if self.client is not None:
            await self.client.close()
