"""ThingsBoard REST API client for door device provisioning and state pushes."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from accesshub.config import ThingsBoardConfig
from accesshub.core.errors import DeviceSyncError

logger = structlog.get_logger()

# camelCase attribute/telemetry keys and the snake_case names devices read
_SNAKE_CASE_KEYS = {
    "lockStatus": "lock_status",
    "lastUpdatedBy": "last_updated_by",
    "lastUpdatedByName": "last_updated_by_name",
    "lastUpdateReason": "last_update_reason",
    "userId": "user_id",
    "userName": "user_name",
    "requesterName": "requester_name",
    "requestId": "request_id",
    "ts": "timestamp",
}


def with_snake_case(payload: dict[str, Any]) -> dict[str, Any]:
    """Copy of `payload` with snake_case aliases added for known camelCase keys."""
    formatted = dict(payload)
    for key, alias in _SNAKE_CASE_KEYS.items():
        if key in payload:
            formatted[alias] = payload[key]
    return formatted


class ThingsBoardClient:
    """Client for the ThingsBoard device platform.

    The JWT from `login()` is cached on the instance. A 401 response drops
    it and the request is retried once after logging in again.
    """

    def __init__(
        self,
        base_url: str,
        username: str | None,
        password: str | None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.password = password
        self._token: str | None = None
        self._login_lock = asyncio.Lock()
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={"Content-Type": "application/json"},
        )

    @classmethod
    def from_config(cls, config: ThingsBoardConfig, **kwargs) -> ThingsBoardClient:
        return cls(
            base_url=config.base_url,
            username=config.username,
            password=config.password,
            timeout=config.timeout_seconds,
            **kwargs,
        )

    @property
    def token(self) -> str | None:
        return self._token

    def invalidate(self) -> None:
        """Forget the cached token."""
        self._token = None

    async def login(self) -> str:
        """Authenticate and cache the JWT."""
        async with self._login_lock:
            try:
                response = await self.client.post(
                    "/api/auth/login",
                    json={"username": self.username, "password": self.password},
                )
                response.raise_for_status()
                token = response.json()["token"]
            except httpx.HTTPStatusError as exc:
                raise DeviceSyncError(
                    f"ThingsBoard login failed: {exc.response.status_code}"
                ) from exc
            except (httpx.RequestError, KeyError, ValueError) as exc:
                raise DeviceSyncError(f"ThingsBoard login failed: {exc}") from exc

            self._token = token
            logger.info("thingsboard_login_succeeded", base_url=self.base_url)
            return token

    async def _auth_headers(self) -> dict[str, str]:
        if self._token is None:
            await self.login()
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        authenticated: bool = True,
    ) -> httpx.Response:
        attempts = 2 if authenticated else 1
        for attempt in range(attempts):
            headers = await self._auth_headers() if authenticated else {}
            try:
                response = await self.client.request(method, path, json=json, headers=headers)
            except httpx.RequestError as exc:
                raise DeviceSyncError(f"ThingsBoard request failed: {exc}") from exc

            if response.status_code == 401 and authenticated and attempt == 0:
                logger.info("thingsboard_token_rejected", path=path)
                self.invalidate()
                continue

            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                raise DeviceSyncError(
                    f"ThingsBoard API error: {exc.response.status_code} {exc.response.text}"
                ) from exc
            return response

        raise DeviceSyncError("ThingsBoard rejected credentials after re-login")

    async def create_device(self, name: str, device_type: str = "door", **extra) -> dict:
        """Create a device; it starts out marked active."""
        additional_info = dict(extra.pop("additionalInfo", None) or {})
        additional_info["active"] = True
        body = {"name": name, "type": device_type, "additionalInfo": additional_info, **extra}
        response = await self._request("POST", "/api/device", json=body)
        return response.json()

    async def get_device_credentials(self, device_id: str) -> dict:
        response = await self._request("GET", f"/api/device/{device_id}/credentials")
        return response.json()

    async def delete_device(self, device_id: str) -> None:
        await self._request("DELETE", f"/api/device/{device_id}")

    async def update_device_activity(self, device_id: str, active: bool) -> None:
        await self._request(
            "POST",
            f"/api/plugins/telemetry/DEVICE/{device_id}/SERVER_SCOPE",
            json={"active": active},
        )

    async def update_device_attributes(self, device_id: str, attributes: dict[str, Any]) -> None:
        """Write shared attributes, then mirror `status` into the activity flag."""
        await self._request(
            "POST",
            f"/api/plugins/telemetry/DEVICE/{device_id}/SHARED_SCOPE",
            json=with_snake_case(attributes),
        )
        await self.update_device_activity(device_id, attributes.get("status") == "active")

    async def send_telemetry(self, access_token: str, telemetry: dict[str, Any]) -> None:
        """Post telemetry as the device itself (authenticated by its access token)."""
        await self._request(
            "POST",
            f"/api/v1/{access_token}/telemetry",
            json=with_snake_case(telemetry),
            authenticated=False,
        )

    def websocket_url(self) -> str:
        """Telemetry subscription endpoint for the cached token."""
        ws_base = self.base_url.replace("https://", "wss://", 1).replace("http://", "ws://", 1)
        return f"{ws_base}/api/ws/plugins/telemetry?token={self._token or ''}"

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> ThingsBoardClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
