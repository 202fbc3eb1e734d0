"""Tests for the ThingsBoard REST client using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from accesshub.core.errors import DeviceSyncError
from accesshub.integration.thingsboard_client import ThingsBoardClient, with_snake_case


class FakePlatform:
    """Records requests and answers like a small ThingsBoard tenant."""

    def __init__(self, reject_first_token: bool = False, login_status: int = 200):
        self.requests: list[httpx.Request] = []
        self.logins = 0
        self.reject_first_token = reject_first_token
        self.login_status = login_status

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == "/api/auth/login":
            self.logins += 1
            if self.login_status != 200:
                return httpx.Response(self.login_status, json={"message": "bad credentials"})
            return httpx.Response(200, json={"token": f"jwt-{self.logins}"})

        if path.startswith("/api/v1/"):
            return httpx.Response(200)

        if self.reject_first_token and request.headers.get("Authorization") == "Bearer jwt-1":
            return httpx.Response(401, json={"message": "Token has expired"})

        if path == "/api/device" and request.method == "POST":
            return httpx.Response(200, json={"id": {"id": "dev-1", "entityType": "DEVICE"}})
        if path == "/api/device/dev-1/credentials":
            return httpx.Response(200, json={"credentialsId": "device-token"})
        if path.startswith("/api/plugins/telemetry/DEVICE/"):
            return httpx.Response(200)
        if path.startswith("/api/device/") and request.method == "DELETE":
            return httpx.Response(200)
        return httpx.Response(404)

    def bodies(self, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path == path]


def make_client(platform: FakePlatform) -> ThingsBoardClient:
    return ThingsBoardClient(
        "https://tb.example.com",
        "tenant@example.com",
        "secret",
        transport=httpx.MockTransport(platform),
    )


class TestLogin:
    async def test_token_is_cached(self):
        platform = FakePlatform()
        async with make_client(platform) as client:
            await client.update_device_activity("dev-1", True)
            await client.update_device_activity("dev-1", False)

        assert platform.logins == 1
        telemetry = [r for r in platform.requests if "SERVER_SCOPE" in r.url.path]
        assert all(r.headers["Authorization"] == "Bearer jwt-1" for r in telemetry)

    async def test_login_failure_raises_device_sync_error(self):
        platform = FakePlatform(login_status=401)
        async with make_client(platform) as client:
            with pytest.raises(DeviceSyncError):
                await client.login()

    async def test_rejected_token_triggers_single_relogin(self):
        platform = FakePlatform(reject_first_token=True)
        async with make_client(platform) as client:
            await client.update_device_activity("dev-1", True)
            assert client.token == "jwt-2"

        assert platform.logins == 2
        calls = [r for r in platform.requests if "SERVER_SCOPE" in r.url.path]
        assert [r.headers["Authorization"] for r in calls] == ["Bearer jwt-1", "Bearer jwt-2"]


class TestDeviceCalls:
    async def test_create_device_marks_active(self):
        platform = FakePlatform()
        async with make_client(platform) as client:
            device = await client.create_device("Front Entrance")

        assert device["id"]["id"] == "dev-1"
        body = platform.bodies("/api/device")[0]
        assert body["name"] == "Front Entrance"
        assert body["type"] == "door"
        assert body["additionalInfo"]["active"] is True

    async def test_update_attributes_adds_snake_case_and_activity(self):
        platform = FakePlatform()
        async with make_client(platform) as client:
            await client.update_device_attributes(
                "dev-1", {"lockStatus": "open", "status": "inactive", "lastUpdatedBy": 42}
            )

        shared = platform.bodies("/api/plugins/telemetry/DEVICE/dev-1/SHARED_SCOPE")[0]
        assert shared["lockStatus"] == "open"
        assert shared["lock_status"] == "open"
        assert shared["last_updated_by"] == 42
        server = platform.bodies("/api/plugins/telemetry/DEVICE/dev-1/SERVER_SCOPE")[0]
        assert server == {"active": False}

    async def test_send_telemetry_uses_device_token_without_login(self):
        platform = FakePlatform()
        async with make_client(platform) as client:
            await client.send_telemetry("device-token", {"lockStatus": "closed", "ts": 1})

        assert platform.logins == 0
        body = platform.bodies("/api/v1/device-token/telemetry")[0]
        assert body["lock_status"] == "closed"
        assert body["timestamp"] == 1

    async def test_http_error_becomes_device_sync_error(self):
        platform = FakePlatform()
        async with make_client(platform) as client:
            with pytest.raises(DeviceSyncError):
                await client.get_device_credentials("missing")

    async def test_transport_error_becomes_device_sync_error(self):
        def broken(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = ThingsBoardClient("https://tb.example.com", "u", "p", transport=httpx.MockTransport(broken))
        with pytest.raises(DeviceSyncError):
            await client.login()
        await client.close()


def test_with_snake_case_keeps_original_keys():
    payload = {"lockStatus": "open", "requestId": 7, "other": 1}

    formatted = with_snake_case(payload)

    assert formatted == {"lockStatus": "open", "requestId": 7, "other": 1, "lock_status": "open", "request_id": 7}
    assert "lock_status" not in payload


def test_websocket_url_uses_ws_scheme():
    client = ThingsBoardClient("https://tb.example.com", "u", "p")
    assert client.websocket_url() == "wss://tb.example.com/api/ws/plugins/telemetry?token="
