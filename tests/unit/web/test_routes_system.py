"""Tests for the health, auth and realtime routes."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError

from accesshub.core.errors import InvalidCredentials
from accesshub.realtime.hub import NotificationHub
from accesshub.web.routes import auth, health, realtime


class TestHealth:
    def test_healthy(self, make_client):
        client = make_client(
            health.router,
            device_sync=SimpleNamespace(enabled=True),
            connections=SimpleNamespace(watched_doors=[5, 6]),
            hub=NotificationHub(),
        )

        response = client.get("/api/health")

        assert response.status_code == 200
        assert response.json()["data"] == {
            "status": "ok",
            "database": "connected",
            "device_sync": True,
            "watched_doors": 2,
            "websocket_clients": 0,
        }

    def test_database_down(self, make_client, mock_db):
        mock_db.execute.side_effect = OperationalError("SELECT 1", {}, Exception("disk I/O error"))
        client = make_client(health.router)

        response = client.get("/api/health")

        body = response.json()
        assert body["message"] == "Service degraded"
        assert body["data"]["database"] == "disconnected"
        assert body["data"]["device_sync"] is False


class TestAuthRoutes:
    @pytest.fixture
    def client(self, make_client):
        return make_client(auth.router)

    @patch("accesshub.web.routes.auth.log_activity", new_callable=AsyncMock)
    @patch("accesshub.web.routes.auth.create_session")
    @patch("accesshub.web.routes.auth.authenticate", new_callable=AsyncMock)
    def test_login_sets_cookie(self, mock_authenticate, mock_create_session, mock_log, client, mock_db):
        mock_authenticate.return_value = SimpleNamespace(
            id=42,
            username="operator",
            role="operator",
            as_dict=lambda: {"id": 42, "username": "operator", "role": "operator"},
        )
        mock_create_session.return_value = "token-abc"

        response = client.post("/api/auth/login", json={"username": "operator", "password": "s3cret"})

        assert response.status_code == 200
        body = response.json()
        assert body["data"]["token"] == "token-abc"
        assert body["data"]["user"]["username"] == "operator"
        assert response.cookies.get("session") == "token-abc"
        mock_authenticate.assert_awaited_once_with(mock_db, "operator", "s3cret")
        mock_create_session.assert_called_once_with("operator", "operator", 42)
        assert mock_log.call_args.args[1] == "Logged in"

    @patch("accesshub.web.routes.auth.authenticate", new_callable=AsyncMock)
    def test_bad_credentials(self, mock_authenticate, client):
        mock_authenticate.side_effect = InvalidCredentials("Invalid username or password")

        response = client.post("/api/auth/login", json={"username": "operator", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["r"] == 1004

    def test_login_requires_password(self, client):
        response = client.post("/api/auth/login", json={"username": "operator"})

        assert response.status_code == 422
        assert response.json()["data"]["errors"][0]["field"] == "password"

    @patch("accesshub.web.routes.auth.auth_logout")
    def test_logout_uses_bearer_token(self, mock_logout, client):
        response = client.post("/api/auth/logout", headers={"Authorization": "Bearer token-abc"})

        assert response.status_code == 200
        mock_logout.assert_called_once_with("token-abc")

    def test_me_without_auth(self, client):
        response = client.get("/api/auth/me")

        data = response.json()["data"]
        assert data["username"] == "default_admin"
        assert data["role"] == "admin"
        assert data["user"] is None
        assert "door.lock.manage" in data["permissions"]


class TestRealtime:
    @pytest.fixture
    def hub(self):
        return NotificationHub()

    @pytest.fixture
    def client(self, make_client, hub):
        return make_client(realtime.router, prefix="", hub=hub)

    def test_join_and_leave_room(self, client, hub):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_json({"action": "join-room", "room": "door:5"})
            assert websocket.receive_json() == {"event": "room-joined", "data": {"room": "door:5"}}
            assert hub.room_members("door:5") == 1

            websocket.send_json({"action": "leave-room", "room": "door:5"})
            assert websocket.receive_json() == {"event": "room-left", "data": {"room": "door:5"}}
            assert hub.room_members("door:5") == 0

    def test_bad_frames(self, client):
        with client.websocket_connect("/ws") as websocket:
            websocket.send_text("not json")
            assert websocket.receive_json()["data"] == {"message": "Invalid JSON"}

            websocket.send_json({"action": "dance"})
            assert websocket.receive_json() == {"event": "error", "data": {"message": "Unknown action"}}
