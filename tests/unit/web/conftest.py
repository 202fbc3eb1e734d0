"""Fixtures for route tests: a bare FastAPI app per router with a mocked session."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from accesshub.db.connection import get_db
from accesshub.web.app import install_exception_handlers


@pytest.fixture
def mock_db():
    """Session stand-in handed to routes through `get_db`."""
    return AsyncMock()


@pytest.fixture
def make_client(mock_db):
    """Build a TestClient over the given routers, with optional app.state values."""

    def _make(*routers, prefix: str = "/api", **state) -> TestClient:
        app = FastAPI()
        install_exception_handlers(app)
        for router in routers:
            app.include_router(router, prefix=prefix)
        for key, value in state.items():
            setattr(app.state, key, value)

        async def _db():
            yield mock_db

        app.dependency_overrides[get_db] = _db
        return TestClient(app)

    return _make


@pytest.fixture
def lock_service():
    service = MagicMock()
    service.update_lock_status = AsyncMock()
    return service


@pytest.fixture
def request_service():
    service = MagicMock()
    service.create_request = AsyncMock()
    service.resolve_request = AsyncMock()
    return service
