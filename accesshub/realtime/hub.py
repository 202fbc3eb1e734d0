"""In-process event fan-out to connected WebSocket clients.

Clients receive every broadcast event and, after joining a room (for
example ``door:5``), the events emitted to that room.
"""

from __future__ import annotations

import asyncio
import json
from collections import defaultdict
from typing import Any, Protocol

import structlog

logger = structlog.get_logger()


class Listener(Protocol):
    async def send_text(self, data: str) -> None: ...


def door_room(door_id: int) -> str:
    return f"door:{door_id}"


def encode_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data}, default=str, ensure_ascii=False)


class NotificationHub:
    """Pub/sub of named events over WebSocket connections.

    Delivery is fire-and-forget: a listener whose send fails is dropped and
    the error never reaches the emitter.
    """

    def __init__(self) -> None:
        self._listeners: set[Listener] = set()
        self._rooms: dict[str, set[Listener]] = defaultdict(set)
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._listeners)

    def room_members(self, room: str) -> int:
        return len(self._rooms.get(room, ()))

    async def connect(self, listener: Listener) -> None:
        async with self._lock:
            self._listeners.add(listener)
        logger.info("hub_client_connected", connections=len(self._listeners))

    async def disconnect(self, listener: Listener) -> None:
        """Remove a listener from the hub and every room (safe to call twice)."""
        async with self._lock:
            self._listeners.discard(listener)
            for room in [name for name, members in self._rooms.items() if listener in members]:
                self._rooms[room].discard(listener)
                if not self._rooms[room]:
                    del self._rooms[room]
        logger.info("hub_client_disconnected", connections=len(self._listeners))

    async def join(self, listener: Listener, room: str) -> None:
        async with self._lock:
            self._rooms[room].add(listener)
        logger.debug("hub_room_joined", room=room)

    async def leave(self, listener: Listener, room: str) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is not None:
                members.discard(listener)
                if not members:
                    del self._rooms[room]
        logger.debug("hub_room_left", room=room)

    async def emit_event(self, event: str, data: Any) -> int:
        """Send to every connected listener; returns the number reached."""
        async with self._lock:
            targets = list(self._listeners)
        return await self._deliver(targets, event, data)

    async def emit_to_room(self, room: str, event: str, data: Any) -> int:
        """Send to members of `room`; returns the number reached."""
        async with self._lock:
            targets = list(self._rooms.get(room, ()))
        return await self._deliver(targets, event, data, room=room)

    async def _deliver(self, targets: list[Listener], event: str, data: Any, room: str | None = None) -> int:
        if not targets:
            return 0

        payload = encode_event(event, data)
        delivered = 0
        for listener in targets:
            try:
                await listener.send_text(payload)
                delivered += 1
            except Exception as exc:
                logger.warning("hub_send_failed", hub_event=event, room=room, error=str(exc))
                await self.disconnect(listener)
        return delivered

    async def close(self) -> None:
        async with self._lock:
            self._listeners.clear()
            self._rooms.clear()
