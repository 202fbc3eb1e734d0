"""WebSocket endpoint for real-time notifications.

Clients receive every broadcast event. Sending
``{"action": "join-room", "room": "door:5"}`` subscribes to a room's events
and ``{"action": "leave-room", "room": "door:5"}`` unsubscribes.
"""

from __future__ import annotations

import json

import structlog
from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from accesshub.realtime.hub import encode_event

logger = structlog.get_logger()

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def notifications(websocket: WebSocket):
    hub = websocket.app.state.hub
    await websocket.accept()
    await hub.connect(websocket)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                await websocket.send_text(encode_event("error", {"message": "Invalid JSON"}))
                continue

            action = frame.get("action") if isinstance(frame, dict) else None
            room = frame.get("room") if isinstance(frame, dict) else None
            if action == "join-room" and room:
                await hub.join(websocket, str(room))
                await websocket.send_text(encode_event("room-joined", {"room": room}))
            elif action == "leave-room" and room:
                await hub.leave(websocket, str(room))
                await websocket.send_text(encode_event("room-left", {"room": room}))
            else:
                await websocket.send_text(encode_event("error", {"message": "Unknown action"}))
    except WebSocketDisconnect:
        logger.debug("websocket_disconnected")
    finally:
        await hub.disconnect(websocket)
