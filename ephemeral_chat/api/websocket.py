# ephemeral_chat/api/websocket.py

from __future__ import annotations

import asyncio
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ephemeral_chat.core import state
from ephemeral_chat.core.logging import get_connection_logger
from ephemeral_chat.models.models import ErrorEvent
from ephemeral_chat.services.connection import WebSocketConnection

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time room chat.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join Room:
        {"action": "join-room", "data": {"roomCode": "AB12C3",
                                         "user": {"id": "u1", "username": "Al", "color": "#111"},
                                         "pass": "<only for the protected room>"}}
        Response: {"type": "joined", "users": [...], "messages": [...]}
        Others:   {"type": "user-joined", "username": "Al", "users": [...]}

    Send Message:
        {"action": "send-message", "data": {"roomCode": "AB12C3", "content": "hello"}}
        Everyone (sender included): {"type": "receive-message", "message": {...}}

    Typing:
        {"action": "typing", "data": {"roomCode": "AB12C3"}}
        {"action": "stop-typing", "data": {"roomCode": "AB12C3"}}
        Others: {"type": "typing" | "stop-typing", "userId": "u1", "username": "Al"}

    Server -> Client Messages:
    -------------------------
    Member Left:
        {"type": "user-left", "username": "Al", "users": [...]}

    Room Expired (connection is closed right after):
        {"type": "room-expired"}

    Protected Room Rejected:
        {"type": "invalid-password"}

    Error:
        {"type": "error", "message": "..."}

    Lifecycle:
    ==========
    1. Client connects, connection registered with the coordinator
    2. Client sends "join-room" once
    3. Client relays messages and typing state within that room
    4. On disconnect (clean or not) the member leaves the room exactly once
    """
    await websocket.accept()

    connection = WebSocketConnection(websocket)
    log = get_connection_logger(__name__, connection.id)
    state.session_coordinator.connect(connection)
    writer = asyncio.create_task(connection.run_writer())

    try:
        while True:
            data = await websocket.receive_text()

            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                connection.send(ErrorEvent(message="Invalid JSON").to_wire())
                continue

            log.debug("Websocket input: %s", frame.get("action") if isinstance(frame, dict) else frame)
            state.session_coordinator.dispatch(connection, frame)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        log.error("WebSocket error: %s", e)
    finally:
        state.session_coordinator.disconnect(connection)
        connection.close()
        try:
            await asyncio.wait_for(writer, timeout=1)
        except asyncio.TimeoutError:
            log.debug("Writer did not drain, cancelled")
