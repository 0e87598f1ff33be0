# ephemeral_chat/api/routes/rooms.py

from fastapi import APIRouter, HTTPException
from fastapi.responses import JSONResponse

from ephemeral_chat.core import state
from ephemeral_chat.core.logging import get_logger
from ephemeral_chat.models.models import CreateRoomResponse, Room

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.post("/create-room")
async def create_room():
    """
    Create a new ephemeral room.

    The room starts empty with its inactivity timer armed; it disappears when
    its last member leaves or after the inactivity window passes.

    Returns:
        {"roomCode": "AB12C3"}

    Errors:
        500 {"error": "Failed to create room"}
    """
    try:
        code = state.room_registry.create_room()
    except Exception:
        logger.exception("Failed to create room")
        return JSONResponse(status_code=500, content={"error": "Failed to create room"})

    return CreateRoomResponse(room_code=code).to_wire()


@router.get("/rooms/{room_code}")
async def get_room(room_code: str):
    """
    Look up a live room.

    Args:
        room_code: 6-character code, any case

    Returns:
        Room: code, createdAt, lastActivity, users

    Raises:
        HTTPException: 404 if no live room has that code
    """
    if state.access_gate.is_protected(room_code):
        raise HTTPException(status_code=404, detail="Room not found")

    room: Room | None = state.room_registry.get_room(room_code)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")

    return room.to_wire()
