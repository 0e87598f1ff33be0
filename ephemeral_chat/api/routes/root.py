# ephemeral_chat/api/routes/root.py

from fastapi import APIRouter

from ephemeral_chat.core import state
from ephemeral_chat.models.models import USER_COLORS

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Ephemeral Chat Rooms",
        "version": "1.0",
        "room_inactivity_timeout_seconds": state.room_registry.inactivity_timeout,
        "max_message_length": state.session_coordinator.max_message_length,
        "user_colors": USER_COLORS,
        "endpoints": {
            "websocket": "/ws",
            "create_room": "/api/create-room",
            "rooms": "/api/rooms/{room_code}",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
