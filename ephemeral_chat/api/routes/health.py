# ephemeral_chat/api/routes/health.py

from fastapi import APIRouter

from ephemeral_chat.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns:
        dict: Status, open connection count, live room count, rooms with connected members
    """
    return {
        "status": "healthy",
        "connections": len(state.session_coordinator.connections),
        "rooms": len(state.room_registry.rooms),
        "active_rooms_with_members": len(state.session_coordinator.rooms),
    }
