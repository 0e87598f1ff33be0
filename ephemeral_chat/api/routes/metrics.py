# ephemeral_chat/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from ephemeral_chat.core import state

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Usage counters since process start.

    Example Response:
        {
            "total_messages": 1200,
            "uptime_hours": 5.5,
            "messages_per_second": 0.06,
            "rooms_created": 40,
            "rooms_expired": 3,
            "active_rooms": 6,
            "concurrent_connections": 14,
            "rooms": {"AB12C3": {"connections": 2, "members": 2}}
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    total_messages = state.session_coordinator.messages_relayed

    if uptime_seconds > 0:
        messages_per_second = total_messages / uptime_seconds
    else:
        messages_per_second = 0

    return {
        # Statistics
        "total_messages": total_messages,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Room lifecycle
        "rooms_created": state.room_registry.rooms_created,
        "rooms_expired": state.room_registry.rooms_expired,
        "active_rooms": len(state.room_registry.rooms),

        # Capacity
        "concurrent_connections": len(state.session_coordinator.connections),
        "rooms": state.session_coordinator.get_rooms_info(),
    }
