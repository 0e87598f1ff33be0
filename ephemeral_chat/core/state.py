# ephemeral_chat/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from ephemeral_chat.core.config import settings
from ephemeral_chat.services.room_access import RoomAccessGate
from ephemeral_chat.services.room_registry import RoomRegistry
from ephemeral_chat.services.session_coordinator import SessionCoordinator

# Global singletons for app state
access_gate = RoomAccessGate(settings.PROTECTED_ROOM_CODE, settings.PROTECTED_ROOM_PASSWORD)
room_registry = RoomRegistry(reserved_codes=[settings.PROTECTED_ROOM_CODE])
session_coordinator = SessionCoordinator(room_registry=room_registry, access_gate=access_gate)

# Metrics
app_start_time: datetime = datetime.now(timezone.utc)
