# ephemeral_chat/services/room_registry.py

from __future__ import annotations

import asyncio
import secrets
import string
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from ephemeral_chat.core.config import settings
from ephemeral_chat.core.logging import get_logger
from ephemeral_chat.models.models import Member, Message, Room, normalize_room_code

logger = get_logger(__name__)

ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
ROOM_CODE_LENGTH = 6

RoomExpiredCallback = Callable[[str], Any]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class RoomEntry:
    room: Room
    messages: List[Message] = field(default_factory=list)
    timer: Optional[asyncio.TimerHandle] = None


# ============================================================================
# ROOM REGISTRY
# ============================================================================

class RoomRegistry:
    """
    Owns every live room: membership, message history and the inactivity timer.

    Each room carries exactly one armed timer. Adding or removing a member and
    appending a message refresh the room's activity, which cancels the timer
    and arms a new one for the full window. When a timer fires the room is
    deleted first and the expiration callbacks run afterwards, each with the
    room code.

    A room is also deleted synchronously as soon as its last member leaves.

    Data Structures:
        rooms: Maps room code -> RoomEntry (room, messages, timer handle)
               Example: {"AB12C3": RoomEntry(room=..., messages=[...], timer=...)}

    Every public method accepts any code value; unknown or malformed codes
    produce False / None / empty lists, never an exception.

    Timers are scheduled on the running asyncio loop, so mutating operations
    must be called from a coroutine or loop callback. Mutations are serialized
    by a registry-wide lock.
    """

    def __init__(
        self,
        inactivity_timeout: float | None = None,
        reserved_codes: Iterable[str] = (),
    ) -> None:
        self.inactivity_timeout = (
            settings.ROOM_INACTIVITY_TIMEOUT_SECONDS if inactivity_timeout is None else inactivity_timeout
        )
        self.rooms: Dict[str, RoomEntry] = {}
        self.reserved_codes = {normalize_room_code(c) for c in reserved_codes if normalize_room_code(c)}
        self._expired_callbacks: List[RoomExpiredCallback] = []
        self._lock = threading.RLock()

        # Counters for /metrics
        self.rooms_created = 0
        self.rooms_expired = 0

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def generate_room_code(self) -> str:
        """
        Draw random 6-character codes until one is free.

        Reserved codes and codes of live rooms are never returned.
        """
        with self._lock:
            while True:
                code = "".join(secrets.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))
                if code not in self.rooms and code not in self.reserved_codes:
                    return code

    def create_room(self, code: str | None = None) -> str:
        """
        Register a new empty room and arm its inactivity timer.

        Args:
            code: Fixed code to open the room under (used for the protected
                  room). A fresh random code is generated when omitted.

        Returns:
            str: The code of the new room

        Raises:
            ValueError: If a fixed code is given and a room already holds it
        """
        with self._lock:
            if code is None:
                code = self.generate_room_code()
            else:
                code = normalize_room_code(code)
                if not code or code in self.rooms:
                    raise ValueError(f"Room code unavailable: {code!r}")

            now = now_ms()
            entry = RoomEntry(room=Room(code=code, created_at=now, last_activity=now, users=[]))
            self.rooms[code] = entry
            self._arm_timer(entry)
            self.rooms_created += 1

        if code in self.reserved_codes:
            logger.info("✓ Protected room opened")
        else:
            logger.info("✓ Room created: %s", code)
        return code

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_room(self, code: Any) -> Optional[Room]:
        """Snapshot of a live room's public state, or None."""
        with self._lock:
            entry = self.rooms.get(normalize_room_code(code))
            if entry is None:
                return None
            return entry.room.model_copy(update={"users": list(entry.room.users)})

    def room_exists(self, code: Any) -> bool:
        with self._lock:
            return normalize_room_code(code) in self.rooms

    def get_users(self, code: Any) -> List[Member]:
        with self._lock:
            entry = self.rooms.get(normalize_room_code(code))
            return list(entry.room.users) if entry else []

    def get_messages(self, code: Any) -> List[Message]:
        with self._lock:
            entry = self.rooms.get(normalize_room_code(code))
            return list(entry.messages) if entry else []

    def list_active_rooms(self) -> List[str]:
        with self._lock:
            return list(self.rooms.keys())

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_user(self, code: Any, user: Member) -> bool:
        """
        Add a member to a room. Re-adding an id already present is a no-op
        that still counts as activity.

        Returns:
            True on success, False if the room does not exist
        """
        with self._lock:
            entry = self.rooms.get(normalize_room_code(code))
            if entry is None:
                return False

            if not any(u.id == user.id for u in entry.room.users):
                entry.room.users.append(user)

            self._touch(entry)
            return True

    def remove_user(self, code: Any, user_id: str) -> Optional[Member]:
        """
        Remove a member from a room.

        If the room is left empty it is deleted immediately, without waiting
        for the inactivity timer.

        Returns:
            The removed Member, or None if the room or member wasn't there
        """
        with self._lock:
            code = normalize_room_code(code)
            entry = self.rooms.get(code)
            if entry is None:
                return None

            for index, user in enumerate(entry.room.users):
                if user.id == user_id:
                    removed = entry.room.users.pop(index)
                    break
            else:
                return None

            self._touch(entry)

            if not entry.room.users:
                self.delete_room(code)

            return removed

    def add_message(self, code: Any, message: Message) -> bool:
        """
        Append a message to a room's history.

        Returns:
            True on success, False if the room does not exist (the room is
            never created as a side effect)
        """
        with self._lock:
            entry = self.rooms.get(normalize_room_code(code))
            if entry is None:
                return False

            entry.messages.append(message)
            self._touch(entry)
            return True

    def delete_room(self, code: Any) -> bool:
        """
        Delete a room and its history, cancelling its timer.

        Returns:
            True if a room was deleted, False if none was live under that code
        """
        with self._lock:
            code = normalize_room_code(code)
            entry = self.rooms.pop(code, None)
            if entry is None:
                return False
            self._cancel_timer(entry)

        if code not in self.reserved_codes:
            logger.info("✗ Room deleted: %s", code)
        return True

    # ------------------------------------------------------------------
    # Expiration
    # ------------------------------------------------------------------

    def on_room_expired(self, callback: RoomExpiredCallback) -> None:
        """Register a callback invoked with the room code after each inactivity eviction."""
        self._expired_callbacks.append(callback)

    def _touch(self, entry: RoomEntry) -> None:
        entry.room.last_activity = now_ms()
        self._cancel_timer(entry)
        self._arm_timer(entry)

    def _arm_timer(self, entry: RoomEntry) -> None:
        loop = asyncio.get_running_loop()
        entry.timer = loop.call_later(self.inactivity_timeout, self._expire_room, entry)

    @staticmethod
    def _cancel_timer(entry: RoomEntry) -> None:
        if entry.timer is not None:
            entry.timer.cancel()
            entry.timer = None

    def _expire_room(self, entry: RoomEntry) -> None:
        code = entry.room.code
        with self._lock:
            # Stale fire: the room was already deleted (or its code reused)
            if self.rooms.get(code) is not entry:
                return
            del self.rooms[code]
            entry.timer = None
            self.rooms_expired += 1

        if code in self.reserved_codes:
            logger.info("Protected room expired due to inactivity")
        else:
            logger.info("Room %s expired due to inactivity", code)

        for callback in list(self._expired_callbacks):
            try:
                callback(code)
            except Exception:
                logger.exception("Room expiration callback failed for %s", code)
