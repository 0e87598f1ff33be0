# ephemeral_chat/services/session_coordinator.py

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ephemeral_chat.core.config import settings
from ephemeral_chat.core.logging import get_logger
from ephemeral_chat.models.models import (
    ErrorEvent,
    InvalidPasswordEvent,
    JoinedEvent,
    JoinRoomRequest,
    Member,
    Message,
    ReceiveMessageEvent,
    RoomExpiredEvent,
    SendMessageRequest,
    TypingEvent,
    TypingRequest,
    UserJoinedEvent,
    UserLeftEvent,
)
from ephemeral_chat.services.connection import ClientConnection
from ephemeral_chat.services.room_access import RoomAccessGate
from ephemeral_chat.services.room_registry import RoomRegistry, now_ms

logger = get_logger(__name__)


@dataclass
class Binding:
    """A connection's membership: which room it is in and as whom."""
    connection: ClientConnection
    room_code: str
    member: Member


# ============================================================================
# SESSION COORDINATOR
# ============================================================================

class SessionCoordinator:
    """
    Binds live connections to (room, member) pairs and fans room changes out
    to them.

    Data Structures:
        connections: Maps connection id -> ClientConnection (every open connection)
        bindings:    Maps connection id -> Binding (connections that joined a room)
        rooms:       Maps room code -> {connection id: ClientConnection}
                     Example: {"AB12C3": {"c1": conn1, "c2": conn2}}

    A connection holds at most one binding for its lifetime.

    Every handler runs to completion without awaiting: registry calls are
    synchronous and outbound events are only queued on the connections.
    Broadcasts therefore always reflect registry state at call time, and all
    members of a room see that room's events in the same order.
    """

    def __init__(
        self,
        room_registry: RoomRegistry,
        access_gate: Optional[RoomAccessGate] = None,
        max_message_length: Optional[int] = None,
    ) -> None:
        self.room_registry = room_registry
        self.access_gate = access_gate or RoomAccessGate()
        self.max_message_length = max_message_length or settings.MAX_MESSAGE_LENGTH

        self.connections: Dict[str, ClientConnection] = {}
        self.bindings: Dict[str, Binding] = {}
        self.rooms: Dict[str, Dict[str, ClientConnection]] = {}

        self.messages_relayed = 0

        self.room_registry.on_room_expired(self.handle_room_expired)

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, connection: ClientConnection) -> None:
        self.connections[connection.id] = connection
        logger.info("✓ Connection %s opened. Total: %d", connection.id, len(self.connections))

    def disconnect(self, connection: ClientConnection) -> None:
        """
        Release a terminated connection.

        If the connection was bound, its member is removed from the room (which
        may delete the room) and the remaining members get "user-left". A member
        id still bound on another connection in the same room stays in the room.
        If the room is gone after the removal, connections still indexed under
        its code are told and closed.
        Safe to call for a connection that never joined or was already released.
        """
        self.connections.pop(connection.id, None)
        binding = self._unbind(connection)

        if binding is not None:
            code = binding.room_code

            if self._member_still_bound(code, binding.member.id):
                logger.info("← %s dropped a connection in %s", binding.member.username, self._log_code(code))
            else:
                self.room_registry.remove_user(code, binding.member.id)
                users = self.room_registry.get_users(code)

                if self.room_registry.room_exists(code):
                    self.broadcast_to_room(
                        code,
                        UserLeftEvent(username=binding.member.username, users=users).to_wire(),
                    )
                else:
                    self._close_room_connections(code, ErrorEvent(message="Room closed").to_wire())
                logger.info("← %s left %s (%d members)", binding.member.username, self._log_code(code), len(users))

        logger.info("✗ Connection %s closed. Total: %d", connection.id, len(self.connections))

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    def dispatch(self, connection: ClientConnection, frame: Any) -> None:
        """
        Route one decoded inbound frame: {"action": "<event>", "data": {...}}.
        """
        if not isinstance(frame, dict):
            connection.send(ErrorEvent(message="Invalid message").to_wire())
            return

        action = frame.get("action")
        data = frame.get("data")
        if not isinstance(data, dict):
            data = {}

        if action == "join-room":
            self.join_room(connection, data)
        elif action == "send-message":
            self.send_message(connection, data)
        elif action == "typing":
            self.relay_typing(connection, data, is_typing=True)
        elif action == "stop-typing":
            self.relay_typing(connection, data, is_typing=False)
        else:
            connection.send(ErrorEvent(message=f"Unknown action: {action}").to_wire())

    def join_room(self, connection: ClientConnection, data: Dict[str, Any]) -> bool:
        """
        Bind a connection to a room as the given member.

        Process:
            1. Validate the request and the protected-room password
            2. Verify the room exists (the protected room is opened on demand)
            3. Add the member in the registry
            4. Record the binding
            5. Send "joined" with the full snapshot to the requester
            6. Send "user-joined" to every other connection in the room

        Failures are reported to the requester only.

        Returns:
            True if the connection is now bound to the room
        """
        try:
            request = JoinRoomRequest.model_validate(data)
        except ValidationError:
            connection.send(ErrorEvent(message="Invalid join request").to_wire())
            return False

        code = request.room_code

        if connection.id in self.bindings:
            connection.send(ErrorEvent(message="Already joined a room").to_wire())
            return False

        if self.access_gate.is_protected(code):
            if not self.access_gate.validate_password(code, request.password):
                logger.warning("Rejected join to protected room: invalid password")
                connection.send(InvalidPasswordEvent().to_wire())
                return False
            if not self.room_registry.room_exists(code):
                self.room_registry.create_room(code)

        if not self.room_registry.room_exists(code):
            connection.send(ErrorEvent(message="Room not found").to_wire())
            return False

        if not self.room_registry.add_user(code, request.user):
            connection.send(ErrorEvent(message="Failed to join room").to_wire())
            return False

        self.bindings[connection.id] = Binding(connection=connection, room_code=code, member=request.user)
        self.rooms.setdefault(code, {})[connection.id] = connection

        users = self.room_registry.get_users(code)
        messages = self.room_registry.get_messages(code)

        connection.send(JoinedEvent(users=users, messages=messages).to_wire())
        self.broadcast_to_room(
            code,
            UserJoinedEvent(username=request.user.username, users=users).to_wire(),
            exclude=connection,
        )

        logger.info("→ %s joined %s (%d members)", request.user.username, self._log_code(code), len(users))
        return True

    def send_message(self, connection: ClientConnection, data: Dict[str, Any]) -> Optional[Message]:
        """
        Store a message and echo it to every connection in the room, sender included.

        Dropped silently when the connection isn't bound, the room code doesn't
        match its binding, the content is blank or too long, or the room is gone.

        Returns:
            The stored Message, or None if it was dropped
        """
        binding = self.bindings.get(connection.id)
        if binding is None:
            return None

        try:
            request = SendMessageRequest.model_validate(data)
        except ValidationError:
            return None

        if request.room_code != binding.room_code:
            return None
        if not request.content or len(request.content) > self.max_message_length:
            return None

        timestamp = now_ms()
        message = Message(
            id=f"{timestamp}-{secrets.token_hex(4)}",
            room_code=binding.room_code,
            user_id=binding.member.id,
            username=binding.member.username,
            user_color=binding.member.color,
            content=request.content,
            timestamp=timestamp,
            type="user",
        )

        if not self.room_registry.add_message(binding.room_code, message):
            return None

        self.messages_relayed += 1
        self.broadcast_to_room(binding.room_code, ReceiveMessageEvent(message=message).to_wire())
        return message

    def relay_typing(self, connection: ClientConnection, data: Dict[str, Any], is_typing: bool) -> None:
        """Forward typing / stop-typing to the other connections in the room. Nothing is stored."""
        binding = self.bindings.get(connection.id)
        if binding is None:
            return

        try:
            request = TypingRequest.model_validate(data)
        except ValidationError:
            return

        if request.room_code != binding.room_code:
            return

        event = TypingEvent(
            type="typing" if is_typing else "stop-typing",
            user_id=binding.member.id,
            username=binding.member.username,
        )
        self.broadcast_to_room(binding.room_code, event.to_wire(), exclude=connection)

    # ------------------------------------------------------------------
    # Registry callbacks
    # ------------------------------------------------------------------

    def handle_room_expired(self, room_code: str) -> None:
        """
        Tell everyone in an evicted room it expired, then terminate their connections.

        The bindings are released here; the disconnects that follow find nothing
        left to clean up.
        """
        closed = self._close_room_connections(room_code, RoomExpiredEvent().to_wire())
        logger.info("Room %s expired, closed %d connections", self._log_code(room_code), closed)

    # ------------------------------------------------------------------
    # Broadcast
    # ------------------------------------------------------------------

    def broadcast_to_room(
        self,
        room_code: str,
        payload: Dict[str, Any],
        exclude: Optional[ClientConnection] = None,
    ) -> int:
        """
        Queue a payload on every connection bound to a room.

        Args:
            room_code: Target room
            payload: Wire dict to send
            exclude: Connection to skip (typically the sender)

        Returns:
            Number of connections the payload was queued for
        """
        targets: List[ClientConnection] = [
            conn for conn in self.rooms.get(room_code, {}).values() if conn is not exclude
        ]
        for conn in targets:
            conn.send(payload)
        return len(targets)

    def get_rooms_info(self) -> Dict[str, dict]:
        """
        Connected members per active room, used by /metrics.
        """
        return {
            code: {"connections": len(conns), "members": len(self.room_registry.get_users(code))}
            for code, conns in self.rooms.items()
            if not self.access_gate.is_protected(code)
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _unbind(self, connection: ClientConnection) -> Optional[Binding]:
        binding = self.bindings.pop(connection.id, None)
        if binding is None:
            return None

        members = self.rooms.get(binding.room_code)
        if members is not None:
            members.pop(connection.id, None)
            if not members:
                del self.rooms[binding.room_code]
        return binding

    def _member_still_bound(self, room_code: str, member_id: str) -> bool:
        return any(
            self.bindings[conn_id].member.id == member_id
            for conn_id in self.rooms.get(room_code, {})
        )

    def _close_room_connections(self, room_code: str, payload: Dict[str, Any]) -> int:
        """Unbind every connection in a room, send it a final payload and close it."""
        connections = list(self.rooms.get(room_code, {}).values())
        for connection in connections:
            self._unbind(connection)
            connection.send(payload)
            connection.close()
        return len(connections)

    def _log_code(self, code: str) -> str:
        return "protected room" if self.access_gate.is_protected(code) else code
