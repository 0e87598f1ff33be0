# ephemeral_chat/models/models.py
import re
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Literal, Optional

from ephemeral_chat.core.config import settings

ROOM_CODE_PATTERN = re.compile(r"^[A-Z0-9]{6}$")

# Predefined member colors for chat bubbles
USER_COLORS = [
    "#3B82F6",  # blue
    "#10B981",  # green
    "#F59E0B",  # amber
    "#EF4444",  # red
    "#8B5CF6",  # purple
    "#EC4899",  # pink
    "#14B8A6",  # teal
    "#F97316",  # orange
]


def normalize_room_code(code: Any) -> str:
    """Uppercase and trim a room code; anything that isn't a string becomes ""."""
    if not isinstance(code, str):
        return ""
    return code.strip().upper()


class WireModel(BaseModel):
    """Base for everything that crosses the wire: camelCase out, either case in."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


# ============================================================================
# DOMAIN
# ============================================================================

class Member(WireModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    username: str = Field(min_length=1)
    color: str = ""


class Room(WireModel):
    code: str
    created_at: int
    last_activity: int
    users: List[Member] = []


class Message(WireModel):
    """
    A single chat line. Ids are practically unique (millisecond timestamp plus
    a random suffix), not guaranteed unique.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    room_code: str
    user_id: str
    username: str
    user_color: str
    content: str
    timestamp: int
    type: Literal["user", "system"] = "user"


class CreateRoomResponse(WireModel):
    room_code: str


# ============================================================================
# INBOUND EVENTS (client -> server)
# ============================================================================

class RoomCodeField(WireModel):
    room_code: str

    @field_validator("room_code", mode="before")
    @classmethod
    def _normalize_code(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("room code must be a string")
        code = normalize_room_code(value)
        if not code:
            raise ValueError("room code is required")
        if code != settings.PROTECTED_ROOM_CODE and not ROOM_CODE_PATTERN.match(code):
            raise ValueError("room code must be 6 letters or digits")
        return code


class JoinRoomRequest(RoomCodeField):
    user: Member
    password: Optional[str] = Field(default=None, alias="pass")


class SendMessageRequest(RoomCodeField):
    content: str

    @field_validator("content")
    @classmethod
    def _trim_content(cls, value: str) -> str:
        return value.strip()


class TypingRequest(RoomCodeField):
    pass


# ============================================================================
# OUTBOUND EVENTS (server -> client)
# ============================================================================

class JoinedEvent(WireModel):
    type: Literal["joined"] = "joined"
    users: List[Member]
    messages: List[Message]


class UserJoinedEvent(WireModel):
    type: Literal["user-joined"] = "user-joined"
    username: str
    users: List[Member]


class UserLeftEvent(WireModel):
    type: Literal["user-left"] = "user-left"
    username: str
    users: List[Member]


class ReceiveMessageEvent(WireModel):
    type: Literal["receive-message"] = "receive-message"
    message: Message


class TypingEvent(WireModel):
    type: Literal["typing", "stop-typing"] = "typing"
    user_id: str
    username: str


class RoomExpiredEvent(WireModel):
    type: Literal["room-expired"] = "room-expired"


class InvalidPasswordEvent(WireModel):
    type: Literal["invalid-password"] = "invalid-password"


class ErrorEvent(WireModel):
    type: Literal["error"] = "error"
    message: str
