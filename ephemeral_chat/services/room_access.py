# ephemeral_chat/services/room_access.py

from __future__ import annotations

import secrets
from typing import Any, Optional

from ephemeral_chat.models.models import normalize_room_code


class RoomAccessGate:
    """
    Password check for the single protected room.

    Every other room is open to anyone who knows its code. With no protected
    code configured the gate lets everything through.
    """

    def __init__(self, protected_code: str = "", password: str = "") -> None:
        self.protected_code = normalize_room_code(protected_code)
        self.password = password

    def is_protected(self, code: Any) -> bool:
        return bool(self.protected_code) and normalize_room_code(code) == self.protected_code

    def validate_password(self, code: Any, password: Optional[str]) -> bool:
        if not self.is_protected(code):
            return True
        if not password:
            return False
        return secrets.compare_digest(password.strip().encode(), self.password.strip().encode())
