# ephemeral_chat/core/config.py
import os
from typing import List
from dotenv import load_dotenv

class Settings:
    """
    Setup environment variables.
        - ROOM_INACTIVITY_TIMEOUT_SECONDS sliding idle window before a room is evicted
        - MAX_MESSAGE_LENGTH longest accepted message, counted after trimming
        - OUTBOX_MAX_SIZE events queued for one client before it is dropped as too slow
        - PROTECTED_ROOM_CODE / PROTECTED_ROOM_PASSWORD the optional password-gated room
        - CORS_ALLOW_ORIGINS comma separated list of allowed origins ("*" for all)
        - LOG_LEVEL root log level, LOG_ACCESS keeps uvicorn access lines at INFO when "true"
    """

    # Load environment variables from the .env file
    load_dotenv()

    ROOM_INACTIVITY_TIMEOUT_SECONDS: float = float(os.getenv("ROOM_INACTIVITY_TIMEOUT_SECONDS", "1800"))
    MAX_MESSAGE_LENGTH: int = int(os.getenv("MAX_MESSAGE_LENGTH", "1000"))
    OUTBOX_MAX_SIZE: int = int(os.getenv("OUTBOX_MAX_SIZE", "256"))

    PROTECTED_ROOM_CODE: str = os.getenv("PROTECTED_ROOM_CODE", "").strip().upper()
    PROTECTED_ROOM_PASSWORD: str = os.getenv("PROTECTED_ROOM_PASSWORD", "")

    CORS_ALLOW_ORIGINS: List[str] = [
        origin.strip() for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",") if origin.strip()
    ]

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_ACCESS: bool = os.getenv("LOG_ACCESS", "false").lower() == "true"

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "8000"))

settings = Settings()
