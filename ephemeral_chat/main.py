# ephemeral_chat/main.py

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ephemeral_chat.core import state
from ephemeral_chat.core.config import settings
from ephemeral_chat.core.logging import setup_logging, get_logger
from ephemeral_chat.api.routes import root, health, metrics, rooms
from ephemeral_chat.api import websocket as websocket_module

# Configure logging first
setup_logging()
logger = get_logger(__name__)

# FastAPI app
app = FastAPI(title="Ephemeral Chat Rooms")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# REST routes
app.include_router(root.router)
app.include_router(health.router)
app.include_router(metrics.router)
app.include_router(rooms.router)

# WebSocket routes
app.include_router(websocket_module.router)


@app.on_event("startup")
async def startup_event():
    logger.info(
        "🚀 Application starting - rooms expire after %ss of inactivity",
        state.room_registry.inactivity_timeout,
    )
    if settings.PROTECTED_ROOM_CODE:
        logger.info("Loaded protected room")


@app.on_event("shutdown")
async def on_shutdown():
    for code in state.room_registry.list_active_rooms():
        state.room_registry.delete_room(code)
    logger.info("Application stopped, all rooms discarded")


def run() -> None:
    import uvicorn
    uvicorn.run("ephemeral_chat.main:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    run()
