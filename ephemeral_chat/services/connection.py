# ephemeral_chat/services/connection.py

from __future__ import annotations

import asyncio
import uuid
from typing import Any, Dict, Optional

from fastapi import WebSocket, status

from ephemeral_chat.core.config import settings
from ephemeral_chat.core.logging import get_connection_logger

# Marker placed in an outbox to request the socket be closed
_CLOSE = object()


class ClientConnection:
    """
    One live client as seen by the SessionCoordinator.

    The coordinator never awaits a send; it only hands payloads to send()
    and asks for termination with close(). Subclasses decide how those reach
    the client.
    """

    def __init__(self, connection_id: Optional[str] = None) -> None:
        self.id = connection_id or uuid.uuid4().hex

    def send(self, payload: Dict[str, Any]) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class WebSocketConnection(ClientConnection):
    """
    Mailbox in front of a FastAPI WebSocket.

    Payloads are queued in arrival order and written by a single writer task
    (run_writer), so events reach the client in exactly the order the
    coordinator produced them. A close request is queued behind any pending
    events.

    The outbox holds at most `max_pending` payloads. A client that falls that
    far behind has its pending payloads dropped and is closed with 1008.
    """

    def __init__(
        self,
        websocket: WebSocket,
        connection_id: Optional[str] = None,
        max_pending: Optional[int] = None,
    ) -> None:
        super().__init__(connection_id)
        self.websocket = websocket
        self.max_pending = max_pending or settings.OUTBOX_MAX_SIZE
        # One extra slot so a close request always fits
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=self.max_pending + 1)
        self.closed = False
        self.close_code = status.WS_1000_NORMAL_CLOSURE
        self.log = get_connection_logger(__name__, self.id)

    def send(self, payload: Dict[str, Any]) -> None:
        if self.closed:
            return
        if self.outbox.qsize() >= self.max_pending:
            self.log.warning("Outbox full (%d pending), closing slow client", self.outbox.qsize())
            self._drop_pending()
            self._request_close(status.WS_1008_POLICY_VIOLATION)
            return
        self.outbox.put_nowait(payload)

    def close(self) -> None:
        if not self.closed:
            self._request_close(status.WS_1000_NORMAL_CLOSURE)

    def _request_close(self, code: int) -> None:
        self.closed = True
        self.close_code = code
        self.outbox.put_nowait(_CLOSE)

    def _drop_pending(self) -> None:
        while not self.outbox.empty():
            self.outbox.get_nowait()

    async def run_writer(self) -> None:
        """Drain the outbox into the socket until closed or a send fails."""
        while True:
            payload = await self.outbox.get()

            if payload is _CLOSE:
                try:
                    await self.websocket.close(code=self.close_code)
                except Exception as e:
                    self.log.debug("Close error: %s", e)
                return

            try:
                await self.websocket.send_json(payload)
            except Exception as e:
                self.log.error("Send error: %s", e)
                self.closed = True
                return
