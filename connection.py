import asyncio
import json
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from fastapi import WebSocket

from constants import OUTBOX_MAX_MESSAGES
from logging_config import get_logger

logger = get_logger(__name__)


class Connection(ABC):
    """Addressable channel to exactly one client.

    ``send`` never blocks: messages go onto a FIFO outbox so every handler
    runs to completion and recipients see messages in processing order.
    """

    def __init__(self, connection_id: Optional[str] = None):
        self.connection_id = connection_id or str(uuid.uuid4())
        self.closed = False

    def send(self, message_type: str, data: Any = None) -> bool:
        if self.closed:
            logger.debug(f"Dropping {message_type} for closed connection {self.connection_id}")
            return False
        return self._enqueue({"type": message_type, "data": data if data is not None else {}})

    @abstractmethod
    def _enqueue(self, message: dict) -> bool:
        """Queue one outbound message; False when the connection cannot take it."""

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True

    def __repr__(self):
        return f"<{type(self).__name__} {self.connection_id}>"


class WebSocketConnection(Connection):
    """Connection backed by a FastAPI WebSocket with its own sender task.

    The outbox is bounded. A client that stops reading fills it, and the
    connection is then marked closed instead of buffering without limit.
    """

    def __init__(self, websocket: WebSocket, connection_id: Optional[str] = None,
                 outbox_size: int = OUTBOX_MAX_MESSAGES):
        super().__init__(connection_id)
        self.websocket = websocket
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._sender_task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._sender_task is None:
            self._sender_task = asyncio.create_task(self._drain_outbox())

    def _enqueue(self, message: dict) -> bool:
        try:
            self._outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for connection {self.connection_id}, dropping {message.get('type')} and closing")
            self.closed = True
            return False
        return True

    async def _drain_outbox(self) -> None:
        while True:
            message = await self._outbox.get()
            if message is None:
                break
            try:
                await self.websocket.send_text(json.dumps(message))
            except Exception as e:
                logger.warning(f"Error sending {message.get('type')} to connection {self.connection_id}: {e}")
                self.closed = True
                break

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.closed and self._sender_task is None:
            return
        self.closed = True
        if self._sender_task is not None:
            if self._outbox.full():
                self._sender_task.cancel()
            else:
                # flush what is already queued before closing the socket
                self._outbox.put_nowait(None)
            try:
                await self._sender_task
            except asyncio.CancelledError:
                pass
            self._sender_task = None
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug(f"Error closing WebSocket {self.connection_id}: {e}")
