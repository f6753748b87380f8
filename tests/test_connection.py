"""Tests for the WebSocket-backed outbox."""

import asyncio
import json

from connection import WebSocketConnection


class FakeWebSocket:
    def __init__(self, blocked=False):
        self.sent = []
        self.close_codes = []
        self.unblock = asyncio.Event()
        if not blocked:
            self.unblock.set()

    async def send_text(self, text):
        await self.unblock.wait()
        self.sent.append(json.loads(text))

    async def close(self, code=1000, reason=""):
        self.close_codes.append(code)


class TestWebSocketConnection:
    async def test_queued_messages_are_flushed_before_close(self):
        websocket = FakeWebSocket()
        connection = WebSocketConnection(websocket)
        connection.start()
        assert connection.send("chat-message", {"body": "1"})
        assert connection.send("chat-message", {"body": "2"})

        await connection.close(code=4000)

        assert [m["data"]["body"] for m in websocket.sent] == ["1", "2"]
        assert websocket.close_codes == [4000]
        assert connection.send("chat-message", {"body": "3"}) is False

    async def test_full_outbox_marks_connection_closed(self):
        websocket = FakeWebSocket(blocked=True)
        connection = WebSocketConnection(websocket, outbox_size=3)
        connection.start()
        await asyncio.sleep(0)

        results = [connection.send("typing", {"n": i}) for i in range(6)]

        assert False in results
        assert connection.closed
        assert connection.send("typing", {}) is False

        await connection.close()
        assert websocket.close_codes == [1000]

    async def test_failed_send_closes_only_that_connection(self):
        class BrokenWebSocket(FakeWebSocket):
            async def send_text(self, text):
                raise RuntimeError("socket gone")

        broken = WebSocketConnection(BrokenWebSocket())
        healthy_socket = FakeWebSocket()
        healthy = WebSocketConnection(healthy_socket)
        broken.start()
        healthy.start()

        broken.send("offer", {})
        healthy.send("offer", {})
        await asyncio.sleep(0.01)

        assert broken.closed
        assert not healthy.closed
        assert len(healthy_socket.sent) == 1
        await broken.close()
        await healthy.close()
