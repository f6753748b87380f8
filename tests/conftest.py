import pytest

from connection import Connection
from errors import TranslationError
from message_types import JOIN_ROOM
from schemas.rooms import Language
from session import build_coordinator


class RecordingConnection(Connection):
    """Connection that keeps every outbound message in memory."""

    def __init__(self, connection_id=None):
        super().__init__(connection_id)
        self.messages = []
        self.close_calls = 0

    def _enqueue(self, message):
        self.messages.append(message)
        return True

    async def close(self, code=1000, reason=""):
        self.close_calls += 1
        self.closed = True

    def of_type(self, message_type):
        return [m["data"] for m in self.messages if m["type"] == message_type]

    def types(self):
        return [m["type"] for m in self.messages]

    def clear(self):
        self.messages.clear()


class FakeTranscriber:
    def __init__(self, text="hello world", available=True, error=None):
        self.text = text
        self.available = available
        self.error = error
        self.calls = []

    async def probe(self):
        return self.available

    async def transcribe(self, audio):
        self.calls.append(audio)
        if self.error is not None:
            raise self.error
        return self.text


class FakeTranslator:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    async def translate(self, text, target, source="en"):
        self.calls.append((text, target, source))
        if self.error is not None:
            raise self.error
        return f"[{target}] {text}"

    async def languages(self):
        if self.error is not None:
            raise TranslationError("languages unavailable")
        return [Language(code="en", name="English"), Language(code="es", name="Spanish")]


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def translator():
    return FakeTranslator()


@pytest.fixture
def coordinator(transcriber, translator):
    return build_coordinator(transcriber=transcriber, translator=translator, flush_interval=0.05)


@pytest.fixture
def registry(coordinator):
    return coordinator.registry


@pytest.fixture
def join(coordinator):
    """Open a session for a new recording connection and join it to a room."""

    async def _join(room_id, participant_id, display_name=None):
        connection = RecordingConnection()
        session = coordinator.open_session(connection)
        await session.dispatch(JOIN_ROOM, {
            "roomId": room_id,
            "participantId": participant_id,
            "displayName": display_name or participant_id.upper(),
        })
        return connection, session

    return _join
