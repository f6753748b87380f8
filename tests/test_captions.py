"""Tests for caption broadcasting and caption expiry."""

from datetime import datetime, timedelta

import pytest

from backend import Participant, RoomRegistry
from conftest import RecordingConnection
from message_types import CAPTION_TEXT
from services.captions import CaptionBroadcaster


class FakeClock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def room():
    registry = RoomRegistry()
    connections = {}
    for pid, name in [("a", "Alice"), ("b", "Bob"), ("c", "Carol")]:
        connections[pid] = RecordingConnection()
        registry.join("r1", Participant(participant_id=pid, display_name=name, connection=connections[pid]))
    return registry, connections


@pytest.fixture
def clock():
    return FakeClock()


class TestPublish:
    def test_delivered_to_everyone_but_owner(self, room, clock):
        registry, conns = room
        captions = CaptionBroadcaster(registry, ttl_seconds=5, clock=clock)
        captions.publish("r1", "a", "hello", "hola", "es")

        assert conns["a"].messages == []
        for pid in ("b", "c"):
            received = conns[pid].of_type(CAPTION_TEXT)
            assert received == [{
                "participantId": "a",
                "ownerDisplayName": "Alice",
                "original": "hello",
                "translated": "hola",
                "targetLanguage": "es",
                "timestamp": "2024-01-01T12:00:00",
                "expiresAt": "2024-01-01T12:00:05",
            }]

    def test_untranslated_caption(self, room, clock):
        registry, conns = room
        captions = CaptionBroadcaster(registry, clock=clock)
        caption = captions.publish("r1", "b", "just text")
        assert caption.translated is None
        assert conns["a"].of_type(CAPTION_TEXT)[0]["translated"] is None

    def test_owner_not_in_room_is_dropped(self, room, clock):
        registry, conns = room
        captions = CaptionBroadcaster(registry, clock=clock)
        assert captions.publish("r1", "ghost", "boo") is None
        assert all(c.messages == [] for c in conns.values())


class TestExpiry:
    def test_caption_expires_after_ttl(self, room, clock):
        registry, _ = room
        captions = CaptionBroadcaster(registry, ttl_seconds=5, clock=clock)
        captions.publish("r1", "a", "hello")

        clock.advance(4.9)
        assert [c.original for c in captions.active_captions("r1")] == ["hello"]
        clock.advance(0.1)
        assert captions.active_captions("r1") == []

    def test_newer_caption_supersedes_and_refreshes(self, room, clock):
        registry, _ = room
        captions = CaptionBroadcaster(registry, ttl_seconds=5, clock=clock)
        captions.publish("r1", "a", "first")
        clock.advance(3)
        captions.publish("r1", "a", "second")
        clock.advance(3)

        active = captions.active_captions("r1")
        assert [c.original for c in active] == ["second"]

    def test_one_caption_per_owner(self, room, clock):
        registry, _ = room
        captions = CaptionBroadcaster(registry, clock=clock)
        captions.publish("r1", "a", "from a")
        captions.publish("r1", "b", "from b")
        captions.publish("r1", "a", "again from a")
        assert sorted(c.original for c in captions.active_captions("r1")) == ["again from a", "from b"]

    def test_clear(self, room, clock):
        registry, _ = room
        captions = CaptionBroadcaster(registry, clock=clock)
        captions.publish("r1", "a", "hello")
        captions.clear("r1", "a")
        captions.clear("r1", "a")
        assert captions.active_captions("r1") == []


@pytest.mark.asyncio
async def test_client_fallback_caption_is_relayed(join):
    a, a_session = await join("r1", "a", "Alice")
    b, _ = await join("r1", "b", "Bob")
    b.clear()
    await a_session.dispatch(CAPTION_TEXT, {"text": " on-device words ", "isFinal": True})
    received = b.of_type(CAPTION_TEXT)
    assert len(received) == 1
    assert received[0]["original"] == "on-device words"
    assert received[0]["ownerDisplayName"] == "Alice"
    assert a.of_type(CAPTION_TEXT) == []


@pytest.mark.asyncio
async def test_empty_client_caption_is_ignored(join):
    _, a_session = await join("r1", "a")
    b, _ = await join("r1", "b")
    b.clear()
    await a_session.dispatch(CAPTION_TEXT, {"text": "   "})
    assert b.messages == []
