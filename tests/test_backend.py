"""Tests for the in-memory room registry."""

from backend import Participant, RoomRegistry
from conftest import RecordingConnection


def make_participant(participant_id, name=None):
    return Participant(participant_id=participant_id, display_name=name or participant_id, connection=RecordingConnection())


class TestJoin:
    def test_first_join_creates_room_and_returns_no_others(self):
        registry = RoomRegistry()
        others = registry.join("r1", make_participant("a"))
        assert others == []
        assert registry.get_room("r1") is not None
        assert registry.room_count() == 1

    def test_join_returns_other_members_only(self):
        registry = RoomRegistry()
        registry.join("r1", make_participant("a"))
        registry.join("r1", make_participant("b"))
        others = registry.join("r1", make_participant("c"))
        assert {p.participant_id for p in others} == {"a", "b"}

    def test_rooms_are_independent(self):
        registry = RoomRegistry()
        registry.join("r1", make_participant("a"))
        others = registry.join("r2", make_participant("b"))
        assert others == []
        assert registry.participant_count("r1") == 1
        assert registry.participant_count("r2") == 1
        assert registry.participant_count() == 2


class TestLeave:
    def test_leave_returns_removed_participant(self):
        registry = RoomRegistry()
        a = make_participant("a")
        registry.join("r1", a)
        registry.join("r1", make_participant("b"))
        assert registry.leave("r1", "a") is a
        assert registry.participant_count("r1") == 1

    def test_last_leave_deletes_room(self):
        registry = RoomRegistry()
        registry.join("r1", make_participant("a"))
        registry.leave("r1", "a")
        assert registry.get_room("r1") is None
        assert registry.room_count() == 0

    def test_leave_is_idempotent(self):
        registry = RoomRegistry()
        registry.join("r1", make_participant("a"))
        registry.join("r1", make_participant("b"))
        assert registry.leave("r1", "a") is not None
        assert registry.leave("r1", "a") is None
        assert registry.leave("r1", "nobody") is None
        assert registry.leave("missing-room", "a") is None
        assert registry.participant_count("r1") == 1

    def test_count_tracks_joins_minus_leaves(self):
        registry = RoomRegistry()
        joins = leaves = 0
        for pid in ["a", "b", "c", "d"]:
            registry.join("r1", make_participant(pid))
            joins += 1
            assert registry.participant_count("r1") == joins - leaves
        for pid in ["b", "d", "d", "x"]:
            if registry.leave("r1", pid) is not None:
                leaves += 1
            assert registry.participant_count("r1") == joins - leaves
        assert joins - leaves == 2


class TestMediaState:
    def test_update_media_state(self):
        registry = RoomRegistry()
        registry.join("r1", make_participant("a"))
        participant = registry.update_media_state("r1", "a", audio_enabled=False, video_enabled=True)
        assert participant.audio_enabled is False
        assert participant.video_enabled is True
        assert registry.get_participant("r1", "a").audio_enabled is False

    def test_update_unknown_participant(self):
        registry = RoomRegistry()
        assert registry.update_media_state("r1", "ghost", True, True) is None


class TestParticipantInfo:
    def test_info_uses_wire_names(self):
        wire = make_participant("a", "Alice").info().to_wire()
        assert wire == {"participantId": "a", "displayName": "Alice", "audioEnabled": True, "videoEnabled": True}
