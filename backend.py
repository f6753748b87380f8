from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from connection import Connection
from logging_config import get_logger
from schemas.rooms import ParticipantInfo

logger = get_logger(__name__)


@dataclass
class Participant:
    participant_id: str
    display_name: str
    connection: Connection
    audio_enabled: bool = True
    video_enabled: bool = True
    joined_at: datetime = field(default_factory=datetime.now)

    def info(self) -> ParticipantInfo:
        return ParticipantInfo(
            participant_id=self.participant_id,
            display_name=self.display_name,
            audio_enabled=self.audio_enabled,
            video_enabled=self.video_enabled,
        )


@dataclass
class Room:
    room_id: str
    participants: Dict[str, Participant] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)

    def others(self, participant_id: str) -> List[Participant]:
        return [p for pid, p in self.participants.items() if pid != participant_id]


class RoomRegistry:
    """In-memory owner of every Room and Participant.

    All methods are synchronous: on a single event loop each call completes
    before any other handler runs, so no caller can observe a half-updated room.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        logger.info("Initializing in-memory RoomRegistry")

    def join(self, room_id: str, participant: Participant) -> List[Participant]:
        """Add ``participant`` (creating the room if needed) and return the other members."""
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id)
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id}")

        if participant.participant_id in room.participants:
            logger.warning(f"Participant {participant.participant_id} already in room {room_id}, replacing binding")
        room.participants[participant.participant_id] = participant
        logger.debug(f"Participant {participant.participant_id} added to room {room_id} ({len(room.participants)} members)")
        return room.others(participant.participant_id)

    def leave(self, room_id: str, participant_id: str) -> Optional[Participant]:
        """Remove a participant; returns it, or ``None`` when it was not a member."""
        room = self._rooms.get(room_id)
        if room is None:
            logger.debug(f"Leave ignored: room {room_id} not found")
            return None
        removed = room.participants.pop(participant_id, None)
        if removed is None:
            logger.debug(f"Leave ignored: participant {participant_id} not in room {room_id}")
            return None
        logger.debug(f"Participant {participant_id} removed from room {room_id}")
        if not room.participants:
            del self._rooms[room_id]
            logger.info(f"Room {room_id} is empty, deleted")
        return removed

    def update_media_state(self, room_id: str, participant_id: str, audio_enabled: bool, video_enabled: bool) -> Optional[Participant]:
        participant = self.get_participant(room_id, participant_id)
        if participant is None:
            return None
        participant.audio_enabled = audio_enabled
        participant.video_enabled = video_enabled
        return participant

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def get_participant(self, room_id: str, participant_id: str) -> Optional[Participant]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return room.participants.get(participant_id)

    def get_participants(self, room_id: str) -> List[Participant]:
        room = self._rooms.get(room_id)
        return list(room.participants.values()) if room else []

    def room_count(self) -> int:
        return len(self._rooms)

    def participant_count(self, room_id: Optional[str] = None) -> int:
        if room_id is not None:
            room = self._rooms.get(room_id)
            return len(room.participants) if room else 0
        return sum(len(room.participants) for room in self._rooms.values())
