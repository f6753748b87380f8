from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Tuple

from backend import RoomRegistry
from constants import CAPTION_TTL_SECONDS
from logging_config import get_logger
from message_types import CAPTION_TEXT
from schemas.rooms import Caption

logger = get_logger(__name__)


class CaptionBroadcaster:
    """Relays finished caption text to the rest of a room.

    The latest caption per owner is kept until it expires (checked lazily on
    read) or a newer caption from the same owner replaces it.
    """

    def __init__(self, registry: RoomRegistry, ttl_seconds: float = CAPTION_TTL_SECONDS,
                 clock: Callable[[], datetime] = datetime.now):
        self.registry = registry
        self.ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._current: Dict[Tuple[str, str], Caption] = {}

    def publish(self, room_id: str, owner_id: str, original: str,
                translated: Optional[str] = None, target_language: Optional[str] = None) -> Optional[Caption]:
        owner = self.registry.get_participant(room_id, owner_id)
        if owner is None:
            logger.debug(f"Dropping caption: {owner_id} is no longer in room {room_id}")
            return None
        now = self._clock()
        caption = Caption(
            participant_id=owner_id,
            owner_display_name=owner.display_name,
            original=original,
            translated=translated,
            target_language=target_language,
            timestamp=now,
            expires_at=now + self.ttl,
        )
        self._current[(room_id, owner_id)] = caption

        wire = caption.to_wire()
        delivered = 0
        for participant in self.registry.get_participants(room_id):
            if participant.participant_id != owner_id:
                participant.connection.send(CAPTION_TEXT, wire)
                delivered += 1
        logger.debug(f"Caption from {owner_id} delivered to {delivered} members of room {room_id}")
        return caption

    def active_captions(self, room_id: str) -> List[Caption]:
        now = self._clock()
        active = []
        for key, caption in list(self._current.items()):
            if caption.expires_at <= now:
                del self._current[key]
            elif key[0] == room_id:
                active.append(caption)
        return active

    def clear(self, room_id: str, owner_id: str) -> None:
        self._current.pop((room_id, owner_id), None)
