from typing import Optional

from backend import Participant, RoomRegistry
from logging_config import get_logger
from message_types import MEDIA_STATE_CHANGE, USER_CONNECTED, USER_DISCONNECTED

logger = get_logger(__name__)


class PresenceBroadcaster:
    """Join/leave notices and media on/off state, fanned out to the rest of a room."""

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    def media_state_changed(self, room_id: str, from_id: str, audio_enabled: bool, video_enabled: bool) -> Optional[Participant]:
        participant = self.registry.update_media_state(room_id, from_id, audio_enabled, video_enabled)
        if participant is None:
            return None
        self._send_to_others(room_id, from_id, MEDIA_STATE_CHANGE, {
            "participantId": from_id,
            "displayName": participant.display_name,
            "audioEnabled": audio_enabled,
            "videoEnabled": video_enabled,
        })
        logger.debug(f"Media state for {from_id} in room {room_id}: audio={audio_enabled} video={video_enabled}")
        return participant

    def user_connected(self, room_id: str, participant: Participant) -> None:
        self._send_to_others(room_id, participant.participant_id, USER_CONNECTED, {
            "participantId": participant.participant_id,
            "displayName": participant.display_name,
        })

    def user_disconnected(self, room_id: str, participant: Participant) -> None:
        # participant is already out of the registry, so everyone left gets the notice
        self._send_to_others(room_id, participant.participant_id, USER_DISCONNECTED, {
            "participantId": participant.participant_id,
            "displayName": participant.display_name,
        })

    def _send_to_others(self, room_id: str, from_id: str, message_type: str, data: dict) -> None:
        for participant in self.registry.get_participants(room_id):
            if participant.participant_id != from_id:
                participant.connection.send(message_type, data)
