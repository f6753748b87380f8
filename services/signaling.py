from typing import Any

from backend import RoomRegistry
from logging_config import get_logger
from message_types import SIGNALING_TYPES

logger = get_logger(__name__)


class SignalingRelay:
    """Pass-through delivery of offer/answer/ICE payloads between two participants.

    The payload is forwarded untouched. Ordering per sender/recipient pair comes
    from the recipient connection's FIFO outbox.
    """

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    def relay(self, kind: str, room_id: str, from_id: str, to_id: str, payload: Any) -> bool:
        if kind not in SIGNALING_TYPES:
            logger.debug(f"Ignoring non-signaling message type {kind} from {from_id}")
            return False
        recipient = self.registry.get_participant(room_id, to_id)
        if recipient is None:
            logger.debug(f"Dropping {kind} from {from_id}: {to_id} not in room {room_id}")
            return False
        return recipient.connection.send(kind, {"from": from_id, "to": to_id, "payload": payload})
