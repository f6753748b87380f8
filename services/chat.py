from datetime import datetime
from typing import Optional

from backend import RoomRegistry
from logging_config import get_logger
from message_types import CHAT_MESSAGE, PRIVATE_MESSAGE, STOP_TYPING, TYPING
from schemas.rooms import ChatMessage

logger = get_logger(__name__)


class ChatRouter:
    """Room chat, private messages and typing notices. Holds no state of its own."""

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    def broadcast(self, room_id: str, from_id: str, body: str) -> Optional[ChatMessage]:
        """Deliver to every member, sender included; clients suppress their own echo."""
        sender = self.registry.get_participant(room_id, from_id)
        body = body.strip()
        if sender is None or not body:
            return None
        message = ChatMessage(
            sender_id=from_id,
            display_name=sender.display_name,
            body=body,
            timestamp=datetime.now(),
        )
        wire = message.to_wire()
        recipients = self.registry.get_participants(room_id)
        for participant in recipients:
            participant.connection.send(CHAT_MESSAGE, wire)
        logger.debug(f"Chat message from {from_id} delivered to {len(recipients)} members of room {room_id}")
        return message

    def send_private(self, room_id: str, from_id: str, to_id: str, body: str) -> Optional[ChatMessage]:
        sender = self.registry.get_participant(room_id, from_id)
        body = body.strip()
        if sender is None or not body:
            return None
        recipient = self.registry.get_participant(room_id, to_id)
        if recipient is None:
            logger.debug(f"Dropping private message from {from_id}: {to_id} not in room {room_id}")
            return None
        message = ChatMessage(
            sender_id=from_id,
            display_name=sender.display_name,
            to=to_id,
            body=body,
            timestamp=datetime.now(),
            private=True,
        )
        recipient.connection.send(PRIVATE_MESSAGE, message.to_wire())
        return message

    def typing(self, room_id: str, from_id: str) -> int:
        return self._notify_typing(TYPING, room_id, from_id)

    def stop_typing(self, room_id: str, from_id: str) -> int:
        return self._notify_typing(STOP_TYPING, room_id, from_id)

    def _notify_typing(self, message_type: str, room_id: str, from_id: str) -> int:
        room = self.registry.get_room(room_id)
        if room is None or from_id not in room.participants:
            return 0
        sender = room.participants[from_id]
        data = {"from": from_id, "displayName": sender.display_name}
        others = room.others(from_id)
        for participant in others:
            participant.connection.send(message_type, data)
        return len(others)
