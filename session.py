import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Tuple

from pydantic import ValidationError

from backend import Participant, RoomRegistry
from connection import Connection
from logging_config import get_logger
from message_types import (
    ANSWER,
    AUDIO_CHUNK,
    AVAILABLE_LANGUAGES,
    CAPTION_TEXT,
    CHAT_MESSAGE,
    EXISTING_USERS,
    ICE_CANDIDATE,
    JOIN_ROOM,
    LEAVE_ROOM,
    MEDIA_STATE_CHANGE,
    OFFER,
    PRIVATE_MESSAGE,
    SESSION_REPLACED,
    SET_TRANSLATION_LANGUAGE,
    START_TRANSCRIPTION,
    STOP_TRANSCRIPTION,
    STOP_TYPING,
    TYPING,
)
from schemas.rooms import (
    AudioChunkPayload,
    CaptionTextPayload,
    ChatPayload,
    JoinRoomPayload,
    MediaStatePayload,
    PrivateMessagePayload,
    SetTranslationLanguagePayload,
    SignalPayload,
    StartTranscriptionPayload,
)
from services.captions import CaptionBroadcaster
from services.chat import ChatRouter
from services.clients import TranscriptionClient, TranslationClient
from services.presence import PresenceBroadcaster
from services.signaling import SignalingRelay
from services.transcription import TranscriptionPipeline

logger = get_logger(__name__)

Binding = Tuple[str, str]  # (room_id, participant_id)
Handler = Callable[[Binding, dict], Awaitable[None]]


class SessionCoordinator:
    """Binds connections to (room, participant) and owns join/leave/disconnect.

    ``_bindings`` is the reverse index used to clean up a closed connection
    without scanning rooms.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        relay: SignalingRelay,
        chat: ChatRouter,
        presence: PresenceBroadcaster,
        captions: CaptionBroadcaster,
        pipeline: TranscriptionPipeline,
    ):
        self.registry = registry
        self.relay = relay
        self.chat = chat
        self.presence = presence
        self.captions = captions
        self.pipeline = pipeline
        self._bindings: Dict[str, Binding] = {}
        self._sessions: Dict[str, "ClientSession"] = {}
        self._closing: Set[asyncio.Task] = set()

    def open_session(self, connection: Connection) -> "ClientSession":
        logger.info(f"New connection {connection.connection_id}")
        session = ClientSession(self, connection)
        self._sessions[connection.connection_id] = session
        return session

    def binding_for(self, connection: Connection) -> Optional[Binding]:
        return self._bindings.get(connection.connection_id)

    async def join(self, connection: Connection, room_id: str, participant_id: str,
                   display_name: Optional[str] = None) -> List[Participant]:
        if connection.connection_id in self._bindings:
            self.leave(connection)

        evicted = None
        existing = self.registry.get_participant(room_id, participant_id)
        if existing is not None and existing.connection is not connection:
            evicted = self._evict(room_id, existing)

        name = display_name.strip() if display_name and display_name.strip() else f"User_{participant_id[:8]}"
        participant = Participant(participant_id=participant_id, display_name=name, connection=connection)
        others = self.registry.join(room_id, participant)
        self._bindings[connection.connection_id] = (room_id, participant_id)

        connection.send(EXISTING_USERS, [p.info().to_wire() for p in others])
        self.presence.user_connected(room_id, participant)
        connection.send(AVAILABLE_LANGUAGES, [lang.to_wire() for lang in self.pipeline.known_languages()])
        logger.info(f"User {participant_id} ({name}) joined room {room_id} ({len(others) + 1} members)")

        if evicted is not None:
            self._close_in_background(evicted.connection, code=4000, reason="Replaced by a newer connection")
        return others

    def _evict(self, room_id: str, participant: Participant) -> Participant:
        """Replace-and-evict: a newer join with the same participant id wins.

        The old session stops dispatching at once, so frames still buffered on
        the old socket cannot rejoin and evict the newer connection in turn.
        """
        old = participant.connection
        logger.warning(f"Participant {participant.participant_id} rejoined room {room_id} from a new connection, evicting {old.connection_id}")
        old.send(SESSION_REPLACED, {"participantId": participant.participant_id})
        old_session = self._sessions.pop(old.connection_id, None)
        if old_session is not None:
            old_session.detach()
        self.leave(old)
        return participant

    def _close_in_background(self, connection: Connection, code: int, reason: str) -> None:
        # the joiner never waits on the old socket's close handshake
        task = asyncio.create_task(connection.close(code=code, reason=reason))
        self._closing.add(task)
        task.add_done_callback(lambda t, c=connection: self._close_done(c, t))

    def _close_done(self, connection: Connection, task: asyncio.Task) -> None:
        self._closing.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Closing evicted connection {connection.connection_id} failed: {task.exception()}")

    async def close_evicted(self) -> None:
        """Wait for evicted connections still closing; used at shutdown."""
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)

    def leave(self, connection: Connection) -> Optional[Participant]:
        """Unbind a connection. Shared by explicit leave-room, eviction and disconnect."""
        binding = self._bindings.pop(connection.connection_id, None)
        if binding is None:
            return None
        room_id, participant_id = binding
        self.pipeline.stop(room_id, participant_id)
        self.captions.clear(room_id, participant_id)
        removed = self.registry.leave(room_id, participant_id)
        if removed is not None:
            self.presence.user_disconnected(room_id, removed)
            logger.info(f"User {participant_id} ({removed.display_name}) left room {room_id}")
        return removed

    def disconnect(self, connection: Connection) -> Optional[Participant]:
        self._sessions.pop(connection.connection_id, None)
        removed = self.leave(connection)
        logger.info(f"Connection {connection.connection_id} closed")
        return removed


class ClientSession:
    """Per-connection message dispatch.

    The tag -> handler table is built once here and cleared exactly once in
    ``detach``, which ``close`` also goes through.
    """

    def __init__(self, coordinator: SessionCoordinator, connection: Connection):
        self.coordinator = coordinator
        self.connection = connection
        self.closed = False
        self._handlers: Dict[str, Handler] = {
            OFFER: self._on_signal(OFFER),
            ANSWER: self._on_signal(ANSWER),
            ICE_CANDIDATE: self._on_signal(ICE_CANDIDATE),
            CHAT_MESSAGE: self._on_chat_message,
            PRIVATE_MESSAGE: self._on_private_message,
            TYPING: self._on_typing,
            STOP_TYPING: self._on_stop_typing,
            MEDIA_STATE_CHANGE: self._on_media_state,
            START_TRANSCRIPTION: self._on_start_transcription,
            STOP_TRANSCRIPTION: self._on_stop_transcription,
            AUDIO_CHUNK: self._on_audio_chunk,
            SET_TRANSLATION_LANGUAGE: self._on_set_language,
            CAPTION_TEXT: self._on_caption_text,
            LEAVE_ROOM: self._on_leave,
        }

    @property
    def binding(self) -> Optional[Binding]:
        return self.coordinator.binding_for(self.connection)

    async def handle_text(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Ignoring non-JSON frame from connection {self.connection.connection_id}")
            return
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            logger.debug(f"Ignoring frame without a type from connection {self.connection.connection_id}")
            return
        data = message.get("data")
        await self.dispatch(message["type"], data if data is not None else {})

    async def handle_bytes(self, chunk: bytes) -> None:
        """Binary frames carry raw audio for this connection's own transcription session."""
        binding = self.binding
        if binding is None:
            return
        self.coordinator.pipeline.add_audio_chunk(binding[0], binding[1], chunk)

    async def dispatch(self, message_type: str, data: Any) -> None:
        if self.closed:
            return
        if not isinstance(data, dict):
            logger.debug(f"Ignoring {message_type}: payload is not an object")
            return
        try:
            if message_type == JOIN_ROOM:
                payload = JoinRoomPayload.model_validate(data)
                await self.coordinator.join(self.connection, payload.room_id, payload.participant_id, payload.display_name)
                return

            handler = self._handlers.get(message_type)
            if handler is None:
                logger.debug(f"Ignoring unknown message type {message_type!r} from connection {self.connection.connection_id}")
                return
            binding = self.binding
            if binding is None:
                logger.debug(f"Ignoring {message_type} from connection {self.connection.connection_id}: not in a room")
                return
            await handler(binding, data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed {message_type} from connection {self.connection.connection_id}: {e.error_count()} errors")
        except Exception as e:
            logger.error(f"Error handling {message_type} from connection {self.connection.connection_id}: {e}", exc_info=True)

    def detach(self) -> None:
        """Stop dispatching without touching the room; the coordinator already unbound us."""
        self.closed = True
        self._handlers.clear()

    def close(self) -> None:
        if self.closed:
            return
        self.detach()
        self.coordinator.disconnect(self.connection)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _on_signal(self, kind: str) -> Handler:
        async def handler(binding: Binding, data: dict) -> None:
            payload = SignalPayload.model_validate(data)
            room_id, participant_id = binding
            self.coordinator.relay.relay(kind, room_id, participant_id, payload.to, payload.payload)
        return handler

    async def _on_chat_message(self, binding: Binding, data: dict) -> None:
        payload = ChatPayload.model_validate(data)
        self.coordinator.chat.broadcast(binding[0], binding[1], payload.body)

    async def _on_private_message(self, binding: Binding, data: dict) -> None:
        payload = PrivateMessagePayload.model_validate(data)
        self.coordinator.chat.send_private(binding[0], binding[1], payload.to, payload.body)

    async def _on_typing(self, binding: Binding, data: dict) -> None:
        self.coordinator.chat.typing(*binding)

    async def _on_stop_typing(self, binding: Binding, data: dict) -> None:
        self.coordinator.chat.stop_typing(*binding)

    async def _on_media_state(self, binding: Binding, data: dict) -> None:
        payload = MediaStatePayload.model_validate(data)
        self.coordinator.presence.media_state_changed(binding[0], binding[1], payload.audio_enabled, payload.video_enabled)

    async def _on_start_transcription(self, binding: Binding, data: dict) -> None:
        payload = StartTranscriptionPayload.model_validate(data)
        self.coordinator.pipeline.start(binding[0], binding[1], payload.target_language)

    async def _on_stop_transcription(self, binding: Binding, data: dict) -> None:
        self.coordinator.pipeline.stop(*binding)

    async def _on_audio_chunk(self, binding: Binding, data: dict) -> None:
        payload = AudioChunkPayload.model_validate(data)
        self.coordinator.pipeline.add_audio_chunk(binding[0], binding[1], payload.audio_data)

    async def _on_set_language(self, binding: Binding, data: dict) -> None:
        payload = SetTranslationLanguagePayload.model_validate(data)
        self.coordinator.pipeline.set_target_language(binding[0], binding[1], payload.target_language)

    async def _on_caption_text(self, binding: Binding, data: dict) -> None:
        payload = CaptionTextPayload.model_validate(data)
        if not payload.original_text:
            return
        self.coordinator.captions.publish(binding[0], binding[1], payload.original_text,
                                          payload.translated, payload.target_language)

    async def _on_leave(self, binding: Binding, data: dict) -> None:
        self.coordinator.leave(self.connection)


def build_coordinator(
    transcriber: Optional[TranscriptionClient] = None,
    translator: Optional[TranslationClient] = None,
    **pipeline_options: Any,
) -> SessionCoordinator:
    """Wire every component around one fresh RoomRegistry."""
    registry = RoomRegistry()
    captions = CaptionBroadcaster(registry)
    pipeline = TranscriptionPipeline(registry, captions, transcriber=transcriber, translator=translator, **pipeline_options)
    return SessionCoordinator(
        registry=registry,
        relay=SignalingRelay(registry),
        chat=ChatRouter(registry),
        presence=PresenceBroadcaster(registry),
        captions=captions,
        pipeline=pipeline,
    )
