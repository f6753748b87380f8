"""
Per-participant live captioning.

Each active participant owns a TranscriptionSession: audio chunks accumulate in
its buffer and a fixed-period timer drains the buffer, sends it to the
transcription backend, optionally translates the text and publishes a caption
to the rest of the room. Every flush runs as its own task so a slow backend
never delays the timer or any other participant.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

from backend import RoomRegistry
from constants import FALLBACK_LANGUAGES, FLUSH_INTERVAL_SECONDS, SOURCE_LANGUAGE
from errors import BackendError
from logging_config import get_logger
from message_types import BACKEND_UNAVAILABLE
from schemas.rooms import Caption, Language
from services.captions import CaptionBroadcaster
from services.clients import TranscriptionClient, TranslationClient

logger = get_logger(__name__)

SessionKey = Tuple[str, str]  # (room_id, participant_id)


@dataclass
class TranscriptionSession:
    room_id: str
    participant_id: str
    target_language: Optional[str] = None
    buffer: List[bytes] = field(default_factory=list)
    timer: Optional[asyncio.Task] = None
    flushes: Set[asyncio.Task] = field(default_factory=set)
    closed: bool = False

    @property
    def key(self) -> SessionKey:
        return (self.room_id, self.participant_id)

    def drain(self) -> bytes:
        chunks, self.buffer = self.buffer, []
        return b"".join(chunks)

    def cancel(self) -> None:
        """Cancel the timer and in-flight flushes and drop buffered audio. Safe to call repeatedly."""
        if self.closed:
            return
        self.closed = True
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        for task in list(self.flushes):
            task.cancel()
        self.flushes.clear()
        self.buffer.clear()


class TranscriptionPipeline:
    def __init__(
        self,
        registry: RoomRegistry,
        captions: CaptionBroadcaster,
        transcriber: Optional[TranscriptionClient] = None,
        translator: Optional[TranslationClient] = None,
        flush_interval: float = FLUSH_INTERVAL_SECONDS,
        source_language: str = SOURCE_LANGUAGE,
    ):
        self.registry = registry
        self.captions = captions
        self.transcriber = transcriber or TranscriptionClient()
        self.translator = translator or TranslationClient()
        self.flush_interval = flush_interval
        self.source_language = source_language
        # Set once by probe() at startup and not re-checked per session
        self.available = False
        self._sessions: Dict[SessionKey, TranscriptionSession] = {}
        self._languages: Optional[List[Language]] = None

    async def probe(self) -> bool:
        self.available = await self.transcriber.probe()
        if self.available:
            logger.info("Transcription backend is available")
        else:
            logger.warning("Transcription backend not available, clients will be told to use on-device recognition")
        return self.available

    def start(self, room_id: str, participant_id: str, target_language: Optional[str] = None) -> bool:
        """Begin transcribing a participant. Returns False when the backend is unavailable."""
        if not self.available:
            participant = self.registry.get_participant(room_id, participant_id)
            if participant is not None:
                participant.connection.send(BACKEND_UNAVAILABLE, {"useClientSideFallback": True})
            logger.info(f"Transcription requested by {participant_id} in room {room_id} but backend unavailable")
            return False

        self.stop(room_id, participant_id)
        session = TranscriptionSession(room_id=room_id, participant_id=participant_id,
                                       target_language=target_language or None)
        session.timer = asyncio.create_task(self._run_timer(session))
        self._sessions[session.key] = session
        logger.info(f"Started transcription for {participant_id} in room {room_id} (target language: {session.target_language})")
        return True

    def stop(self, room_id: str, participant_id: str) -> bool:
        session = self._sessions.pop((room_id, participant_id), None)
        if session is None:
            return False
        session.cancel()
        logger.info(f"Stopped transcription for {participant_id} in room {room_id}")
        return True

    def stop_all(self) -> None:
        for room_id, participant_id in list(self._sessions):
            self.stop(room_id, participant_id)

    def add_audio_chunk(self, room_id: str, participant_id: str, chunk: bytes) -> bool:
        session = self._sessions.get((room_id, participant_id))
        if session is None or session.closed:
            return False
        if chunk:
            session.buffer.append(chunk)
        return True

    def set_target_language(self, room_id: str, participant_id: str, target_language: Optional[str]) -> bool:
        session = self._sessions.get((room_id, participant_id))
        if session is None:
            return False
        session.target_language = target_language or None
        logger.debug(f"Target language for {participant_id} in room {room_id} set to {session.target_language}")
        return True

    def get_session(self, room_id: str, participant_id: str) -> Optional[TranscriptionSession]:
        return self._sessions.get((room_id, participant_id))

    def active_count(self) -> int:
        return len(self._sessions)

    async def _run_timer(self, session: TranscriptionSession) -> None:
        while not session.closed:
            await asyncio.sleep(self.flush_interval)
            if session.closed:
                break
            task = asyncio.create_task(self.flush(session))
            session.flushes.add(task)
            task.add_done_callback(lambda t, s=session: self._flush_done(s, t))

    def _flush_done(self, session: TranscriptionSession, task: asyncio.Task) -> None:
        session.flushes.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Flush for {session.participant_id} in room {session.room_id} failed: {task.exception()}")

    async def flush(self, session: TranscriptionSession) -> Optional[Caption]:
        """Drain the buffer once and publish the resulting caption, if any."""
        audio = session.drain()
        if not audio:
            return None
        target_language = session.target_language

        try:
            text = await self.transcriber.transcribe(audio)
        except BackendError as e:
            logger.warning(f"Transcription failed for {session.participant_id} in room {session.room_id}: {e}")
            return None
        text = text.strip()
        if not text:
            return None

        translated = None
        if target_language and target_language != self.source_language:
            try:
                translated = await self.translator.translate(text, target_language, source=self.source_language)
            except BackendError as e:
                logger.warning(f"Translation to {target_language} failed for {session.participant_id}: {e}")
                return None
        else:
            target_language = None

        if session.closed:
            return None
        return self.captions.publish(session.room_id, session.participant_id, text, translated, target_language)

    async def load_languages(self) -> List[Language]:
        """Fetch the translation language list; only a successful answer is cached."""
        if self._languages is not None:
            return self._languages
        try:
            self._languages = await self.translator.languages()
        except BackendError as e:
            logger.error(f"Error fetching languages: {e}")
            return self.known_languages()
        logger.info(f"Loaded {len(self._languages)} translation languages")
        return self._languages

    def known_languages(self) -> List[Language]:
        if self._languages is not None:
            return self._languages
        return [Language.model_validate(item) for item in FALLBACK_LANGUAGES]
