import base64
import binascii
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from constants import MAX_CHAT_MESSAGE_LENGTH


class CamelModel(BaseModel):
    """Protocol payloads use camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Inbound (client -> server)
# ---------------------------------------------------------------------------

class JoinRoomPayload(CamelModel):
    room_id: str = Field(..., min_length=1)
    participant_id: str = Field(..., min_length=1)
    display_name: Optional[str] = None

    @field_validator("room_id", "participant_id")
    def _strip_ids(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("identifier must not be blank")
        return v


class SignalPayload(CamelModel):
    to: str = Field(..., min_length=1)
    payload: Any = None


class ChatPayload(CamelModel):
    body: str = Field(..., max_length=MAX_CHAT_MESSAGE_LENGTH)


class PrivateMessagePayload(ChatPayload):
    to: str = Field(..., min_length=1)


class MediaStatePayload(CamelModel):
    audio_enabled: bool
    video_enabled: bool


class StartTranscriptionPayload(CamelModel):
    target_language: Optional[str] = None


class SetTranslationLanguagePayload(CamelModel):
    target_language: Optional[str] = None


class AudioChunkPayload(CamelModel):
    audio_data: bytes

    @field_validator("audio_data", mode="before")
    def _decode_base64(cls, v):
        if isinstance(v, (bytes, bytearray)):
            return bytes(v)
        if not isinstance(v, str):
            raise ValueError("audioData must be a base64 string")
        try:
            return base64.b64decode(v, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError(f"audioData is not valid base64: {e}")


class CaptionTextPayload(CamelModel):
    """Caption produced by the client's on-device recognition."""

    text: Optional[str] = None
    original: Optional[str] = None
    translated: Optional[str] = None
    target_language: Optional[str] = None

    @property
    def original_text(self) -> str:
        return (self.original or self.text or "").strip()


# ---------------------------------------------------------------------------
# Outbound (server -> client) and HTTP responses
# ---------------------------------------------------------------------------

class ParticipantInfo(CamelModel):
    participant_id: str
    display_name: str
    audio_enabled: bool = True
    video_enabled: bool = True


class ChatMessage(CamelModel):
    sender_id: str = Field(..., alias="from")
    display_name: str
    to: Optional[str] = None
    body: str
    timestamp: datetime
    private: bool = False


class Caption(CamelModel):
    participant_id: str
    owner_display_name: str
    original: str
    translated: Optional[str] = None
    target_language: Optional[str] = None
    timestamp: datetime
    expires_at: datetime


class Language(CamelModel):
    code: str
    name: str


class RoomDetailsResponse(CamelModel):
    room_id: str
    created_at: str
    participant_count: int
    participants: list[ParticipantInfo]
    captions: list[Caption]


class HealthResponse(CamelModel):
    status: str
    transcription_available: bool
    room_count: int
    participant_count: int
    active_transcriptions: int
