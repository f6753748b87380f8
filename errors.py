from typing import Any


class LiveRoomsError(Exception):
    """Base error for the room coordination service."""

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context = context


class BackendError(LiveRoomsError):
    """An external HTTP collaborator failed (timeout, connection error, bad response)."""

    service = "backend"

    def __init__(self, message: str, **context: Any):
        context.setdefault("service", self.service)
        super().__init__(message, **context)


class TranscriptionError(BackendError):
    service = "transcription"


class TranslationError(BackendError):
    service = "translation"
