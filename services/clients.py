"""
HTTP collaborators of the captioning pipeline.

- TranscriptionClient: OpenAI-compatible whisper endpoint (multipart upload -> {"text": ...})
- TranslationClient: LibreTranslate ({"q", "source", "target"} -> {"translatedText": ...})
"""

from typing import List, Optional

import httpx
from pydantic import ValidationError

from constants import (
    LIBRETRANSLATE_API_KEY,
    LIBRETRANSLATE_ENDPOINT,
    OPENAI_API_KEY,
    PROBE_TIMEOUT_SECONDS,
    SOURCE_LANGUAGE,
    TRANSCRIPTION_TIMEOUT_SECONDS,
    TRANSLATION_TIMEOUT_SECONDS,
    WHISPER_ENDPOINT,
    WHISPER_MODEL,
)
from errors import TranscriptionError, TranslationError
from logging_config import get_logger
from schemas.rooms import Language
from schemas.transcription import TranscriptionResult, TranslationRequest, TranslationResult

logger = get_logger(__name__)


class TranscriptionClient:
    """Client for a whisper transcription endpoint."""

    def __init__(
        self,
        endpoint: str = WHISPER_ENDPOINT,
        model: str = WHISPER_MODEL,
        language: str = SOURCE_LANGUAGE,
        api_key: str = OPENAI_API_KEY,
        timeout: float = TRANSCRIPTION_TIMEOUT_SECONDS,
        probe_timeout: float = PROBE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            endpoint: Full URL of the transcriptions route
            model: Model name sent with every request
            language: Spoken language hint
            api_key: Bearer token, may be empty for local servers
            timeout: Per-request timeout in seconds
            probe_timeout: Timeout for the availability probe
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.endpoint = endpoint
        self.model = model
        self.language = language
        self.api_key = api_key or ""
        self.timeout = timeout
        self.probe_timeout = probe_timeout
        self.transport = transport

    @property
    def health_url(self) -> str:
        return self.endpoint.replace("/transcriptions", "/health")

    async def probe(self) -> bool:
        """Lightweight GET against the backend. 2xx means available."""
        try:
            async with httpx.AsyncClient(timeout=self.probe_timeout, transport=self.transport) as client:
                response = await client.get(self.health_url)
        except httpx.HTTPError as e:
            logger.warning(f"Transcription backend not reachable at {self.health_url}: {e}")
            return False
        if not response.is_success:
            logger.warning(f"Transcription backend probe returned {response.status_code}")
            return False
        return True

    async def transcribe(self, audio: bytes) -> str:
        """Upload one audio blob and return the transcript text (may be empty).

        Raises:
            TranscriptionError: on timeout, connection error, non-2xx or an unparseable body
        """
        files = {"file": ("audio.webm", audio, "audio/webm")}
        data = {"model": self.model, "language": self.language, "response_format": "json"}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.endpoint, files=files, data=data, headers=headers)
                response.raise_for_status()
                result = TranscriptionResult.model_validate(response.json())
        except httpx.TimeoutException as e:
            raise TranscriptionError(f"Transcription timed out after {self.timeout}s", endpoint=self.endpoint) from e
        except httpx.HTTPError as e:
            raise TranscriptionError(f"Transcription request failed: {e}", endpoint=self.endpoint) from e
        except (ValueError, ValidationError) as e:
            raise TranscriptionError(f"Invalid transcription response: {e}", endpoint=self.endpoint) from e
        return result.text or ""


class TranslationClient:
    """Client for a LibreTranslate server."""

    def __init__(
        self,
        endpoint: str = LIBRETRANSLATE_ENDPOINT,
        api_key: Optional[str] = LIBRETRANSLATE_API_KEY,
        timeout: float = TRANSLATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.endpoint = endpoint
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    @property
    def languages_url(self) -> str:
        return self.endpoint.replace("/translate", "/languages")

    async def translate(self, text: str, target: str, source: str = SOURCE_LANGUAGE) -> str:
        """Translate ``text``; raises TranslationError on any failure."""
        request = TranslationRequest(q=text, source=source, target=target, api_key=self.api_key)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.endpoint, json=request.model_dump(exclude_none=True))
                response.raise_for_status()
                result = TranslationResult.model_validate(response.json())
        except httpx.TimeoutException as e:
            raise TranslationError(f"Translation timed out after {self.timeout}s", target=target) from e
        except httpx.HTTPError as e:
            raise TranslationError(f"Translation request failed: {e}", target=target) from e
        except (ValueError, ValidationError) as e:
            raise TranslationError(f"Invalid translation response: {e}", target=target) from e
        return result.translated_text or text

    async def languages(self) -> List[Language]:
        """Languages supported by the translation server.

        Raises:
            TranslationError: when the server cannot be reached or answers with something unexpected
        """
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(self.languages_url)
                response.raise_for_status()
                return [Language.model_validate(item) for item in response.json()]
        except httpx.HTTPError as e:
            raise TranslationError(f"Language list request failed: {e}", url=self.languages_url) from e
        except (ValueError, ValidationError, TypeError) as e:
            raise TranslationError(f"Invalid language list: {e}", url=self.languages_url) from e
