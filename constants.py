import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

# Transcription backend (OpenAI-compatible whisper endpoint)
WHISPER_ENDPOINT = os.getenv("WHISPER_ENDPOINT", "http://localhost:8000/v1/audio/transcriptions")
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "whisper-1")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# Translation backend (LibreTranslate)
LIBRETRANSLATE_ENDPOINT = os.getenv("LIBRETRANSLATE_ENDPOINT", "https://libretranslate.com/translate")
LIBRETRANSLATE_API_KEY = os.getenv("LIBRETRANSLATE_API_KEY", None)

SOURCE_LANGUAGE = os.getenv("SOURCE_LANGUAGE", "en")

FLUSH_INTERVAL_SECONDS = float(os.getenv("FLUSH_INTERVAL_SECONDS", 2.0))
PROBE_TIMEOUT_SECONDS = float(os.getenv("PROBE_TIMEOUT_SECONDS", 2.0))
TRANSCRIPTION_TIMEOUT_SECONDS = float(os.getenv("TRANSCRIPTION_TIMEOUT_SECONDS", 10.0))
TRANSLATION_TIMEOUT_SECONDS = float(os.getenv("TRANSLATION_TIMEOUT_SECONDS", 5.0))

CAPTION_TTL_SECONDS = float(os.getenv("CAPTION_TTL_SECONDS", 5.0))
MAX_CHAT_MESSAGE_LENGTH = int(os.getenv("MAX_CHAT_MESSAGE_LENGTH", 2000))
OUTBOX_MAX_MESSAGES = int(os.getenv("OUTBOX_MAX_MESSAGES", 512))

FALLBACK_LANGUAGES = [
    {"code": "en", "name": "English"},
    {"code": "es", "name": "Spanish"},
    {"code": "fr", "name": "French"},
    {"code": "de", "name": "German"},
    {"code": "it", "name": "Italian"},
    {"code": "pt", "name": "Portuguese"},
    {"code": "ru", "name": "Russian"},
    {"code": "ja", "name": "Japanese"},
    {"code": "ko", "name": "Korean"},
    {"code": "zh", "name": "Chinese"},
]
