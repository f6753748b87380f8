# Client -> server
JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
OFFER = "offer"
ANSWER = "answer"
ICE_CANDIDATE = "ice-candidate"
CHAT_MESSAGE = "chat-message"
PRIVATE_MESSAGE = "private-message"
TYPING = "typing"
STOP_TYPING = "stop-typing"
MEDIA_STATE_CHANGE = "media-state-change"
START_TRANSCRIPTION = "start-transcription"
STOP_TRANSCRIPTION = "stop-transcription"
AUDIO_CHUNK = "audio-chunk"
SET_TRANSLATION_LANGUAGE = "set-translation-language"
CAPTION_TEXT = "caption-text"  # also server -> room

# Server -> client
EXISTING_USERS = "existing-users"
USER_CONNECTED = "user-connected"
USER_DISCONNECTED = "user-disconnected"
BACKEND_UNAVAILABLE = "backend-unavailable"
AVAILABLE_LANGUAGES = "available-languages"
SESSION_REPLACED = "session-replaced"

SIGNALING_TYPES = (OFFER, ANSWER, ICE_CANDIDATE)
