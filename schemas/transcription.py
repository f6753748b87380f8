from typing import Optional

from pydantic import BaseModel, Field


class TranscriptionResult(BaseModel):
    text: str = ""


class TranslationRequest(BaseModel):
    q: str
    source: str
    target: str
    format: str = "text"
    api_key: Optional[str] = None


class TranslationResult(BaseModel):
    translated_text: str = Field("", alias="translatedText")
