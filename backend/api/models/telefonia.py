"""Modèles Pydantic des routes de téléphonie (réponses en camelCase)."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorResponse(CamelModel):
    """Réponse d'erreur commune."""
    success: bool = False
    error_message: str
    error_kind: Optional[str] = None
    processing_time_seconds: Optional[float] = None


class TranscriptionErrorResponse(ErrorResponse):
    """Échec de transcription: on renvoie ce qui a déjà été sauvegardé."""
    audio_file_path: Optional[str] = None
    audio_url: Optional[str] = None


class TranscribeVoiceResponse(CamelModel):
    """Réponse d'une transcription réussie."""
    success: bool = True
    twin_id: str
    transcribed_text: str
    confidence: float
    duration_seconds: float
    audio_size_bytes: int
    language: Optional[str] = None
    detected_language: Optional[str] = None
    processed_at: datetime
    processing_time_seconds: float
    audio_file_path: Optional[str] = None
    audio_url: Optional[str] = None
    message_sent: bool = False
    message_id: Optional[str] = None
    pair_id: Optional[str] = None
    message: str = "Voice message transcribed successfully"

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "success": True,
                "twinId": "twin-123",
                "transcribedText": "Hola, ¿cómo estás?",
                "confidence": 0.91,
                "durationSeconds": 2.4,
                "audioSizeBytes": 76844,
                "language": "es-MX",
                "detectedLanguage": "es",
                "processingTimeSeconds": 1.37,
                "audioFilePath": "Documents/hablemos/c-1/voz/voice_20260101_120000_ab12cd34.wav",
                "messageSent": False,
            }
        }
    )


class TextToSpeechRequest(CamelModel):
    """Requête de synthèse vocale."""
    text: str = Field(default="", description="Texte à convertir")
    voice_name: Optional[str] = Field(default=None, description="Voix (ex: es-MX-DaliaNeural)")


class TextToSpeechResponse(CamelModel):
    """Audio synthétisé encodé en base64."""
    success: bool = True
    twin_id: str
    audio_base64: str
    audio_format: str
    voice_name: str
    text_length: int
    audio_size_bytes: int
    processing_time_seconds: float
    message: str = "Text converted to speech successfully"
