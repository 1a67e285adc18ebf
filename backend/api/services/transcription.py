"""Services de transcription voix -> texte.

- WhisperTranscriptionService: faster-whisper local (script_ai.audio)
- HttpTranscriptionService: service externe (POST JSON)

Contrat commun: `transcribe(audio_url, language, audio=None)`. Les octets
audio sont passés quand on les a déjà, ce qui permet de transcrire même si
l'upload a échoué (audio_url à None).
"""

from __future__ import annotations

import asyncio
import base64
import logging
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Protocol

import requests
from pydantic import BaseModel, ConfigDict, Field

from backend.config import settings
from script_ai.audio.stt_faster_whisper import AudioTranscriptionError, transcribe_audio

logger = logging.getLogger(__name__)


class TranscriptionError(Exception):
    """La transcription n'a pas abouti."""


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = Field(default="", alias="transcribedText")
    confidence: float = 0.0
    duration_seconds: float = Field(default=0.0, alias="durationSeconds")
    detected_language: Optional[str] = Field(default=None, alias="detectedLanguage")
    language: Optional[str] = None
    audio_size_bytes: int = Field(default=0, alias="audioSizeBytes")
    processed_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc), alias="processedAt"
    )


class TranscriptionService(Protocol):
    async def transcribe(
        self, audio_url: Optional[str], language: str, audio: Optional[bytes] = None
    ) -> TranscriptionResult: ...


def _download(url: str, timeout: int) -> bytes:
    resp = requests.get(url, timeout=timeout)
    resp.raise_for_status()
    return resp.content


class WhisperTranscriptionService:
    """Transcription locale (CPU) via faster-whisper, dans un thread."""

    def __init__(self, timeout: int | None = None):
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def _transcribe_sync(
        self, audio_url: Optional[str], language: str, audio: Optional[bytes]
    ) -> TranscriptionResult:
        if audio is None:
            if not audio_url:
                raise TranscriptionError("Aucune source audio (ni URL ni octets)")
            try:
                audio = _download(audio_url, self.timeout)
            except requests.RequestException as exc:
                raise TranscriptionError(f"Téléchargement audio impossible: {exc}") from exc

        with tempfile.TemporaryDirectory(prefix="voice_") as tmp:
            path = Path(tmp) / "voice_input"
            path.write_bytes(audio)
            try:
                transcript = transcribe_audio(str(path), language=language)
            except AudioTranscriptionError as exc:
                raise TranscriptionError(str(exc)) from exc

        if not transcript.text:
            raise TranscriptionError("No speech could be recognized")

        return TranscriptionResult(
            text=transcript.text,
            confidence=transcript.confidence,
            duration_seconds=round(float(transcript.duration or 0.0), 2),
            detected_language=transcript.language,
            language=language,
            audio_size_bytes=len(audio),
        )

    async def transcribe(
        self, audio_url: Optional[str], language: str, audio: Optional[bytes] = None
    ) -> TranscriptionResult:
        return await asyncio.to_thread(self._transcribe_sync, audio_url, language, audio)


class HttpTranscriptionService:
    """Service de transcription externe.

    Requête: {"audioUrl", "language"} (+ "audioBase64" sans URL).
    Réponse attendue: {"success", "transcribedText", "confidence",
    "durationSeconds", "detectedLanguage", ...}.
    """

    def __init__(self, url: str | None = None, timeout: int | None = None):
        self.url = url or settings.TRANSCRIPTION_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def _transcribe_sync(
        self, audio_url: Optional[str], language: str, audio: Optional[bytes]
    ) -> TranscriptionResult:
        if not self.url:
            raise TranscriptionError("TRANSCRIPTION_URL non configurée")

        payload: dict[str, Any] = {"audioUrl": audio_url, "language": language}
        if not audio_url:
            if audio is None:
                raise TranscriptionError("Aucune source audio (ni URL ni octets)")
            payload["audioBase64"] = base64.b64encode(audio).decode("ascii")

        try:
            resp = requests.post(self.url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise TranscriptionError(f"Service de transcription injoignable: {exc}") from exc

        if not data.get("success", True):
            raise TranscriptionError(data.get("errorMessage") or "Transcription failed")

        result = TranscriptionResult.model_validate(data)
        if result.language is None:
            result.language = language
        if not result.audio_size_bytes and audio is not None:
            result.audio_size_bytes = len(audio)
        return result

    async def transcribe(
        self, audio_url: Optional[str], language: str, audio: Optional[bytes] = None
    ) -> TranscriptionResult:
        return await asyncio.to_thread(self._transcribe_sync, audio_url, language, audio)
