"""Synthèse vocale (texte -> audio) via un service externe."""

from __future__ import annotations

import asyncio
import base64
import binascii
from dataclasses import dataclass
from typing import Protocol

import requests

from backend.config import settings


class SpeechSynthesisError(Exception):
    """La synthèse vocale n'a pas abouti."""


@dataclass
class SynthesizedSpeech:
    audio: bytes
    audio_format: str
    voice_name: str


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice_name: str) -> SynthesizedSpeech: ...


class HttpSpeechSynthesisService:
    """POST {"text", "voiceName"}.

    La réponse peut être de l'audio brut (Content-Type audio/*) ou du JSON
    {"audioBase64", "audioFormat"}.
    """

    def __init__(self, url: str | None = None, timeout: int | None = None):
        self.url = url or settings.TTS_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def _synthesize_sync(self, text: str, voice_name: str) -> SynthesizedSpeech:
        if not self.url:
            raise SpeechSynthesisError("TTS_URL non configurée")
        try:
            resp = requests.post(
                self.url, json={"text": text, "voiceName": voice_name}, timeout=self.timeout
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise SpeechSynthesisError(f"Service TTS injoignable: {exc}") from exc

        content_type = resp.headers.get("Content-Type", "").split(";", 1)[0].strip().lower()
        if content_type.startswith("audio/"):
            audio_format = content_type.split("/", 1)[1] or "wav"
            return SynthesizedSpeech(audio=resp.content, audio_format=audio_format, voice_name=voice_name)

        try:
            data = resp.json()
            audio = base64.b64decode(data.get("audioBase64") or "", validate=True)
        except (ValueError, binascii.Error) as exc:
            raise SpeechSynthesisError(f"Réponse TTS illisible: {exc}") from exc
        if not audio:
            raise SpeechSynthesisError(data.get("errorMessage") or "Empty audio from TTS service")
        return SynthesizedSpeech(
            audio=audio,
            audio_format=data.get("audioFormat") or "wav",
            voice_name=data.get("voiceName") or voice_name,
        )

    async def synthesize(self, text: str, voice_name: str) -> SynthesizedSpeech:
        return await asyncio.to_thread(self._synthesize_sync, text, voice_name)
