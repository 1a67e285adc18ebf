"""Pipeline d'ingestion audio: corps HTTP brut -> fichier audio + champs.

États:
    Start -> ClassifyContentType -> {MultipartBranch | JsonBranch}
          -> ValidateAudio -> {Success | Failure}

Fonction pure de (body, content_type): pas d'état partagé entre requêtes,
pas d'I/O. Les erreurs de lecture sont levées (sous-classes d'IngestError)
et remontées au client en 400.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Optional

from pydantic import Field, ValidationError

from .errors import (
    EmptyAudioPayloadError,
    InvalidJsonBodyError,
    MalformedBase64Error,
    NoFilePartError,
)
from .logger import RequestLogger, get_logger
from .multipart import ExtractedFile, extract_file_part, is_multipart, resolve_boundary, segment_parts
from .voice_fields import ExtractedFields, IngestDefaults, VoiceMetadata, extract_fields

LOG = get_logger("core.audio_ingest")

BRANCH_MULTIPART = "multipart"
BRANCH_JSON = "json"

AUDIO_MIME_TYPES = {
    "wav": "audio/wav",
    "mp3": "audio/mpeg",
    "ogg": "audio/ogg",
    "webm": "audio/webm",
    "m4a": "audio/m4a",
}


def audio_mime_type(audio_format: str) -> str:
    """MIME associé au format audio déclaré (audio/wav par défaut)."""
    return AUDIO_MIME_TYPES.get((audio_format or "").strip().lower(), "audio/wav")


class TranscribeVoiceRequest(VoiceMetadata):
    """Corps JSON historique: audio en base64 + mêmes métadonnées que `data`."""

    audio_base64: Optional[str] = Field(default=None, alias="audioBase64")


@dataclass
class AudioIngestResult:
    """Résultat normalisé du pipeline."""

    file: Optional[ExtractedFile]
    fields: ExtractedFields
    branch: str

    @property
    def valid(self) -> bool:
        return self.file is not None and self.file.size > 0

    @property
    def audio(self) -> bytes:
        return self.file.content if self.file is not None else b""


def decode_base64_audio(value: str) -> bytes:
    """Décodage base64 standard strict (les espaces ASCII sont ignorés).

    Raises:
        MalformedBase64Error: caractères hors alphabet ou padding incorrect.
    """
    compact = "".join((value or "").split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise MalformedBase64Error("Invalid base64 audio data", details={"error": str(exc)}) from exc


def ingest_base64_json(
    body: bytes, defaults: IngestDefaults, log: RequestLogger | None = None
) -> AudioIngestResult:
    """Branche JSON: `{"audioBase64": "...", "language": ..., ...}`."""
    log = log or LOG
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidJsonBodyError("Corps JSON illisible", details={"error": str(exc)}) from exc
    if not isinstance(payload, dict):
        raise InvalidJsonBodyError("Le corps JSON doit être un objet")

    try:
        request = TranscribeVoiceRequest.model_validate(payload)
    except ValidationError as exc:
        raise InvalidJsonBodyError("Corps JSON invalide", details={"error": str(exc)}) from exc

    audio = decode_base64_audio(request.audio_base64)
    log.info("Audio décodé depuis base64: %d octets", len(audio))

    fields = ExtractedFields.from_metadata(request, defaults, source="json")
    return AudioIngestResult(
        file=ExtractedFile(content=audio, mime_type=audio_mime_type(fields.audio_format)),
        fields=fields,
        branch=BRANCH_JSON,
    )


def ingest_multipart(
    body: bytes, content_type: str, defaults: IngestDefaults, log: RequestLogger | None = None
) -> AudioIngestResult:
    """Branche multipart: boundary -> parties -> fichier -> champs."""
    log = log or LOG
    boundary = resolve_boundary(content_type)
    parts = segment_parts(body, boundary)
    log.info("Multipart: %d octets, %d partie(s)", len(body), len(parts))

    extracted = extract_file_part(body, parts)
    fields = extract_fields(body, parts, defaults, log)
    return AudioIngestResult(file=extracted, fields=fields, branch=BRANCH_MULTIPART)


def validate_audio(result: AudioIngestResult) -> AudioIngestResult:
    """Vérifie qu'un fichier audio non vide a été trouvé."""
    if result.file is None:
        raise NoFilePartError("No audio file found in multipart data")
    if result.file.size == 0:
        raise EmptyAudioPayloadError("Audio data is required (empty audio payload)")
    return result


def ingest_audio(
    body: bytes,
    content_type: Optional[str],
    defaults: IngestDefaults | None = None,
    log: RequestLogger | None = None,
) -> AudioIngestResult:
    """Point d'entrée du pipeline.

    Args:
        body: Corps brut de la requête (jamais ré-encodé)
        content_type: Valeur de l'en-tête Content-Type
        defaults: Langue et format par défaut
        log: Logger portant le contexte de requête

    Returns:
        AudioIngestResult valide

    Raises:
        MissingBoundaryError, NoFilePartError, MalformedBase64Error,
        EmptyAudioPayloadError, InvalidJsonBodyError
    """
    defaults = defaults or IngestDefaults()
    log = log or LOG

    if is_multipart(content_type):
        log.info("Traitement multipart/form-data")
        result = ingest_multipart(body, content_type or "", defaults, log)
    else:
        log.info("Traitement JSON (audioBase64)")
        result = ingest_base64_json(body, defaults, log)

    return validate_audio(result)
