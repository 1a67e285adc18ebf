"""Routes de téléphonie: transcription de messages vocaux et synthèse vocale.

Chemins exposés via backend.main avec API_PREFIX:
- POST /api/telefonia/transcribe/{twin_id}
    Corps: multipart/form-data (fichier audio + champ `data` JSON ou champs
    simples) ou JSON {"audioBase64": ...}
- POST /api/telefonia/text-to-speech/{twin_id}
- GET  /api/blobs/{container}/{path}?sig=...   (URL signée du fichier vocal)

Le corps de la transcription est lu brut: on ne passe pas par le parseur
multipart de FastAPI (voir core.multipart).
"""

from __future__ import annotations

import base64
import logging
import time
import uuid
from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import FileResponse, JSONResponse

from backend.api.models.telefonia import (
    ErrorResponse,
    TextToSpeechRequest,
    TextToSpeechResponse,
    TranscribeVoiceResponse,
    TranscriptionErrorResponse,
)
from backend.api.services.blob_store import BlobAccessError, BlobStore, LocalBlobStore
from backend.api.services.messaging import HttpMessagingService, MessagingService
from backend.api.services.speech_synthesis import (
    HttpSpeechSynthesisService,
    SpeechSynthesisError,
    SpeechSynthesizer,
)
from backend.api.services.transcription import (
    HttpTranscriptionService,
    TranscriptionService,
    WhisperTranscriptionService,
)
from backend.api.services.voice_transcription import transcribe_voice
from backend.config import settings
from core.audio_ingest import ingest_audio
from core.errors import DownstreamTranscriptionError, IngestError, PayloadTooLargeError
from core.logger import bind_logger
from core.voice_fields import IngestDefaults

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dépendances (surchargées dans les tests via app.dependency_overrides) ---


def get_blob_store() -> BlobStore:
    return LocalBlobStore()


def get_transcription_service() -> TranscriptionService:
    if settings.TRANSCRIPTION_BACKEND.lower() == "http":
        return HttpTranscriptionService()
    return WhisperTranscriptionService()


def get_messaging_service() -> Optional[MessagingService]:
    if not settings.MESSAGING_URL:
        return None
    return HttpMessagingService()


def get_speech_synthesizer() -> SpeechSynthesizer:
    return HttpSpeechSynthesisService()


def get_ingest_defaults() -> IngestDefaults:
    return IngestDefaults(
        language=settings.DEFAULT_LANGUAGE,
        audio_format=settings.DEFAULT_AUDIO_FORMAT,
    )


def _elapsed(start: float) -> float:
    return round(time.perf_counter() - start, 2)


def _json(status_code: int, model) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=model.model_dump(mode="json", by_alias=True))


async def _read_body(request: Request) -> bytes:
    """Lit le corps complet en mémoire, en refusant au-delà de MAX_BODY_BYTES."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > settings.MAX_BODY_BYTES:
        raise PayloadTooLargeError(f"Corps de requête trop volumineux (max {settings.MAX_BODY_BYTES} octets)")

    chunks: list[bytes] = []
    size = 0
    async for chunk in request.stream():
        size += len(chunk)
        if size > settings.MAX_BODY_BYTES:
            raise PayloadTooLargeError(f"Corps de requête trop volumineux (max {settings.MAX_BODY_BYTES} octets)")
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/telefonia/transcribe/{twin_id}", response_model=TranscribeVoiceResponse)
async def transcribe_voice_message(
    twin_id: str,
    request: Request,
    blob_store: BlobStore = Depends(get_blob_store),
    transcriber: TranscriptionService = Depends(get_transcription_service),
    messenger: Optional[MessagingService] = Depends(get_messaging_service),
    defaults: IngestDefaults = Depends(get_ingest_defaults),
):
    """Transcrit un message vocal (multipart ou JSON base64)."""
    start = time.perf_counter()
    twin_id = twin_id.strip()
    if not twin_id:
        return _json(400, ErrorResponse(error_message="Twin ID parameter is required"))

    log = bind_logger(logger, request_id=uuid.uuid4().hex[:8], twin_id=twin_id)
    log.info("Transcription demandée")

    try:
        body = await _read_body(request)
        log.info("%d octets lus depuis le corps de requête", len(body))
        ingest = ingest_audio(body, request.headers.get("content-type"), defaults, log)
    except IngestError as exc:
        log.warning("Requête rejetée (%s): %s", exc.kind, exc.message)
        return _json(
            exc.status_code,
            ErrorResponse(error_message=exc.message, error_kind=exc.kind),
        )

    try:
        outcome = await transcribe_voice(
            twin_id,
            ingest,
            blob_store=blob_store,
            transcriber=transcriber,
            messenger=messenger,
            sas_ttl=timedelta(hours=settings.SAS_TTL_HOURS),
            log=log,
        )
    except DownstreamTranscriptionError as exc:
        return _json(
            500,
            TranscriptionErrorResponse(
                error_message=exc.message,
                error_kind=exc.kind,
                processing_time_seconds=_elapsed(start),
                audio_file_path=exc.audio_file_path,
                audio_url=exc.audio_url,
            ),
        )
    except Exception as exc:
        log.exception("Erreur inattendue pendant la transcription")
        return _json(
            500,
            ErrorResponse(error_message=str(exc), processing_time_seconds=_elapsed(start)),
        )

    result = outcome.transcription
    response = TranscribeVoiceResponse(
        twin_id=twin_id,
        transcribed_text=result.text,
        confidence=result.confidence,
        duration_seconds=result.duration_seconds,
        audio_size_bytes=result.audio_size_bytes,
        language=result.language,
        detected_language=result.detected_language,
        processed_at=result.processed_at,
        processing_time_seconds=_elapsed(start),
        audio_file_path=outcome.audio_file_path,
        audio_url=outcome.audio_url,
        message_sent=outcome.message_sent,
        message_id=outcome.message_id,
        pair_id=outcome.pair_id,
    )
    return _json(200, response)


@router.post("/telefonia/text-to-speech/{twin_id}", response_model=TextToSpeechResponse)
async def text_to_speech(
    twin_id: str,
    payload: TextToSpeechRequest,
    synthesizer: SpeechSynthesizer = Depends(get_speech_synthesizer),
):
    """Convertit un texte en audio (renvoyé en base64)."""
    start = time.perf_counter()
    log = bind_logger(logger, request_id=uuid.uuid4().hex[:8], twin_id=twin_id)

    text = payload.text or ""
    if not text.strip():
        return _json(400, ErrorResponse(error_message="Text is required"))

    voice_name = payload.voice_name or settings.DEFAULT_VOICE_NAME
    log.info("Synthèse vocale: voix %s, %d caractères", voice_name, len(text))

    try:
        speech = await synthesizer.synthesize(text, voice_name)
    except SpeechSynthesisError as exc:
        log.error("Échec de la synthèse vocale: %s", exc)
        return _json(500, ErrorResponse(error_message=str(exc), processing_time_seconds=_elapsed(start)))

    log.info("Synthèse vocale réussie: %d octets", len(speech.audio))
    return _json(
        200,
        TextToSpeechResponse(
            twin_id=twin_id,
            audio_base64=base64.b64encode(speech.audio).decode("ascii"),
            audio_format=speech.audio_format,
            voice_name=speech.voice_name,
            text_length=len(text),
            audio_size_bytes=len(speech.audio),
            processing_time_seconds=_elapsed(start),
        ),
    )


@router.get("/blobs/{container}/{path:path}")
async def download_blob(
    container: str,
    path: str,
    sig: str = Query(..., description="Signature de l'URL (JWT)"),
    blob_store: BlobStore = Depends(get_blob_store),
):
    """Sert un fichier vocal stocké localement si l'URL signée est valide."""
    if not isinstance(blob_store, LocalBlobStore):
        raise HTTPException(status_code=404, detail="Stockage distant: pas de téléchargement local")
    try:
        target = blob_store.verify(container, path, sig)
    except BlobAccessError as exc:
        raise HTTPException(status_code=403, detail=str(exc))
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Blob introuvable")

    media_type = blob_store.read_metadata(container, path).get("contentType")
    return FileResponse(target, media_type=media_type, filename=target.name)
