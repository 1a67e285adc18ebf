"""Orchestration d'une transcription vocale après ingestion.

Étapes (séquentielles):
1. Sauvegarde de l'audio (si clientePrimeroID connu) + URL signée 24h.
   Échec non bloquant: chemin/URL restent à None.
2. Transcription. Échec bloquant (DownstreamTranscriptionError), avec le
   chemin/URL déjà calculés.
3. Envoi du texte comme message (si sendMessage + messageData). Échec non
   bloquant: messageSent=False.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import PurePosixPath
from typing import Optional

from backend.api.services.blob_store import BlobStore
from backend.api.services.messaging import MessageReceipt, MessagingService, VoiceMessage
from backend.api.services.transcription import TranscriptionResult, TranscriptionService
from core.audio_ingest import AudioIngestResult, audio_mime_type
from core.errors import DownstreamMessagingError, DownstreamTranscriptionError, DownstreamUploadError
from core.voice_fields import ExtractedFields

logger = logging.getLogger(__name__)

UPLOAD_SOURCE = "telefonia_transcribe"
DEFAULT_ORIGIN = "voice"


@dataclass
class StoredAudio:
    path: Optional[str] = None
    url: Optional[str] = None


@dataclass
class VoiceTranscriptionOutcome:
    transcription: TranscriptionResult
    audio_file_path: Optional[str]
    audio_url: Optional[str]
    message_sent: bool = False
    message_id: Optional[str] = None
    pair_id: Optional[str] = None


def voice_file_name(audio_format: str, now: datetime | None = None) -> str:
    """voice_<yyyyMMdd_HHmmss>_<8 hex>.<format>"""
    now = now or datetime.now(timezone.utc)
    return f"voice_{now.strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:8]}.{audio_format}"


def voice_directory(cliente_primero_id: str) -> str:
    return f"Documents/hablemos/{cliente_primero_id}/voz"


async def store_voice_file(
    blob_store: BlobStore,
    twin_id: str,
    ingest: AudioIngestResult,
    ttl: timedelta,
    log: logging.Logger | logging.LoggerAdapter = logger,
) -> StoredAudio:
    """Sauvegarde l'audio; ne lève jamais (échec -> StoredAudio vide)."""
    fields = ingest.fields
    if not fields.cliente_primero_id:
        log.warning("clientePrimeroID absent: sauvegarde de l'audio ignorée")
        return StoredAudio()

    directory = voice_directory(fields.cliente_primero_id)
    file_name = voice_file_name(fields.audio_format)
    full_path = f"{directory}/{file_name}"
    container = twin_id.lower()
    metadata = {
        "clientePrimeroID": fields.cliente_primero_id,
        "language": fields.language,
        "audioFormat": fields.audio_format,
        "sizeBytes": str(len(ingest.audio)),
        "uploadedAt": datetime.now(timezone.utc).isoformat(),
        "source": UPLOAD_SOURCE,
    }

    try:
        log.info("Sauvegarde de l'audio pour le client %s", fields.cliente_primero_id)
        uploaded = await blob_store.upload(
            container,
            directory,
            file_name,
            ingest.audio,
            audio_mime_type(fields.audio_format),
            metadata,
        )
        if not uploaded:
            raise DownstreamUploadError("Upload refusé par le stockage", details={"path": full_path})
        url = await blob_store.sas_url(container, full_path, ttl)
    except Exception as exc:
        # Non bloquant: la transcription continue avec les octets en mémoire.
        log.error("Échec sauvegarde audio (%s): %s", type(exc).__name__, exc)
        return StoredAudio()

    log.info("Audio sauvegardé: %s", full_path)
    log.debug("URL signée: %s", url[:100] + "..." if len(url) > 100 else url)
    return StoredAudio(path=full_path, url=url)


def build_voice_message(
    fields: ExtractedFields, text: str, stored: StoredAudio
) -> Optional[VoiceMessage]:
    data = fields.message_data
    if not fields.send_message or data is None:
        return None
    return VoiceMessage(
        sender_id=data.de_quien,
        recipient_id=data.para_quien,
        body=text,
        origin=data.origin or DEFAULT_ORIGIN,
        client_id=fields.cliente_primero_id,
        cliente_primero_id=data.cliente_primero_id,
        cliente_segundo_id=data.cliente_segundo_id,
        dueno_app_twin_id=data.dueno_app_twin_id,
        dueno_app_microsoft_oid=data.dueno_app_microsoft_oid,
        voice_file_name=PurePosixPath(stored.path).name if stored.path else "",
        voice_path=stored.path,
        voice_url=stored.url or "",
    )


async def transcribe_voice(
    twin_id: str,
    ingest: AudioIngestResult,
    *,
    blob_store: BlobStore,
    transcriber: TranscriptionService,
    messenger: Optional[MessagingService],
    sas_ttl: timedelta = timedelta(hours=24),
    log: logging.Logger | logging.LoggerAdapter = logger,
) -> VoiceTranscriptionOutcome:
    """Sauvegarde, transcrit puis envoie éventuellement le message.

    Raises:
        DownstreamTranscriptionError: la transcription a échoué.
    """
    fields = ingest.fields
    stored = await store_voice_file(blob_store, twin_id, ingest, sas_ttl, log)

    log.info("Début de la transcription (langue %s)", fields.language)
    try:
        result = await transcriber.transcribe(stored.url, fields.language, audio=ingest.audio)
    except Exception as exc:
        log.error("Échec de la transcription: %s", exc)
        raise DownstreamTranscriptionError(
            str(exc) or type(exc).__name__,
            audio_file_path=stored.path,
            audio_url=stored.url,
        ) from exc
    if not result.audio_size_bytes:
        result.audio_size_bytes = len(ingest.audio)
    log.info("Transcription réussie: %s", result.text)

    outcome = VoiceTranscriptionOutcome(
        transcription=result, audio_file_path=stored.path, audio_url=stored.url
    )

    message = build_voice_message(fields, result.text, stored)
    if message is None:
        return outcome
    if messenger is None:
        log.warning("Envoi de message demandé mais aucun service de messagerie configuré")
        return outcome

    try:
        receipt: MessageReceipt = await messenger.send(message)
    except DownstreamMessagingError as exc:
        log.error("Échec de l'envoi du message: %s", exc)
        return outcome

    outcome.message_sent = True
    outcome.message_id = receipt.message_id
    outcome.pair_id = receipt.pair_id
    log.info(
        "Message envoyé: messageId=%s pairId=%s fichier=%s",
        receipt.message_id,
        receipt.pair_id,
        message.voice_file_name,
    )
    return outcome
