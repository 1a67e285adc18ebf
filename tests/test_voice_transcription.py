"""Tests pour l'orchestration upload -> transcription -> message."""

import asyncio
import re
from datetime import datetime

import pytest

from backend.api.services.messaging import MessageReceipt
from backend.api.services.transcription import TranscriptionError, TranscriptionResult
from backend.api.services.voice_transcription import transcribe_voice, voice_file_name
from core.audio_ingest import AudioIngestResult
from core.errors import DownstreamMessagingError, DownstreamTranscriptionError
from core.multipart import ExtractedFile
from core.voice_fields import ExtractedFields, MessageData


class FakeBlobStore:
    def __init__(self, ok=True, raises=False):
        self.ok = ok
        self.raises = raises
        self.uploads = []

    async def upload(self, container_id, directory_path, file_name, data, mime_type, metadata):
        if self.raises:
            raise OSError("disk full")
        self.uploads.append((container_id, directory_path, file_name, data, mime_type, metadata))
        return self.ok

    async def sas_url(self, container_id, full_path, ttl):
        return f"http://blobs/{container_id}/{full_path}?sig=t"


class FakeTranscriber:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def transcribe(self, audio_url, language, audio=None):
        self.calls.append((audio_url, language, audio))
        if self.fail:
            raise TranscriptionError("speech service down")
        return TranscriptionResult(text="hola mundo", confidence=0.9, duration_seconds=1.5, language=language)


class FakeMessenger:
    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, message):
        if self.fail:
            raise DownstreamMessagingError("messaging down")
        self.sent.append(message)
        return MessageReceipt(message_id="m-1", pair_id="p-1")


def _ingest(**fields) -> AudioIngestResult:
    values = {"language": "es-MX", "audio_format": "wav"}
    values.update(fields)
    return AudioIngestResult(
        file=ExtractedFile(content=b"RIFF1234", mime_type="audio/wav"),
        fields=ExtractedFields(**values),
        branch="multipart",
    )


def _run(ingest, blob_store=None, transcriber=None, messenger=None):
    return asyncio.run(
        transcribe_voice(
            "Twin-ABC",
            ingest,
            blob_store=blob_store or FakeBlobStore(),
            transcriber=transcriber or FakeTranscriber(),
            messenger=messenger,
        )
    )


class TestStorage:
    def test_upload_layout_and_metadata(self):
        store = FakeBlobStore()
        outcome = _run(_ingest(cliente_primero_id="c-1", audio_format="mp3"), blob_store=store)

        container, directory, file_name, data, mime, metadata = store.uploads[0]
        assert container == "twin-abc"
        assert directory == "Documents/hablemos/c-1/voz"
        assert re.fullmatch(r"voice_\d{8}_\d{6}_[0-9a-f]{8}\.mp3", file_name)
        assert data == b"RIFF1234"
        assert mime == "audio/mpeg"
        assert metadata["sizeBytes"] == "8"
        assert metadata["source"] == "telefonia_transcribe"
        assert outcome.audio_file_path == f"{directory}/{file_name}"
        assert outcome.audio_url.startswith("http://blobs/twin-abc/")

    def test_no_client_id_skips_upload(self):
        store = FakeBlobStore()
        transcriber = FakeTranscriber()
        outcome = _run(_ingest(), blob_store=store, transcriber=transcriber)

        assert store.uploads == []
        assert outcome.audio_file_path is None
        assert transcriber.calls[0] == (None, "es-MX", b"RIFF1234")

    @pytest.mark.parametrize("store", [FakeBlobStore(ok=False), FakeBlobStore(raises=True)])
    def test_upload_failure_is_not_fatal(self, store):
        outcome = _run(_ingest(cliente_primero_id="c-1"), blob_store=store)
        assert outcome.audio_file_path is None
        assert outcome.audio_url is None
        assert outcome.transcription.text == "hola mundo"


class TestTranscription:
    def test_result_is_returned(self):
        outcome = _run(_ingest(language="en-US"))
        assert outcome.transcription.language == "en-US"
        assert outcome.transcription.audio_size_bytes == 8
        assert outcome.message_sent is False

    def test_failure_carries_storage_info(self):
        with pytest.raises(DownstreamTranscriptionError) as exc_info:
            _run(_ingest(cliente_primero_id="c-1"), transcriber=FakeTranscriber(fail=True))

        error = exc_info.value
        assert "speech service down" in error.message
        assert error.audio_file_path.startswith("Documents/hablemos/c-1/voz/voice_")
        assert error.audio_url is not None


class TestMessaging:
    def _message_ingest(self):
        return _ingest(
            cliente_primero_id="c-1",
            send_message=True,
            message_data=MessageData(
                cliente_primero_id="c-1",
                cliente_segundo_id="c-2",
                de_quien="ana",
                para_quien="luis",
            ),
        )

    def test_message_is_sent_with_voice_info(self):
        messenger = FakeMessenger()
        outcome = _run(self._message_ingest(), messenger=messenger)

        assert outcome.message_sent is True
        assert outcome.message_id == "m-1"
        assert outcome.pair_id == "p-1"
        message = messenger.sent[0]
        assert message.body == "hola mundo"
        assert message.sender_id == "ana"
        assert message.recipient_id == "luis"
        assert message.origin == "voice"
        assert message.voice_path == outcome.audio_file_path
        assert message.voice_file_name == outcome.audio_file_path.rsplit("/", 1)[1]

    def test_messaging_failure_is_not_fatal(self):
        outcome = _run(self._message_ingest(), messenger=FakeMessenger(fail=True))
        assert outcome.message_sent is False
        assert outcome.transcription.text == "hola mundo"

    def test_no_messenger_configured(self):
        outcome = _run(self._message_ingest(), messenger=None)
        assert outcome.message_sent is False

    def test_send_message_false(self):
        messenger = FakeMessenger()
        _run(_ingest(cliente_primero_id="c-1"), messenger=messenger)
        assert messenger.sent == []


def test_voice_file_name_format():
    name = voice_file_name("wav", now=datetime(2026, 1, 2, 3, 4, 5))
    assert name.startswith("voice_20260102_030405_")
    assert name.endswith(".wav")
