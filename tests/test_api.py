"""Tests pour les routes de l'API backend."""
import base64
import json
import logging
from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from backend.api.routes import telefonia
from backend.api.services.blob_store import LocalBlobStore
from backend.api.services.messaging import MessageReceipt
from backend.api.services.speech_synthesis import SpeechSynthesisError, SynthesizedSpeech
from backend.api.services.transcription import TranscriptionError, TranscriptionResult
from backend.config import settings
from backend.main import app


class FakeTranscriber:
    def __init__(self, fail=False):
        self.fail = fail
        self.calls = []

    async def transcribe(self, audio_url, language, audio=None):
        self.calls.append({"audio_url": audio_url, "language": language, "audio": audio})
        if self.fail:
            raise TranscriptionError("No speech could be recognized")
        return TranscriptionResult(text="hola mundo", confidence=0.87, duration_seconds=2.5, language=language)


class FakeMessenger:
    def __init__(self):
        self.sent = []

    async def send(self, message):
        self.sent.append(message)
        return MessageReceipt(message_id="msg-1", pair_id="pair-1")


class FakeSynthesizer:
    def __init__(self, fail=False):
        self.fail = fail

    async def synthesize(self, text, voice_name):
        if self.fail:
            raise SpeechSynthesisError("TTS indisponible")
        return SynthesizedSpeech(audio=b"RIFFtts", audio_format="wav", voice_name=voice_name)


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(
        root=tmp_path / "blobs",
        base_url="http://testserver/api",
        secret_key="test-secret",
        algorithm="HS256",
    )


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def client(blob_store, transcriber, messenger):
    """Client de test FastAPI avec collaborateurs simulés."""
    app.dependency_overrides[telefonia.get_blob_store] = lambda: blob_store
    app.dependency_overrides[telefonia.get_transcription_service] = lambda: transcriber
    app.dependency_overrides[telefonia.get_messaging_service] = lambda: messenger
    app.dependency_overrides[telefonia.get_speech_synthesizer] = lambda: FakeSynthesizer()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def send_voice(client, make_multipart, make_content_type):
    """POST multipart: fichier audio + champ `data` JSON."""

    def _send(data: dict, audio: bytes, boundary: str = "XYZ"):
        body = make_multipart(boundary, fields=[("data", json.dumps(data))], file=("file", "a.wav", audio))
        return client.post(
            "/api/telefonia/transcribe/Twin-1",
            content=body,
            headers={"Content-Type": make_content_type(boundary)},
        )

    return _send


class TestHealthRoutes:
    """Tests pour les routes /health."""

    def test_health_check(self, client):
        """Test GET /api/health."""
        response = client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "version" in data

    def test_transcription_health(self, client):
        response = client.get("/api/health/transcription")
        assert response.status_code == 200
        assert "backend" in response.json()

    def test_root(self, client):
        assert client.get("/").json()["version"] == settings.APP_VERSION


class TestTranscribeMultipart:
    """Tests pour POST /api/telefonia/transcribe/{twin_id} (multipart)."""

    def test_success(self, client, transcriber, wav_bytes, send_voice):
        response = send_voice({"language": "en-US", "clientePrimeroID": "c-1"}, wav_bytes)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["twinId"] == "Twin-1"
        assert data["transcribedText"] == "hola mundo"
        assert data["confidence"] == 0.87
        assert data["language"] == "en-US"
        assert data["audioSizeBytes"] == len(wav_bytes)
        assert data["audioFilePath"].startswith("Documents/hablemos/c-1/voz/voice_")
        assert data["messageSent"] is False
        assert "processingTimeSeconds" in data
        assert transcriber.calls[0]["audio"] == wav_bytes

    def test_signed_url_serves_uploaded_audio(self, client, wav_bytes, send_voice):
        data = send_voice({"clientePrimeroID": "c-1"}, wav_bytes).json()

        url = urlparse(data["audioUrl"])
        assert url.path.startswith("/api/blobs/twin-1/Documents/hablemos/c-1/voz/")
        response = client.get(f"{url.path}?{url.query}")
        assert response.status_code == 200
        assert response.content == wav_bytes
        assert response.headers["content-type"].startswith("audio/wav")

    def test_without_client_id_no_upload(self, client, wav_bytes, send_voice):
        data = send_voice({"language": "es-MX"}, wav_bytes).json()
        assert data["success"] is True
        assert data["audioFilePath"] is None
        assert data["audioUrl"] is None

    def test_message_is_sent(self, client, messenger, wav_bytes, send_voice):
        payload = {
            "clientePrimeroID": "c-1",
            "sendMessage": True,
            "messageData": {"clientePrimeroID": "c-1", "clienteSegundoID": "c-2", "deQuien": "a", "paraQuien": "b"},
        }
        data = send_voice(payload, wav_bytes).json()

        assert data["messageSent"] is True
        assert data["messageId"] == "msg-1"
        assert data["pairId"] == "pair-1"
        assert messenger.sent[0].body == "hola mundo"

    def test_missing_boundary(self, client, wav_bytes, make_multipart):
        body = make_multipart("XYZ", file=("file", "a.wav", wav_bytes))
        response = client.post(
            "/api/telefonia/transcribe/Twin-1",
            content=body,
            headers={"Content-Type": "multipart/form-data"},
        )
        assert response.status_code == 400
        data = response.json()
        assert data["success"] is False
        assert data["errorKind"] == "MissingBoundary"

    def test_no_file_part(self, client, make_multipart, make_content_type):
        body = make_multipart("XYZ", fields=[("language", "es-MX")])
        response = client.post(
            "/api/telefonia/transcribe/Twin-1",
            content=body,
            headers={"Content-Type": make_content_type("XYZ")},
        )
        assert response.status_code == 400
        assert response.json()["errorKind"] == "NoFilePart"

    def test_transcription_failure(self, client, transcriber, wav_bytes, send_voice):
        transcriber.fail = True
        response = send_voice({"clientePrimeroID": "c-1"}, wav_bytes)

        assert response.status_code == 500
        data = response.json()
        assert data["success"] is False
        assert data["errorMessage"] == "No speech could be recognized"
        assert data["audioFilePath"].startswith("Documents/hablemos/c-1/voz/")
        assert data["audioUrl"] is not None
        assert "processingTimeSeconds" in data

    def test_body_too_large(self, client, wav_bytes, monkeypatch, send_voice):
        monkeypatch.setattr(settings, "MAX_BODY_BYTES", 64)
        response = send_voice({"language": "es-MX"}, wav_bytes)
        assert response.status_code == 413
        assert response.json()["errorKind"] == "PayloadTooLarge"


class TestTwinId:
    """Identifiant du twin nettoyé avant d'être attaché aux logs."""

    def test_blank_twin_id(self, client):
        response = client.post("/api/telefonia/transcribe/%20%20", json={"audioBase64": "YWJj"})
        assert response.status_code == 400
        assert response.json()["errorMessage"] == "Twin ID parameter is required"

    def test_log_context_uses_stripped_twin_id(self, client, caplog):
        with caplog.at_level(logging.INFO, logger="backend.api.routes.telefonia"):
            response = client.post("/api/telefonia/transcribe/%20Twin-1%20", json={"audioBase64": "YWJj"})

        assert response.status_code == 200
        assert response.json()["twinId"] == "Twin-1"
        records = [r for r in caplog.records if hasattr(r, "twin_id")]
        assert records
        assert all(r.twin_id == "Twin-1" for r in records)


class TestTranscribeJson:
    """Tests pour POST /api/telefonia/transcribe/{twin_id} (JSON base64)."""

    def test_success(self, client, transcriber):
        audio = bytes(range(200))
        response = client.post(
            "/api/telefonia/transcribe/Twin-1",
            json={"audioBase64": base64.b64encode(audio).decode(), "language": "fr-FR"},
        )
        assert response.status_code == 200
        assert response.json()["language"] == "fr-FR"
        assert transcriber.calls[0]["audio"] == audio

    def test_malformed_base64(self, client):
        response = client.post("/api/telefonia/transcribe/Twin-1", json={"audioBase64": "YWJj3"})
        assert response.status_code == 400
        assert response.json()["errorKind"] == "MalformedBase64"

    def test_empty_audio(self, client):
        response = client.post("/api/telefonia/transcribe/Twin-1", json={"language": "es-MX"})
        assert response.status_code == 400
        assert response.json()["errorKind"] == "EmptyAudioPayload"

    def test_invalid_json(self, client):
        response = client.post(
            "/api/telefonia/transcribe/Twin-1",
            content=b"not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json()["errorKind"] == "InvalidJsonBody"


class TestTextToSpeech:
    """Tests pour POST /api/telefonia/text-to-speech/{twin_id}."""

    def test_success(self, client):
        response = client.post(
            "/api/telefonia/text-to-speech/Twin-1",
            json={"text": "Hola", "voiceName": "es-MX-JorgeNeural"},
        )
        assert response.status_code == 200
        data = response.json()
        assert base64.b64decode(data["audioBase64"]) == b"RIFFtts"
        assert data["voiceName"] == "es-MX-JorgeNeural"
        assert data["textLength"] == 4
        assert data["audioSizeBytes"] == 7

    def test_default_voice(self, client):
        data = client.post("/api/telefonia/text-to-speech/Twin-1", json={"text": "Hola"}).json()
        assert data["voiceName"] == settings.DEFAULT_VOICE_NAME

    def test_empty_text(self, client):
        response = client.post("/api/telefonia/text-to-speech/Twin-1", json={"text": "   "})
        assert response.status_code == 400
        assert response.json()["errorMessage"] == "Text is required"

    def test_synthesis_failure(self, client):
        app.dependency_overrides[telefonia.get_speech_synthesizer] = lambda: FakeSynthesizer(fail=True)
        response = client.post("/api/telefonia/text-to-speech/Twin-1", json={"text": "Hola"})
        assert response.status_code == 500
        assert response.json()["success"] is False


class TestBlobDownload:
    """Tests pour GET /api/blobs/{container}/{path}."""

    def test_invalid_signature(self, client, wav_bytes, send_voice):
        send_voice({"clientePrimeroID": "c-1"}, wav_bytes)
        response = client.get("/api/blobs/twin-1/Documents/hablemos/c-1/voz/x.wav?sig=invalid")
        assert response.status_code == 403

    def test_missing_signature(self, client):
        response = client.get("/api/blobs/twin-1/whatever.wav")
        assert response.status_code == 422
