"""STT local via faster-whisper.

Objectif:
- Charger le modèle Whisper une seule fois (cache/singleton)
- Transcrire un fichier audio dans la langue demandée (sans traduction)
- Retourner des segments {start,end,text,avg_logprob} + infos de détection

Notes:
- faster-whisper peut télécharger le modèle au premier lancement.
- On force un dossier de cache contrôlé via `download_root`.
- Les codes de langue BCP-47 ("es-MX") sont réduits au code ISO ("es").
"""

from __future__ import annotations

import json
import logging
import math
import shutil
import subprocess
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from backend.config import settings

logger = logging.getLogger(__name__)


class AudioTranscriptionError(RuntimeError):
    """Erreur générique de transcription audio."""


class AudioFileNotFoundError(AudioTranscriptionError):
    """Fichier audio introuvable."""


class FFmpegNotFoundError(AudioTranscriptionError):
    """ffmpeg/ffprobe manquant (décodage/probing audio)."""


class AudioTooLongError(AudioTranscriptionError):
    """Audio trop long selon la configuration."""


class AudioDecodeError(AudioTranscriptionError):
    """Audio illisible/corrompu/format non supporté."""


@dataclass
class WhisperTranscript:
    segments: List[Dict[str, Any]]
    language: Optional[str]
    language_probability: Optional[float]
    duration: Optional[float]
    text: str = field(init=False)

    def __post_init__(self) -> None:
        self.text = concat_segments(self.segments)

    @property
    def confidence(self) -> float:
        """Moyenne des probabilités de segment (exp(avg_logprob)), 0.0 sans segment."""
        probs = [
            math.exp(float(seg["avg_logprob"]))
            for seg in self.segments
            if seg.get("avg_logprob") is not None
        ]
        if not probs:
            return 0.0
        return round(min(1.0, sum(probs) / len(probs)), 4)


def whisper_language(language: Optional[str]) -> Optional[str]:
    """"es-MX" -> "es"; None/"" -> None (détection automatique)."""
    code = (language or "").strip()
    if not code:
        return None
    return code.replace("_", "-").split("-", 1)[0].lower()


def _ensure_ffmpeg_available() -> None:
    # faster-whisper s'appuie généralement sur ffmpeg/ffprobe pour gérer les formats.
    ffmpeg = shutil.which("ffmpeg")
    ffprobe = shutil.which("ffprobe")
    if not ffmpeg or not ffprobe:
        raise FFmpegNotFoundError(
            "ffmpeg/ffprobe introuvable. Sur macOS: `brew install ffmpeg` (inclut ffprobe)."
        )


def _probe_duration_seconds(audio_path: Path) -> Optional[float]:
    """Retourne la durée en secondes via ffprobe (ou None si indéterminable)."""
    _ensure_ffmpeg_available()

    cmd = [
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "json",
        str(audio_path),
    ]
    try:
        proc = subprocess.run(cmd, check=False, capture_output=True, text=True)
    except FileNotFoundError as exc:
        raise FFmpegNotFoundError("ffprobe introuvable") from exc

    if proc.returncode != 0:
        err = (proc.stderr or "").strip()
        raise AudioDecodeError(f"Audio illisible (ffprobe): {err or 'erreur inconnue'}")

    try:
        payload = json.loads(proc.stdout or "{}")
        dur = payload.get("format", {}).get("duration")
        if dur is None:
            return None
        return float(dur)
    except (ValueError, TypeError):
        return None


@lru_cache(maxsize=4)
def _get_whisper_model(model_name: str) -> Any:
    """Charge le modèle faster-whisper une seule fois (cache processus)."""
    cache_dir = Path(settings.AUDIO_MODEL_CACHE_DIR).expanduser().resolve()
    cache_dir.mkdir(parents=True, exist_ok=True)

    # Import lazy: évite de charger des libs lourdes au démarrage de l'API.
    try:
        from faster_whisper import WhisperModel  # type: ignore
    except ImportError as exc:
        raise AudioTranscriptionError(
            "faster-whisper n'est pas disponible. Installez l'extra `stt`."
        ) from exc

    logger.info(
        "Chargement WhisperModel: model=%s device=cpu compute_type=int8 cache_dir=%s",
        model_name,
        cache_dir,
    )

    return WhisperModel(
        model_name,
        device="cpu",
        compute_type="int8",
        download_root=str(cache_dir),
    )


def concat_segments(segments: List[Dict[str, Any]]) -> str:
    parts: list[str] = []
    for seg in segments:
        txt = str(seg.get("text") or "").strip()
        if txt:
            parts.append(txt)
    return " ".join(parts).strip()


def transcribe_audio(audio_path: str, language: Optional[str] = None) -> WhisperTranscript:
    """Transcrit un audio en segments {start,end,text,avg_logprob}.

    Paramètres imposés:
    - task="transcribe"
    - vad_filter=True
    - beam_size=5
    - device="cpu"
    - compute_type="int8"

    Args:
        audio_path: Fichier audio local
        language: Code de langue ("es-MX", "fr"...), None pour la détection auto

    Raises:
        AudioFileNotFoundError, FFmpegNotFoundError, AudioTooLongError, AudioDecodeError
    """

    p = Path(audio_path).expanduser().resolve()
    if not p.exists() or not p.is_file():
        raise AudioFileNotFoundError(f"Fichier audio introuvable: {p}")

    max_s = int(settings.AUDIO_MAX_SECONDS)
    dur = _probe_duration_seconds(p)
    if dur is not None and dur > float(max_s):
        raise AudioTooLongError(f"Audio trop long: {dur:.1f}s (max {max_s}s)")

    model_name = (settings.AUDIO_WHISPER_MODEL or "small").strip() or "small"
    model = _get_whisper_model(model_name)

    try:
        segments_iter, info = model.transcribe(
            str(p),
            task="transcribe",
            language=whisper_language(language),
            vad_filter=True,
            beam_size=5,
        )
        out: List[Dict[str, Any]] = []
        for seg in segments_iter:
            text = (getattr(seg, "text", "") or "").strip()
            if not text:
                continue
            out.append(
                {
                    "start": float(getattr(seg, "start", 0.0) or 0.0),
                    "end": float(getattr(seg, "end", 0.0) or 0.0),
                    "text": text,
                    "avg_logprob": getattr(seg, "avg_logprob", None),
                }
            )
        transcript = WhisperTranscript(
            segments=out,
            language=getattr(info, "language", None),
            language_probability=getattr(info, "language_probability", None),
            duration=getattr(info, "duration", None) or dur,
        )
        logger.info(
            "Transcription terminée: file=%s segments=%d language=%s duration=%s",
            p.name,
            len(out),
            transcript.language,
            transcript.duration,
        )
        return transcript
    except AudioTranscriptionError:
        raise
    except Exception as exc:
        # Regrouper les erreurs de décodage/transcription
        raise AudioTranscriptionError(f"Échec transcription audio: {exc}") from exc
