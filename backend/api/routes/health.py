"""Routes de santé de l'API."""

import shutil

from fastapi import APIRouter

from backend.config import settings

router = APIRouter()


@router.get("/health")
async def health_check():
    """Vérification de santé de l'API."""
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
    }


@router.get("/health/transcription")
async def transcription_health():
    """État du backend de transcription configuré (sans lancer de modèle)."""
    backend = settings.TRANSCRIPTION_BACKEND.lower()
    if backend == "http":
        return {
            "backend": backend,
            "configured": bool(settings.TRANSCRIPTION_URL),
        }

    try:
        import faster_whisper  # type: ignore  # noqa: F401
        whisper_ok = True
    except ImportError:
        whisper_ok = False

    return {
        "backend": backend,
        "model": settings.AUDIO_WHISPER_MODEL,
        "faster_whisper": whisper_ok,
        "ffmpeg": bool(shutil.which("ffmpeg") and shutil.which("ffprobe")),
    }
