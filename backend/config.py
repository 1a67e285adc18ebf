"""Configuration du backend.

Notes:
- On ancre les chemins relatifs au *project root* (et pas au CWD) pour éviter
    les erreurs quand le backend est lancé depuis un autre dossier.
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


PROJECT_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Configuration de l'application."""

    # Pydantic v2: ignorer les variables d'env non déclarées (pratique en dev)
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    APP_NAME: str = "Telefonia Voice API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API
    API_PREFIX: str = "/api"
    # Vite peut tourner sur localhost OU 127.0.0.1 selon le host.
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    # Server
    API_HOST: str = "127.0.0.1"
    API_PORT: int = 8000
    PUBLIC_BASE_URL: str = "http://127.0.0.1:8000"

    # Ingestion audio
    DEFAULT_LANGUAGE: str = "es-MX"
    DEFAULT_AUDIO_FORMAT: str = "wav"
    MAX_BODY_BYTES: int = 25 * 1024 * 1024

    # Stockage des fichiers vocaux
    BLOB_ROOT: Path = PROJECT_ROOT / "data" / "blobs"
    SAS_TTL_HOURS: int = 24

    # Transcription: "whisper" (local) ou "http" (service externe)
    TRANSCRIPTION_BACKEND: str = "whisper"
    TRANSCRIPTION_URL: str = ""
    AUDIO_WHISPER_MODEL: str = "small"
    AUDIO_MODEL_CACHE_DIR: Path = PROJECT_ROOT / "data" / "models" / "whisper"
    AUDIO_MAX_SECONDS: int = 300

    # Messagerie + synthèse vocale (services externes, désactivés si vides)
    MESSAGING_URL: str = ""
    TTS_URL: str = ""
    DEFAULT_VOICE_NAME: str = "es-MX-DaliaNeural"
    HTTP_TIMEOUT_SECONDS: int = 60

    # Security (signature des URLs de téléchargement)
    SECRET_KEY: str = "change-me-in-production"  # À remplacer !
    ALGORITHM: str = "HS256"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Path | None = None
    LOG_JSON: bool = False

settings = Settings()
