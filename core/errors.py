"""Gestion d'erreurs robuste avec pattern Result."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


@dataclass
class Result(Generic[T]):
    """
    Pattern Result pour gestion d'erreurs explicite sans exceptions.

    Usage:
        result = extract_structured_fields(body, parts, defaults)
        if result.success:
            print(f"Champs: {result.value}")
        else:
            print(f"Erreur: {result.error}")
    """

    value: T | None
    error: str | Exception | None
    success: bool

    @staticmethod
    def ok(value: T) -> Result[T]:
        """Crée un résultat réussi."""
        return Result(value=value, error=None, success=True)

    @staticmethod
    def fail(error: str | Exception) -> Result[T]:
        """Crée un résultat échoué."""
        return Result(value=None, error=error, success=False)

    def map(self, func: Callable[[T], U]) -> Result[U]:
        """Transforme la valeur si succès, propage l'erreur sinon."""
        if self.success and self.value is not None:
            try:
                return Result.ok(func(self.value))
            except Exception as e:
                return Result.fail(AppError(f"{type(e).__name__}: {e}"))
        return Result.fail(self.error or "Unknown error")

    def and_then(self, func: Callable[[T], Result[U]]) -> Result[U]:
        """Chaîne des opérations qui retournent Result."""
        if self.success and self.value is not None:
            return func(self.value)
        return Result.fail(self.error or "Unknown error")

    def unwrap(self) -> T:
        """Récupère la valeur ou lève une exception si erreur."""
        if self.success and self.value is not None:
            return self.value
        if isinstance(self.error, Exception):
            raise self.error
        raise AppError(f"Unwrap on failed Result: {self.error}")

    def unwrap_or(self, default: T) -> T:
        """Récupère la valeur ou retourne la valeur par défaut."""
        return self.value if self.success and self.value is not None else default


class AppError(Exception):
    """Erreur de base pour l'application."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class IngestError(AppError):
    """Erreur de lecture du corps de requête (faute du client).

    `kind` identifie l'erreur côté API, `status_code` le code HTTP renvoyé.
    """

    kind = "IngestError"
    status_code = 400


class MissingBoundaryError(IngestError):
    """Content-Type absent, non multipart ou sans paramètre boundary."""

    kind = "MissingBoundary"


class NoFilePartError(IngestError):
    """Aucune partie multipart ne déclare de `filename`."""

    kind = "NoFilePart"


class MalformedBase64Error(IngestError):
    """Le champ `audioBase64` n'est pas du base64 standard valide."""

    kind = "MalformedBase64"


class EmptyAudioPayloadError(IngestError):
    """Le fichier audio extrait est vide."""

    kind = "EmptyAudioPayload"


class InvalidJsonBodyError(IngestError):
    """Le corps JSON est illisible ou n'est pas un objet."""

    kind = "InvalidJsonBody"


class PayloadTooLargeError(IngestError):
    """Corps de requête au-delà de la taille maximale configurée."""

    kind = "PayloadTooLarge"
    status_code = 413


class StructuredFieldParseError(AppError):
    """Champ `data` illisible. Non bloquant: on retombe sur les champs simples."""

    kind = "StructuredFieldParseError"


class DownstreamError(AppError):
    """Erreur d'un service externe (stockage, transcription, messagerie)."""


class DownstreamUploadError(DownstreamError):
    """Échec de l'upload du fichier audio (non bloquant)."""

    kind = "DownstreamUploadFailure"


class DownstreamTranscriptionError(DownstreamError):
    """Échec de la transcription (bloquant).

    Conserve le chemin et l'URL déjà calculés pour éviter un nouvel upload.
    """

    kind = "DownstreamTranscriptionFailure"

    def __init__(
        self,
        message: str,
        audio_file_path: str | None = None,
        audio_url: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.audio_file_path = audio_file_path
        self.audio_url = audio_url


class DownstreamMessagingError(DownstreamError):
    """Échec de l'envoi du message transcrit (non bloquant)."""

    kind = "DownstreamMessagingFailure"


def safe_call(func: Callable[..., T], *args, **kwargs) -> Result[T]:
    """
    Exécute une fonction et capture les exceptions dans un Result.

    Args:
        func: Fonction à exécuter
        *args: Arguments positionnels
        **kwargs: Arguments nommés

    Returns:
        Result[T] avec la valeur ou l'erreur
    """
    try:
        value = func(*args, **kwargs)
        return Result.ok(value)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        return Result.fail(AppError(error_msg))
