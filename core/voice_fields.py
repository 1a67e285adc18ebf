"""Champs de métadonnées d'un message vocal (langue, format, envoi de message).

Deux sources possibles dans un multipart:
- un champ structuré `data` contenant tout le JSON (prioritaire)
- sinon des champs simples `language`, `audioFormat`, `clientePrimeroID`

Les deux ne sont jamais mélangés: si `data` est lisible, les champs simples
sont ignorés.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .errors import Result, StructuredFieldParseError
from .logger import get_logger
from .multipart import Part

LOG = get_logger("core.voice_fields")

STRUCTURED_FIELD_NAME = "data"
SCALAR_FIELD_NAMES = ("language", "audioFormat", "clientePrimeroID")


def _fold_keys(model: type[BaseModel], data: Any) -> Any:
    """Fait correspondre les clés JSON aux alias sans tenir compte de la casse."""
    if not isinstance(data, dict):
        return data
    aliases = {
        (info.alias or name).lower(): info.alias or name
        for name, info in model.model_fields.items()
    }
    return {aliases.get(str(key).lower(), key): value for key, value in data.items()}


class MessageData(BaseModel):
    """Destinataires du message à envoyer après transcription."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cliente_primero_id: str = Field(default="", alias="clientePrimeroID")
    cliente_segundo_id: str = Field(default="", alias="clienteSegundoID")
    dueno_app_twin_id: str = Field(default="", alias="duenoAppTwinID")
    dueno_app_microsoft_oid: str = Field(default="", alias="duenoAppMicrosoftOID")
    de_quien: str = Field(default="", alias="deQuien")
    para_quien: str = Field(default="", alias="paraQuien")
    origin: str = Field(default="", alias="origin")

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        return "" if value is None else value

    @model_validator(mode="before")
    @classmethod
    def _case_insensitive(cls, data: Any) -> Any:
        return _fold_keys(cls, data)


class VoiceMetadata(BaseModel):
    """Objet JSON transporté par le champ `data` (ou par le corps JSON)."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    language: Optional[str] = Field(default=None, alias="language")
    audio_format: Optional[str] = Field(default=None, alias="audioFormat")
    auto_detect_language: bool = Field(default=False, alias="autoDetectLanguage")
    candidate_languages: Optional[list[str]] = Field(default=None, alias="candidateLanguages")
    cliente_primero_id: Optional[str] = Field(default=None, alias="clientePrimeroID")
    send_message: bool = Field(default=False, alias="sendMessage")
    message_data: Optional[MessageData] = Field(default=None, alias="messageData")

    @field_validator("auto_detect_language", "send_message", mode="before")
    @classmethod
    def _null_as_false(cls, value: Any) -> Any:
        return False if value is None else value

    @model_validator(mode="before")
    @classmethod
    def _case_insensitive(cls, data: Any) -> Any:
        return _fold_keys(cls, data)


@dataclass(frozen=True)
class IngestDefaults:
    """Valeurs par défaut injectées par la configuration."""

    language: str = "es-MX"
    audio_format: str = "wav"


@dataclass
class ExtractedFields:
    """Champs reconnus pour une requête de transcription."""

    language: str
    audio_format: str
    send_message: bool = False
    cliente_primero_id: str = ""
    message_data: Optional[MessageData] = None
    source: str = "defaults"

    @classmethod
    def from_defaults(cls, defaults: IngestDefaults) -> ExtractedFields:
        return cls(language=defaults.language, audio_format=defaults.audio_format)

    @classmethod
    def from_metadata(
        cls, metadata: VoiceMetadata, defaults: IngestDefaults, source: str
    ) -> ExtractedFields:
        """Construit les champs depuis l'objet structuré.

        Quand un message doit être envoyé, l'identifiant client du message
        remplace celui de premier niveau (s'il est renseigné).
        """
        message_data = metadata.message_data if metadata.send_message else None
        cliente_primero_id = metadata.cliente_primero_id or ""
        if message_data is not None and message_data.cliente_primero_id:
            cliente_primero_id = message_data.cliente_primero_id
        return cls(
            language=metadata.language or defaults.language,
            audio_format=metadata.audio_format or defaults.audio_format,
            send_message=metadata.send_message,
            cliente_primero_id=cliente_primero_id,
            message_data=message_data,
            source=source,
        )


def find_structured_part(parts: list[Part]) -> Optional[Part]:
    """Partie non fichier nommée `data`."""
    return next(
        (part for part in parts if not part.is_file and part.name == STRUCTURED_FIELD_NAME),
        None,
    )


def extract_structured_fields(
    body: bytes, parts: list[Part], defaults: IngestDefaults
) -> Result[ExtractedFields]:
    """Lit le champ `data` comme objet de métadonnées.

    Returns:
        Result.ok(ExtractedFields) si le champ existe et se parse,
        Result.fail(StructuredFieldParseError) sinon.
    """
    part = find_structured_part(parts)
    if part is None:
        return Result.fail(StructuredFieldParseError("Champ 'data' absent"))

    try:
        raw = part.content(body).decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        return Result.fail(StructuredFieldParseError(f"Champ 'data' non UTF-8: {exc}"))
    if not raw:
        return Result.fail(StructuredFieldParseError("Champ 'data' vide"))

    try:
        metadata = VoiceMetadata.model_validate_json(raw)
    except ValueError as exc:
        return Result.fail(
            StructuredFieldParseError(
                "JSON invalide dans le champ 'data'", details={"json": raw, "error": str(exc)}
            )
        )

    LOG.info("Paramètres lus depuis le champ JSON 'data'")
    return Result.ok(ExtractedFields.from_metadata(metadata, defaults, source="structured"))


def extract_scalar_fields(
    body: bytes, parts: list[Part], defaults: IngestDefaults
) -> ExtractedFields:
    """Récupère les champs simples présents; les autres gardent leur défaut."""
    fields = ExtractedFields.from_defaults(defaults)
    fields.source = "scalar"
    for part in parts:
        if part.is_file or part.name not in SCALAR_FIELD_NAMES:
            continue
        value = part.text(body).strip()
        if not value:
            continue
        if part.name == "language":
            fields.language = value
        elif part.name == "audioFormat":
            fields.audio_format = value
        elif part.name == "clientePrimeroID":
            fields.cliente_primero_id = value
    return fields


def extract_fields(
    body: bytes, parts: list[Part], defaults: IngestDefaults, log: logging.LoggerAdapter | None = None
) -> ExtractedFields:
    """Champ structuré en priorité, repli sur les champs simples en cas d'échec."""
    log = log or LOG
    structured = extract_structured_fields(body, parts, defaults)
    if structured.success:
        return structured.unwrap()

    error = structured.error
    if find_structured_part(parts) is not None:
        log.error("Échec de lecture du champ 'data': %s", error)
    log.info("Repli sur les champs de formulaire individuels")
    return extract_scalar_fields(body, parts, defaults)
