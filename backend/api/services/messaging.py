"""Envoi du texte transcrit comme message (service de messagerie externe)."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

import requests
from pydantic import BaseModel, ConfigDict, Field

from backend.config import settings
from core.errors import DownstreamMessagingError

logger = logging.getLogger(__name__)


class VoiceMessage(BaseModel):
    """Message à envoyer, avec les références du fichier vocal."""

    model_config = ConfigDict(populate_by_name=True)

    sender_id: str = Field(alias="deQuien")
    recipient_id: str = Field(alias="paraQuien")
    body: str = Field(alias="mensaje")
    origin: str = Field(default="voice", alias="origin")
    client_id: str = Field(default="", alias="clientID")
    cliente_primero_id: str = Field(default="", alias="clientePrimeroID")
    cliente_segundo_id: str = Field(default="", alias="clienteSegundoID")
    dueno_app_twin_id: str = Field(default="", alias="duenoAppTwinID")
    dueno_app_microsoft_oid: str = Field(default="", alias="duenoAppMicrosoftOID")
    voice_file_name: str = Field(default="", alias="vozNombreArchivo")
    voice_path: Optional[str] = Field(default=None, alias="vozPath")
    voice_url: str = Field(default="", alias="sasUrlVoz")


class MessageReceipt(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message_id: Optional[str] = Field(default=None, alias="messageId")
    pair_id: Optional[str] = Field(default=None, alias="pairId")


class MessagingService(Protocol):
    async def send(self, message: VoiceMessage) -> MessageReceipt: ...


class HttpMessagingService:
    """POST du message en JSON; réponse {"success", "messageId", "pairId"}."""

    def __init__(self, url: str | None = None, timeout: int | None = None):
        self.url = url or settings.MESSAGING_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECONDS

    def _send_sync(self, message: VoiceMessage) -> MessageReceipt:
        try:
            resp = requests.post(
                self.url,
                json=message.model_dump(by_alias=True),
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise DownstreamMessagingError(
                f"Service de messagerie injoignable: {exc}", details={"url": self.url}
            ) from exc

        if not data.get("success", True):
            raise DownstreamMessagingError(data.get("errorMessage") or "Message not sent")
        return MessageReceipt.model_validate(data)

    async def send(self, message: VoiceMessage) -> MessageReceipt:
        return await asyncio.to_thread(self._send_sync, message)
