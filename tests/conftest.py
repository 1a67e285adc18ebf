"""Configuration pytest partagée pour tous les tests."""

import json
import struct
from typing import Iterable, Optional

import pytest


def build_multipart(
    boundary: str,
    fields: Iterable[tuple[str, str]] = (),
    file: Optional[tuple[str, str, bytes]] = None,
    file_content_type: str = "audio/wav",
    closing: bool = True,
) -> bytes:
    """Construit un corps multipart/form-data comme le client web.

    Args:
        boundary: Token de séparation
        fields: Champs texte (nom, valeur)
        file: (nom du champ, nom du fichier, octets)
        file_content_type: Content-Type de la partie fichier
        closing: Ajoute le délimiteur final `--boundary--`
    """
    delimiter = f"--{boundary}".encode()
    body = b""
    if file is not None:
        name, filename, content = file
        body += delimiter + b"\r\n"
        body += f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'.encode()
        body += f"Content-Type: {file_content_type}\r\n\r\n".encode()
        body += content + b"\r\n"
    for name, value in fields:
        body += delimiter + b"\r\n"
        body += f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
        body += value.encode("utf-8") + b"\r\n"
    if closing:
        body += delimiter + b"--\r\n"
    return body


def multipart_content_type(boundary: str) -> str:
    return f"multipart/form-data; boundary={boundary}"


@pytest.fixture
def wav_bytes() -> bytes:
    """Petit WAV PCM 16 bits (silence + quelques octets non UTF-8)."""
    samples = b"\x00\x00\xff\xfe\x80\x7f\xc3\x28" * 64
    header = b"RIFF" + struct.pack("<I", 36 + len(samples)) + b"WAVE"
    header += b"fmt " + struct.pack("<IHHIIHH", 16, 1, 1, 16000, 32000, 2, 16)
    header += b"data" + struct.pack("<I", len(samples))
    return header + samples


@pytest.fixture
def binary_payload() -> bytes:
    """Tous les octets 0..255, plusieurs fois, y compris des séquences UTF-8 invalides."""
    return bytes(range(256)) * 4 + b"\r\n\r\n\xff\xfe\r\n-"


@pytest.fixture
def structured_data() -> str:
    return json.dumps({"language": "en-US", "audioFormat": "wav"})


@pytest.fixture
def make_multipart():
    """Constructeur de corps multipart (voir build_multipart)."""
    return build_multipart


@pytest.fixture
def make_content_type():
    return multipart_content_type
