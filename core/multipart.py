"""Découpage multipart/form-data minimal, sans bibliothèque MIME.

Ne couvre que la forme envoyée par le client vocal: un fichier audio et des
champs texte (un champ `data` JSON ou des champs simples). Pas de multipart
imbriqué, pas de Content-Transfer-Encoding, pas de négociation de charset.

Tous les offsets sont calculés sur les octets bruts: seul le bloc d'en-têtes
d'une partie est décodé en texte. Décoder le corps entier corromprait l'audio
(séquences UTF-8 invalides remplacées puis ré-encodées).

Limite connue: si la séquence `CRLF--boundary` apparaît dans l'audio, le
fichier est tronqué à cet endroit. Le client doit choisir un boundary absent
du contenu.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from typing import Optional

from .byte_search import find
from .errors import MissingBoundaryError
from .logger import get_logger

LOG = get_logger("core.multipart")

CRLF = b"\r\n"
HEADER_TERMINATOR = b"\r\n\r\n"
DEFAULT_FILE_MIME = "application/octet-stream"


@dataclass(frozen=True)
class Part:
    """Une partie multipart: en-têtes + plage [start, end) dans le corps brut."""

    headers: dict[str, str]
    start: int
    end: int

    @property
    def name(self) -> Optional[str]:
        return self.headers.get("name")

    @property
    def filename(self) -> Optional[str]:
        return self.headers.get("filename")

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    @property
    def is_file(self) -> bool:
        return "filename" in self.headers

    @property
    def size(self) -> int:
        return self.end - self.start

    def content(self, body: bytes) -> bytes:
        return body[self.start : self.end]

    def text(self, body: bytes) -> str:
        """Contenu décodé en UTF-8 (champs texte uniquement)."""
        return self.content(body).decode("utf-8", errors="replace")


@dataclass
class ExtractedFile:
    """Fichier extrait d'une partie, octets copiés tels quels."""

    content: bytes
    mime_type: str
    filename: Optional[str] = None
    size: int = field(init=False)

    def __post_init__(self) -> None:
        self.size = len(self.content)

    @property
    def magic(self) -> bytes:
        """Quatre premiers octets (ex: b"RIFF" pour un WAV)."""
        return self.content[:4]


def _split_params(value: str) -> tuple[str, dict[str, str]]:
    """Sépare `type; k1=v1; k2="v2"` en (type, {k1: v1, k2: v2}).

    Les noms de paramètres sont mis en minuscules, les guillemets retirés.
    """
    # Les `;` entre guillemets ne séparent pas les paramètres.
    pieces: list[str] = []
    current: list[str] = []
    quoted = False
    for char in value:
        if char == '"':
            quoted = not quoted
        if char == ";" and not quoted:
            pieces.append("".join(current))
            current = []
            continue
        current.append(char)
    pieces.append("".join(current))

    main = pieces[0].strip()
    params: dict[str, str] = {}
    for piece in pieces[1:]:
        key, sep, raw = piece.partition("=")
        if not sep:
            continue
        raw = raw.strip()
        if len(raw) >= 2 and raw[0] == raw[-1] == '"':
            raw = raw[1:-1].replace('\\"', '"')
        params[key.strip().lower()] = raw
    return main, params


def is_multipart(content_type: Optional[str]) -> bool:
    """True si le Content-Type annonce un corps multipart."""
    if not content_type:
        return False
    media_type, _ = _split_params(content_type)
    return media_type.lower().startswith("multipart/")


def resolve_boundary(content_type: Optional[str]) -> str:
    """Extrait le boundary d'un Content-Type multipart.

    Raises:
        MissingBoundaryError: header absent, non multipart, ou sans boundary.
    """
    if not content_type or not content_type.strip():
        raise MissingBoundaryError("Content-Type manquant")
    if not is_multipart(content_type):
        raise MissingBoundaryError(
            "Content-Type non multipart", details={"content_type": content_type}
        )
    _, params = _split_params(content_type)
    boundary = params.get("boundary", "").strip()
    if not boundary:
        raise MissingBoundaryError(
            "Invalid multipart boundary", details={"content_type": content_type}
        )
    return boundary


def parse_part_headers(text: str) -> dict[str, str]:
    """Parse le bloc d'en-têtes d'une partie.

    Les noms d'en-têtes sont mis en minuscules. Les paramètres de
    Content-Disposition (`name`, `filename`) sont remontés au premier niveau.
    """
    headers: dict[str, str] = {}
    for line in text.split("\r\n"):
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        headers[key] = value
        if key == "content-disposition":
            disposition, params = _split_params(value)
            headers["disposition"] = disposition.lower()
            for param in ("name", "filename"):
                if param in params:
                    headers[param] = params[param]
    return headers


def segment_parts(body: bytes, boundary: str) -> list[Part]:
    """Découpe le corps brut en parties délimitées par `--boundary`.

    Chaque partie se termine au prochain `CRLF--boundary` ou, à défaut, à la
    fin du buffer (données finales corrompues). Un délimiteur fermant
    (`--boundary--`) met fin au découpage.
    """
    delimiter = b"--" + boundary.encode("utf-8")
    next_delimiter = CRLF + delimiter

    parts: list[Part] = []
    position = find(body, delimiter)
    while position is not None:
        cursor = position + len(delimiter)
        if body[cursor : cursor + 2] == b"--":
            break
        if body[cursor : cursor + 2] == CRLF:
            cursor += 2

        terminator = find(body, HEADER_TERMINATOR, cursor)
        end = find(body, next_delimiter, cursor)

        if terminator is not None and (end is None or terminator <= end):
            content_start = terminator + len(HEADER_TERMINATOR)
            if end is not None and end < content_start:
                # En-têtes sans contenu: `CRLF CRLF` chevauche `CRLF--boundary`.
                end = terminator
            header_text = body[cursor:terminator].decode("utf-8", errors="replace")
            parts.append(
                Part(
                    headers=parse_part_headers(header_text),
                    start=min(content_start, end if end is not None else len(body)),
                    end=end if end is not None else len(body),
                )
            )
        else:
            LOG.warning("Partie multipart sans fin d'en-têtes ignorée (offset %d)", cursor)

        if end is None:
            break
        position = end + len(CRLF)

    LOG.debug("%d partie(s) multipart trouvée(s)", len(parts))
    return parts


def guess_file_mime(part: Part) -> str:
    """MIME du fichier: Content-Type de la partie, sinon extension, sinon octet-stream."""
    declared = (part.content_type or "").strip()
    if declared:
        return declared.split(";", 1)[0].strip().lower()
    if part.filename:
        guessed, _ = mimetypes.guess_type(part.filename)
        if guessed:
            return guessed
    return DEFAULT_FILE_MIME


def find_file_part(parts: list[Part]) -> Optional[Part]:
    """Première partie qui déclare un `filename`."""
    return next((part for part in parts if part.is_file), None)


def extract_file_part(body: bytes, parts: list[Part]) -> Optional[ExtractedFile]:
    """Copie exacte des octets de la première partie fichier.

    Returns:
        ExtractedFile, ou None si aucune partie ne déclare de filename.
    """
    part = find_file_part(parts)
    if part is None:
        return None

    extracted = ExtractedFile(
        content=part.content(body),
        mime_type=guess_file_mime(part),
        filename=part.filename,
    )
    LOG.info(
        "Fichier extrait du multipart: %s (%d octets, %s, en-tête %r)",
        part.filename,
        extracted.size,
        extracted.mime_type,
        extracted.magic,
    )
    return extracted
