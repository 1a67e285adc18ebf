"""Stockage des fichiers vocaux + URLs de lecture signées (équivalent SAS).

`LocalBlobStore` écrit sous BLOB_ROOT/<container>/<chemin> et garde les
métadonnées dans un fichier `<nom>.metadata.json` voisin. Les URLs sont
signées en JWT (python-jose) avec une date d'expiration; la route
`/blobs/{container}/{path}` vérifie la signature avant de servir le fichier.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path, PurePosixPath
from typing import Protocol
from urllib.parse import quote

from jose import JWTError, jwt

from backend.config import settings

logger = logging.getLogger(__name__)

METADATA_SUFFIX = ".metadata.json"


class BlobStore(Protocol):
    async def upload(
        self,
        container_id: str,
        directory_path: str,
        file_name: str,
        data: bytes,
        mime_type: str,
        metadata: dict[str, str],
    ) -> bool: ...

    async def sas_url(self, container_id: str, full_path: str, ttl: timedelta) -> str: ...


class BlobAccessError(Exception):
    """Signature absente, invalide, expirée ou chemin hors du conteneur."""


def _safe_relative(path: str) -> PurePosixPath:
    """Refuse les chemins absolus et les remontées `..`."""
    rel = PurePosixPath(path.replace("\\", "/"))
    if rel.is_absolute() or any(part in {"..", ""} for part in rel.parts) or not rel.parts:
        raise BlobAccessError(f"Chemin de blob invalide: {path}")
    return rel


class LocalBlobStore:
    """Stockage disque local."""

    def __init__(
        self,
        root: Path | None = None,
        base_url: str | None = None,
        secret_key: str | None = None,
        algorithm: str | None = None,
    ):
        self.root = Path(root or settings.BLOB_ROOT).expanduser().resolve()
        self.base_url = (base_url or f"{settings.PUBLIC_BASE_URL}{settings.API_PREFIX}").rstrip("/")
        self.secret_key = secret_key or settings.SECRET_KEY
        self.algorithm = algorithm or settings.ALGORITHM

    def blob_path(self, container_id: str, full_path: str) -> Path:
        container = _safe_relative(container_id)
        return self.root.joinpath(*container.parts, *_safe_relative(full_path).parts)

    def _write_sync(
        self, container_id: str, full_path: str, data: bytes, mime_type: str, metadata: dict[str, str]
    ) -> None:
        target = self.blob_path(container_id, full_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        sidecar = target.with_name(target.name + METADATA_SUFFIX)
        sidecar.write_text(
            json.dumps({"contentType": mime_type, "metadata": metadata}, ensure_ascii=False),
            encoding="utf-8",
        )

    async def upload(
        self,
        container_id: str,
        directory_path: str,
        file_name: str,
        data: bytes,
        mime_type: str,
        metadata: dict[str, str],
    ) -> bool:
        full_path = f"{directory_path.strip('/')}/{file_name}"
        try:
            await asyncio.to_thread(
                self._write_sync, container_id, full_path, data, mime_type, metadata
            )
        except (OSError, BlobAccessError) as exc:
            logger.error("Échec écriture blob %s/%s: %s", container_id, full_path, exc)
            return False

        logger.info("Blob écrit: %s/%s (%d octets)", container_id, full_path, len(data))
        return True

    async def sas_url(self, container_id: str, full_path: str, ttl: timedelta) -> str:
        expire = datetime.now(timezone.utc) + ttl
        token = jwt.encode(
            {"container": container_id, "path": full_path, "exp": expire},
            self.secret_key,
            algorithm=self.algorithm,
        )
        return f"{self.base_url}/blobs/{quote(container_id)}/{quote(full_path)}?sig={token}"

    def verify(self, container_id: str, full_path: str, token: str) -> Path:
        """Valide la signature et retourne le fichier à servir.

        Raises:
            BlobAccessError: signature invalide/expirée ou autre blob signé.
            FileNotFoundError: blob absent.
        """
        try:
            claims = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as exc:
            raise BlobAccessError("Signature invalide ou expirée") from exc

        if claims.get("container") != container_id or claims.get("path") != full_path:
            raise BlobAccessError("Signature émise pour un autre blob")

        target = self.blob_path(container_id, full_path)
        if not target.is_file():
            raise FileNotFoundError(full_path)
        return target

    def read_metadata(self, container_id: str, full_path: str) -> dict:
        sidecar = self.blob_path(container_id, full_path + METADATA_SUFFIX)
        if not sidecar.is_file():
            return {}
        return json.loads(sidecar.read_text(encoding="utf-8"))
