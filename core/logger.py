"""Configuration centralisée du logging.

Le logging est configuré une seule fois par processus (`setup_logging`).
Chaque requête réutilise les loggers de module via `bind_logger`, qui ajoute
le contexte de la requête (request_id, twin_id...) à chaque enregistrement.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, MutableMapping

# Niveaux de log par module
MODULE_LEVELS = {
    "core.multipart": logging.INFO,
    "core.voice_fields": logging.INFO,
    "core.audio_ingest": logging.INFO,
    "backend.api.services": logging.INFO,
}

DEFAULT_LEVEL = logging.INFO

_STANDARD_ATTRS = {
    "name",
    "msg",
    "args",
    "created",
    "filename",
    "funcName",
    "levelname",
    "levelno",
    "lineno",
    "module",
    "msecs",
    "pathname",
    "process",
    "processName",
    "relativeCreated",
    "thread",
    "threadName",
    "exc_info",
    "exc_text",
    "stack_info",
    "taskName",
    "message",
    "asctime",
}


class ColoredFormatter(logging.Formatter):
    """Formatter avec couleurs pour la console."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",  # Vert
        "WARNING": "\033[33m",  # Jaune
        "ERROR": "\033[31m",  # Rouge
        "CRITICAL": "\033[35m",  # Magenta
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        """Formate avec couleur selon le niveau, sans altérer le record partagé."""
        color = self.COLORS.get(record.levelname, self.COLORS["RESET"])
        reset = self.COLORS["RESET"]
        original = record.levelname
        record.levelname = f"{color}{original}{reset}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class JsonFormatter(logging.Formatter):
    """Formatter JSON pour logs structurés."""

    def format(self, record: logging.LogRecord) -> str:
        """Formate en JSON."""
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Champs extra (contexte de requête notamment)
        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, ensure_ascii=False, default=str)


def setup_logging(
    log_file: Path | None = None,
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    format_json: bool = False,
) -> None:
    """
    Configure le système de logging.

    Args:
        log_file: Chemin du fichier de log (optionnel)
        console_level: Niveau de log pour la console
        file_level: Niveau de log pour le fichier
        format_json: Si True, log en JSON (pour parsing automatique)
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(ColoredFormatter(log_format, datefmt=date_format))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(file_level)

        if format_json:
            file_formatter: logging.Formatter = JsonFormatter()
        else:
            file_formatter = logging.Formatter(log_format, datefmt=date_format)

        file_handler.setFormatter(file_formatter)
        root_logger.addHandler(file_handler)

    for module_name, level in MODULE_LEVELS.items():
        logging.getLogger(module_name).setLevel(level)

    # Réduire verbosité des libs externes
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("faster_whisper").setLevel(logging.WARNING)


class RequestLogger(logging.LoggerAdapter):
    """Adapter qui injecte le contexte de requête dans chaque record.

    Le contexte est ajouté en `extra` (visible dans les logs JSON) et en
    préfixe du message (visible en console).
    """

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        context = dict(self.extra or {})
        extra = dict(context)
        extra.update(kwargs.get("extra") or {})
        kwargs["extra"] = extra
        if not context:
            return msg, kwargs
        prefix = " ".join(f"{key}={value}" for key, value in context.items())
        return f"[{prefix}] {msg}", kwargs

    def bind(self, **context: Any) -> "RequestLogger":
        """Retourne un nouvel adapter avec un contexte enrichi."""
        merged = dict(self.extra or {})
        merged.update(context)
        return RequestLogger(self.logger, merged)


def get_logger(name: str) -> logging.Logger:
    """
    Récupère un logger configuré.

    Args:
        name: Nom du logger (généralement __name__)

    Returns:
        Logger configuré
    """
    return logging.getLogger(name)


def bind_logger(logger: logging.Logger | RequestLogger, **context: Any) -> RequestLogger:
    """Attache un contexte de requête à un logger de module."""
    if isinstance(logger, RequestLogger):
        return logger.bind(**context)
    return RequestLogger(logger, dict(context))


# Configuration par défaut au chargement du module
if not logging.getLogger().handlers:
    setup_logging()
