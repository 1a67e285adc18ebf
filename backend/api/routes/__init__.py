"""Init pour les routes de l'API."""

from backend.api.routes import health, telefonia

__all__ = ["health", "telefonia"]
