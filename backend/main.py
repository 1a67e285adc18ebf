"""Point d'entrée principal de l'API FastAPI."""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.config import settings
from backend.api.routes import health, telefonia
from core.logger import setup_logging

# Créer l'application
app = FastAPI(
    title=settings.APP_NAME,
    description="API de transcription de messages vocaux et de synthèse vocale",
    version=settings.APP_VERSION,
    docs_url=f"{settings.API_PREFIX}/docs",
    redoc_url=f"{settings.API_PREFIX}/redoc",
)

# CORS (remplace les handlers OPTIONS manuels)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "Accept", "Origin", "User-Agent"],
    max_age=3600,
)

# Routes
app.include_router(health.router, prefix=settings.API_PREFIX, tags=["health"])
app.include_router(telefonia.router, prefix=settings.API_PREFIX, tags=["telefonia"])


def _configure_logging() -> None:
    """Configure le logging du processus (une seule fois, au démarrage)."""
    level_name = (settings.LOG_LEVEL or "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)
    setup_logging(
        log_file=settings.LOG_FILE,
        console_level=level,
        format_json=settings.LOG_JSON,
    )


@app.get("/")
async def root():
    """Page d'accueil de l'API."""
    return {
        "message": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_PREFIX}/docs",
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Gestion globale des erreurs."""
    return JSONResponse(
        status_code=500,
        content={"success": False, "errorMessage": str(exc), "type": type(exc).__name__},
    )


if __name__ == "__main__":
    import uvicorn

    _configure_logging()

    uvicorn.run(
        "backend.main:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=(settings.LOG_LEVEL or "info").lower(),
        access_log=True,
    )
