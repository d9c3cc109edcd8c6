"""
Daylog Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() returns a configured FastAPI instance; the lifespan handler
       builds the EntryStore and services and stores them on app.state.
Who:   uvicorn (`uvicorn daylog.main:app`), `python -m daylog`, and tests.

Application Architecture:
    ┌──────────────────────────────────────────────────────┐
    │                    FastAPI App                       │
    │                                                      │
    │  Middleware: Request ID → Logging → GZip → CORS      │
    │                                                      │
    │  Routes:                                             │
    │   /api/entries  /api/entries/stream  /api/media/...  │
    │   /api/weather/current  /health                      │
    │                                                      │
    │  app.state: settings, store, media_service,          │
    │             weather_provider, entry_service          │
    └──────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Open the entry store (fails startup if storage is unavailable)
    3. Build media, weather and entry services

    Shutdown:
    1. Close the entry store (ends live subscriptions, disposes engine)
    2. Close the weather HTTP client
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from daylog import __version__
from daylog.config import Settings, settings as default_settings
from daylog.exceptions import (
    CircuitBreakerOpenError,
    FileStorageError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
    WeatherServiceError,
)
from daylog.middleware.compression import SelectiveGZipMiddleware
from daylog.middleware.logging import RequestLoggingMiddleware
from daylog.middleware.request_id import RequestIDMiddleware, request_id_var
from daylog.routes import entries, health, media, weather
from daylog.services.entry_service import EntryService
from daylog.services.media_service import MediaService
from daylog.services.weather_base import WeatherProvider
from daylog.services.weather_service import OpenMeteoWeatherService
from daylog.store.entry_store import EntryStore

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure logging for the whole application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Called once during startup, before any other initialization.
    """
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries that log every operation
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    config: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(config.log_level)
    logger.info("=" * 60)
    logger.info("Daylog Backend %s starting up...", __version__)

    store = EntryStore.from_settings(config)
    await store.open()

    media_service = MediaService(config=config)

    injected_weather: Optional[WeatherProvider] = app.state.weather_provider
    weather_provider = injected_weather or OpenMeteoWeatherService(config)

    app.state.store = store
    app.state.media_service = media_service
    app.state.weather_provider = weather_provider
    app.state.entry_service = EntryService(
        store=store,
        media=media_service,
        weather=weather_provider,
        display_timezone=config.display_timezone,
    )

    logger.info("Media storage: %s", media_service.storage_root)
    logger.info("Server ready at http://%s:%d", config.backend_host, config.backend_port)
    logger.info("=" * 60)

    try:
        yield
    finally:
        # ── Shutdown ──────────────────────────────────────────────────────
        logger.info("Daylog Backend shutting down...")
        await store.close()
        if injected_weather is None:
            await weather_provider.aclose()
        app.state.weather_provider = injected_weather
        logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": error,
            "message": message,
            "details": details,
            "request_id": request_id_var.get(""),
        },
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and a single response shape.

    Handler hierarchy:
        ValidationError          → 400 Bad Request
        NotFoundError            → 404 Not Found
        FileStorageError         → 500 Internal Server Error
        StorageUnavailableError  → 503 Service Unavailable
        WeatherServiceError      → 503 Service Unavailable
        CircuitBreakerOpenError  → 503 Service Unavailable
        Exception (fallback)     → 500 Internal Server Error

    Server-side error context is logged, never returned.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, exc.context)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return _error_response(500, "server_error", exc.message)

    @app.exception_handler(StorageUnavailableError)
    async def handle_storage_unavailable(request: Request, exc: StorageUnavailableError):
        logger.error(
            "[%s] Journal storage unavailable: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return _error_response(503, "storage_unavailable", exc.message)

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        return _error_response(
            503,
            "service_unavailable",
            exc.message,
            {"recovery_time": exc.recovery_time},
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(WeatherServiceError)
    async def handle_weather_error(request: Request, exc: WeatherServiceError):
        headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after else None
        return _error_response(503, "weather_service_error", exc.message, headers=headers)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s", request_id_var.get(""), exc, exc_info=True
        )
        return _error_response(
            500,
            "internal_server_error",
            "An unexpected error occurred. Please try again.",
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    config: Optional[Settings] = None,
    weather_provider: Optional[WeatherProvider] = None,
) -> FastAPI:
    """
    Assemble middleware, exception handlers and routes.

    Args:
        config: Settings for this app instance (defaults to the module settings).
        weather_provider: Replaces the Open-Meteo provider (tests, offline use).
    """
    config = config or default_settings

    app = FastAPI(
        title="Daylog API",
        description=(
            "Single-user journal: dated entries with text, an optional photo and "
            "voice recording, and a weather snapshot."
        ),
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = config
    app.state.weather_provider = weather_provider

    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(SelectiveGZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    app.include_router(entries.router)
    app.include_router(media.router)
    app.include_router(weather.router)
    app.include_router(health.router)

    return app


# uvicorn expects `daylog.main:app` to be importable
app = create_app()
