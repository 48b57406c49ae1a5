"""
FastAPI API Service Entry Point
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy import text

from advisor.services import (
    ChatGenerationError,
    EmptyMessageError,
    NudgesUnavailableError,
    ThreadNotFoundError,
)
from api.dependencies import build_services
from api.routes import chat, nudges, system, weather
from database.connection import engine, get_async_session
from shared.config import get_settings
from shared.logging_config import configure_logging
from shared.startup_validator import StartupValidationError, validate_startup_config

# Configure structured JSON logging on startup
configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Digital Krishi Officer API",
    version="1.0.0",
)

settings = get_settings()
origins = settings.CORS_ORIGINS.split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(chat.router, tags=["chat"])
app.include_router(nudges.router, tags=["nudges"])
app.include_router(weather.router, tags=["weather"])
app.include_router(system.router, tags=["system"])


# =========================================================================
# LIFECYCLE
# =========================================================================
@app.on_event("startup")
async def startup():
    """
    Validate configuration, then compose services and start cache sweeps.

    Raises:
        StartupValidationError: If critical configuration is invalid
    """
    logger.info("Running API startup configuration validation...")
    try:
        await validate_startup_config()
        logger.info("API startup configuration validation passed")
    except StartupValidationError as e:
        logger.critical(f"API startup blocked due to configuration errors: {e}")
        raise

    services = build_services(settings)
    services.start()
    app.state.services = services
    logger.info("Cache sweeps started")


@app.on_event("shutdown")
async def shutdown():
    services = getattr(app.state, "services", None)
    if services is not None:
        await services.stop()
    await engine.dispose()
    logger.info("API shutdown complete")


# =========================================================================
# EXCEPTION HANDLERS
# =========================================================================
@app.exception_handler(ValidationError)
async def validation_exception_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Return 400 with validation error details."""
    return JSONResponse(
        status_code=400,
        content={"error": "Validation error", "details": exc.errors()},
    )


@app.exception_handler(EmptyMessageError)
async def empty_message_handler(request: Request, exc: EmptyMessageError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(ThreadNotFoundError)
async def thread_not_found_handler(request: Request, exc: ThreadNotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"error": "Thread not found"})


@app.exception_handler(ChatGenerationError)
async def chat_generation_handler(request: Request, exc: ChatGenerationError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"error": "Failed to generate AI response", "details": str(exc)},
    )


@app.exception_handler(NudgesUnavailableError)
async def nudges_unavailable_handler(request: Request, exc: NudgesUnavailableError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": str(exc)})


@app.get("/health")
async def health_check() -> JSONResponse:
    """
    Health check endpoint for Docker health checks and monitoring.

    Checks:
    - PostgreSQL connectivity (SELECT 1 query)
    - Cache sweeps running

    Returns:
        200 OK if all systems healthy
        503 Service Unavailable if degraded
    """
    health_status = {
        "status": "healthy",
        "postgres": "unknown",
        "caches": "not_started",
    }
    status_code = 200

    try:
        async with get_async_session() as session:
            await session.execute(text("SELECT 1"))
            health_status["postgres"] = "connected"
    except Exception:
        health_status["postgres"] = "disconnected"
        health_status["status"] = "degraded"
        status_code = 503

    services = getattr(app.state, "services", None)
    if services is not None and services.weather_cache.is_running and services.context_cache.is_running:
        health_status["caches"] = "running"

    return JSONResponse(status_code=status_code, content=health_status)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint"""
    return {"message": "Digital Krishi Officer API - Use /health for health checks"}
