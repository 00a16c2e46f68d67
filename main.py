"""
FastAPI server for the Pixshop image editor and idea generator.

Forwards edit and idea requests to Google Gemini using a server-held API key
and answers with normalized JSON.

Endpoints:
- GET  /health                - Health check
- GET  /                      - API information
- POST /api/editImage         - Image editing, buffered JSON response
- POST /api/editImage/stream  - Image editing, streamed JSON response
- POST /api/generate          - Idea generation
"""

from __future__ import annotations

import logging
import os
import sys
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from schemas import (
    EditImageResponse,
    ErrorResponse,
    GenerateIdeasRequest,
    GenerateIdeasResponse,
    ServerSettings,
)
from schemas.edit import MISSING_KEY_MESSAGE
from services.edit_handler import BufferedDelivery, EditHandler, StreamedDelivery
from services.gemini_client import GeminiClient

# Load environment variables
load_dotenv()

APP_NAME = "Pixshop AI Server"
APP_VERSION = "0.2.0"

settings = ServerSettings.from_env()
edit_handler = EditHandler(settings, BufferedDelivery())
streamed_edit_handler = EditHandler(settings, StreamedDelivery())

# Track server start time for uptime calculation
# Initialized in lifespan handler, not at import time
_start_time: float | None = None


# =============================================================================
# Application Setup
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    global _start_time
    # Startup
    _start_time = time.time()
    logger.info("%s starting...", APP_NAME)
    if settings.resolve_api_key():
        logger.info("API Key: configured")
    else:
        logger.warning(
            "API Key: MISSING (set one of %s); edit and idea requests will fail until it is set",
            ", ".join(settings.api_key_env_vars),
        )
    yield
    # Shutdown
    logger.info("%s shutting down...", APP_NAME)


app = FastAPI(
    title=APP_NAME,
    description="Gemini-backed image editing and idea generation",
    version=APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid input or blocked by policy"},
    500: {"model": ErrorResponse, "description": "Server misconfiguration or upstream failure"},
}


# =============================================================================
# Error Normalization
# =============================================================================


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors as {"error": ...} instead of FastAPI's {"detail": ...}."""
    return JSONResponse(
        {"error": str(exc.detail)},
        status_code=exc.status_code,
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed request bodies are a 400 with a readable message."""
    logger.info("Rejected request to %s: %s", request.url.path, exc.errors())
    return JSONResponse({"error": "Invalid request body."}, status_code=400)


# =============================================================================
# Health & Info Endpoints
# =============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    uptime_seconds: float
    environment: str
    python_version: str
    api_key_configured: bool


class RootResponse(BaseModel):
    """Root endpoint response."""

    name: str
    version: str
    status: str
    endpoints: dict[str, str]


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return server health status."""
    uptime = round(time.time() - _start_time, 2) if _start_time else 0.0
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=uptime,
        environment=os.getenv("ENVIRONMENT", "development"),
        python_version=f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        api_key_configured=settings.resolve_api_key() is not None,
    )


@app.get("/", response_model=RootResponse)
async def root() -> RootResponse:
    """Return API information."""
    return RootResponse(
        name=APP_NAME,
        version=APP_VERSION,
        status="running",
        endpoints={
            "health": "GET /health",
            "edit_image": "POST /api/editImage",
            "edit_image_stream": "POST /api/editImage/stream",
            "generate_ideas": "POST /api/generate",
        },
    )


# =============================================================================
# Image Edit Endpoints (POST /api/editImage, POST /api/editImage/stream)
# =============================================================================


@app.post("/api/editImage", response_model=EditImageResponse, responses=_ERROR_RESPONSES)
async def edit_image(request: Request) -> Response:
    """
    Edit an image with Gemini and return the result as one JSON body.

    The raw body is handed to the edit pipeline, which does its own
    validation so every failure uses the {"error": ...} shape.
    """
    return await edit_handler.respond(await request.body())


@app.post("/api/editImage/stream", response_model=EditImageResponse, responses=_ERROR_RESPONSES)
async def edit_image_stream(request: Request) -> Response:
    """
    Edit an image with Gemini, streaming the JSON result.

    Headers are sent immediately and the single JSON document follows once
    Gemini answers, keeping the connection active on platforms that limit
    the time to first byte. Always 200; failures arrive as {"error": ...}.
    """
    return await streamed_edit_handler.respond(await request.body())


# =============================================================================
# Idea Generation Endpoint (POST /api/generate)
# =============================================================================


@app.post("/api/generate", response_model=GenerateIdeasResponse, responses=_ERROR_RESPONSES)
async def generate_ideas(request: GenerateIdeasRequest) -> GenerateIdeasResponse:
    """Generate a handful of ideas about a topic using structured Gemini output."""
    topic = request.topic.strip()
    if not topic:
        raise HTTPException(status_code=400, detail="A topic is required.")

    api_key = settings.resolve_api_key()
    if not api_key:
        raise HTTPException(status_code=500, detail=MISSING_KEY_MESSAGE)

    logger.info("Idea generation request: model=%s, topic_length=%d", settings.ideas_model, len(topic))

    try:
        client = GeminiClient(api_key)
        ideas = await client.generate_ideas(topic=topic, model=settings.ideas_model)
    except Exception as e:
        logger.exception("Idea generation failed: %s", e)
        raise HTTPException(status_code=500, detail="Failed to generate ideas.")

    logger.info("Idea generation successful: %d ideas", len(ideas))
    return GenerateIdeasResponse(ideas=ideas)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8000"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info("Starting server on %s:%d", host, port)
    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.getenv("ENVIRONMENT") != "production",
    )
