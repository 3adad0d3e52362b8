# backend/analyzer/main.py
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import config
from .api import router as api_router
from .logging_config import setup_logging

# Set up logger
setup_logging()
logger = logging.getLogger(__name__)

# Initialize FastAPI application
app = FastAPI(
    title="Medical Audio Analyzer API",
    description=(
        "Relays patient audio recordings or transcripts to Gemini and returns "
        "a structured summary of symptoms, possible conditions and recommendations."
    ),
    version="1.0.0",
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Reports malformed request bodies as {error: ...} with status 400."""
    logger.warning(f"Invalid request body for {request.url.path}: {exc.errors()}")
    return JSONResponse(
        status_code=400,
        content={"error": "Request body must be a JSON object with audio/mimeType or transcript"},
    )


@app.on_event("startup")
async def startup_event():
    """Logs the effective configuration when the application starts."""
    logger.info("Application startup: Medical Audio Analyzer API.")
    logger.info(f"Gemini model: {config.GEMINI_MODEL_NAME}")
    logger.info(f"Temp audio dir: {config.TEMP_AUDIO_DIR}")
    logger.info(
        f"File polling: initial={config.POLL_INITIAL_INTERVAL_SEC}s, "
        f"factor={config.POLL_BACKOFF_FACTOR}, max={config.POLL_MAX_INTERVAL_SEC}s, "
        f"timeout={config.POLL_TIMEOUT_SEC}s, max_attempts={config.POLL_MAX_ATTEMPTS}"
    )
    if not config.get_api_key():
        logger.warning("GEMINI_API_KEY is not set; analysis requests will fail.")


app.include_router(api_router, prefix="/api", tags=["API Endpoints"])


@app.get("/", tags=["Root"])
async def read_root():
    """Provides a welcome message and basic API information."""
    return {
        "message": "Welcome to the Medical Audio Analyzer API.",
        "docs_url": "/docs",
        "redoc_url": "/redoc",
        "api_version": app.version,
    }


@app.get("/health", tags=["Health Check"])
async def health_check():
    """Simple health check endpoint."""
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("backend.analyzer.main:app", host="0.0.0.0", port=8000)
