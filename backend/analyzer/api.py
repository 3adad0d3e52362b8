# backend/analyzer/api.py
import logging
import time
from typing import Union

from fastapi import APIRouter
from fastapi.responses import JSONResponse

# Local application imports
from . import config, schemas, services
from .logging_config import set_request_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# ============================
# Analysis Endpoint
# ============================
@router.post(
    "/AI",
    response_model=Union[schemas.AudioAnalysisResponse, schemas.TranscriptAnalysisResponse],
    responses={
        400: {"model": schemas.ErrorResponse},
        500: {"model": schemas.ErrorResponse},
        504: {"model": schemas.ErrorResponse},
    },
)
def analyze_endpoint(request: schemas.AnalyzeRequest):
    """
    Analyzes either base64 audio ({audio, mimeType}) or a plain transcript
    ({transcript}) with the AI provider.
    """
    set_request_id()
    if request.is_audio_request():
        return _handle_audio_request(request)
    return _handle_transcript_request(request)


def _handle_audio_request(request: schemas.AnalyzeRequest):
    start_time = time.time()
    if not request.audio or not request.mime_type:
        logger.warning("Audio request missing audio or mimeType.")
        return _error_response(400, "Missing audio or mimeType in request body")

    mime_type = request.mime_type.strip().lower()
    base_mime_type = mime_type.split(";", 1)[0].strip()
    if base_mime_type not in config.SUPPORTED_AUDIO_TYPES:
        logger.warning(f"Unsupported audio type: {request.mime_type}")
        return _error_response(
            400,
            f"Unsupported file type: {request.mime_type}. "
            "Please use WAV, MP3, or WebM audio files.",
        )

    try:
        audio_bytes = services.decode_audio_payload(request.audio)
    except ValueError as e:
        logger.warning(f"Rejected audio payload: {e}")
        return _error_response(400, str(e))

    logger.info(f"▶️ Audio analysis START ({base_mime_type}, {len(audio_bytes)} bytes)")
    try:
        analysis = services.analyze_audio(audio_bytes, base_mime_type)
    except services.FileProcessingTimeout as e:
        logger.error(f"Gemini file processing timed out: {e}")
        return _error_response(504, str(e))
    except Exception as e:
        logger.error(f"❌ Gemini Audio Analysis Error: {e}", exc_info=True)
        return _error_response(500, str(e) or "Failed to analyze audio")

    logger.info(f"✅ Audio analysis done ({time.time() - start_time:.2f}s)")
    return schemas.AudioAnalysisResponse(analysis=analysis)


def _handle_transcript_request(request: schemas.AnalyzeRequest):
    start_time = time.time()
    if not request.transcript or not request.transcript.strip():
        logger.warning("Transcript request without transcript text.")
        return _error_response(400, "Transcript is required")

    logger.info(f"▶️ Transcript analysis START ({len(request.transcript)} chars)")
    try:
        symptoms = services.analyze_transcript(request.transcript)
    except Exception as e:
        logger.error(f"❌ Gemini Transcript Analysis Error: {e}", exc_info=True)
        return _error_response(500, str(e) or "Failed to analyze transcript")

    logger.info(f"✅ Transcript analysis done ({time.time() - start_time:.2f}s)")
    return schemas.TranscriptAnalysisResponse(symptoms=symptoms)
