# backend/analyzer/services.py

import base64
import binascii
import html
import logging
import time
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, List, Optional

# --- Third-Party Library Imports ---
import google.generativeai as genai

# --- Local Application Imports ---
from . import config, storage
from .schemas import FileStatus, RemoteFileHandle

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)


# ============================
# Error Kinds
# ============================

class AnalysisError(Exception):
    """Base class for failures while producing an analysis."""


class ProviderError(AnalysisError):
    """The AI provider rejected a request, failed, or is not configured."""


class FileProcessingFailed(ProviderError):
    """The provider reported the uploaded file as FAILED."""


class FileProcessingTimeout(AnalysisError):
    """The uploaded file did not become ready before the polling deadline."""


# ============================
# Provider Setup
# ============================

def _configure_provider() -> None:
    """
    Configures the Gemini SDK with the API key from the environment.
    The key is read on every call so a rotated key takes effect without restart.
    """
    api_key = config.get_api_key()
    if not api_key:
        logger.error("GEMINI_API_KEY is not set. Cannot call the Gemini API.")
        raise ProviderError("GEMINI_API_KEY environment variable is not set.")
    genai.configure(api_key=api_key)


@lru_cache(maxsize=1)
def get_gemini_model():
    """
    Returns the Google Gemini generative model client.
    Caches the model client; the API key is configured separately per request.
    """
    model_name = config.GEMINI_MODEL_NAME
    logger.info(f"Creating Gemini model client ({model_name})...")

    # Define safety settings to block harmful content
    safety_settings = [
        {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_SEXUALLY_EXPLICIT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
        {"category": "HARM_CATEGORY_DANGEROUS_CONTENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    ]
    return genai.GenerativeModel(model_name=model_name, safety_settings=safety_settings)


def _describe_provider_error(e: Exception) -> str:
    """Turns an SDK exception into a message suitable for the API response."""
    error_message = str(e) or type(e).__name__
    if "API key not valid" in error_message:
        return "Invalid Google API Key provided."
    lowered = error_message.lower()
    if "permission" in lowered and ("denied" in lowered or "403" in lowered):
        return "API Permission Denied (check API key permissions/billing)."
    return error_message


# ============================
# Payload Handling
# ============================

def decode_audio_payload(audio_b64: str) -> bytes:
    """
    Decodes the base64 audio string sent by the client.
    Raises ValueError for malformed or empty payloads.
    """
    if "," in audio_b64 and audio_b64.lstrip().startswith("data:"):
        # Accept data URLs ('data:audio/webm;base64,....')
        audio_b64 = audio_b64.split(",", 1)[1]
    # Line-wrapped base64 (MIME style, 76 columns) is accepted.
    audio_b64 = "".join(audio_b64.split())
    try:
        audio_bytes = base64.b64decode(audio_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError("Audio payload is not valid base64") from e
    if not audio_bytes:
        raise ValueError("Audio payload is empty")
    return audio_bytes


def _to_remote_handle(file_obj: Any) -> RemoteFileHandle:
    """Builds a RemoteFileHandle from a provider File object."""
    state = getattr(file_obj, "state", None)
    state_name = getattr(state, "name", state)
    return RemoteFileHandle(
        name=file_obj.name,
        uri=getattr(file_obj, "uri", None),
        mime_type=getattr(file_obj, "mime_type", None),
        status=FileStatus.from_provider_state(str(state_name) if state_name else None),
    )


# ============================
# Upload / Poll / Delete
# ============================

def upload_audio_file(file_path: Path, mime_type: str) -> RemoteFileHandle:
    """Uploads a local audio file to the provider's file storage."""
    logger.info(f"Uploading {file_path.name} ({mime_type}) to Gemini...")
    try:
        uploaded = genai.upload_file(
            path=str(file_path),
            mime_type=mime_type,
            display_name=config.UPLOAD_DISPLAY_NAME,
        )
    except Exception as e:
        error_message = _describe_provider_error(e)
        logger.error(f"Gemini file upload failed: {error_message}", exc_info=True)
        raise ProviderError(f"File upload failed: {error_message}") from e

    handle = _to_remote_handle(uploaded)
    logger.info(f"✅ File uploaded to Gemini: {handle.uri} (name={handle.name})")
    return handle


def fetch_file_status(file_name: str) -> RemoteFileHandle:
    """Fetches the current status of an uploaded file."""
    try:
        return _to_remote_handle(genai.get_file(file_name))
    except Exception as e:
        error_message = _describe_provider_error(e)
        logger.error(f"Could not fetch status for {file_name}: {error_message}")
        raise ProviderError(f"Could not fetch file status: {error_message}") from e


def wait_for_file_ready(
    file_name: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
    initial_interval: Optional[float] = None,
    backoff_factor: Optional[float] = None,
    max_interval: Optional[float] = None,
    timeout: Optional[float] = None,
    max_attempts: Optional[int] = None,
) -> RemoteFileHandle:
    """
    Polls the provider until the uploaded file leaves the processing state.

    The interval grows exponentially up to max_interval. Polling stops with
    FileProcessingTimeout once max_attempts status checks have been made or
    the next sleep would cross the deadline.

    Args:
        file_name: Provider file name returned by the upload.
        sleep: Sleep function, injectable for tests.
        clock: Monotonic clock, injectable for tests.

    Returns:
        The handle of the file in the READY state.

    Raises:
        FileProcessingFailed: The provider marked the file as FAILED.
        FileProcessingTimeout: The file was still processing at the deadline.
    """
    interval = config.POLL_INITIAL_INTERVAL_SEC if initial_interval is None else initial_interval
    factor = config.POLL_BACKOFF_FACTOR if backoff_factor is None else backoff_factor
    interval_cap = config.POLL_MAX_INTERVAL_SEC if max_interval is None else max_interval
    timeout_sec = config.POLL_TIMEOUT_SEC if timeout is None else timeout
    attempts_cap = config.POLL_MAX_ATTEMPTS if max_attempts is None else max_attempts

    deadline = clock() + timeout_sec
    attempts = 0

    while True:
        handle = fetch_file_status(file_name)
        attempts += 1
        logger.info(f"File {file_name} status: {handle.status.value} (check {attempts})")

        if handle.status == FileStatus.READY:
            return handle
        if handle.status == FileStatus.FAILED:
            logger.error(f"Gemini reported file {file_name} as FAILED.")
            raise FileProcessingFailed("File processing failed")

        if attempts >= attempts_cap or clock() + interval > deadline:
            logger.error(
                f"File {file_name} still {handle.status.value} after {attempts} checks "
                f"({timeout_sec:.0f}s deadline)."
            )
            raise FileProcessingTimeout(
                f"File processing timed out after {attempts} status checks"
            )

        sleep(interval)
        interval = min(interval * factor, interval_cap)


def delete_remote_file(file_name: str) -> None:
    """Deletes an uploaded file from the provider. Failures are only logged."""
    try:
        genai.delete_file(file_name)
        logger.info(f"Deleted remote file {file_name}.")
    except Exception as e:
        logger.warning(f"Could not delete remote file {file_name}: {e}")


# ============================
# Generation
# ============================

def generate_analysis(contents: List[Any], debug_label: str = "gemini_call") -> str:
    """
    Calls the configured Gemini model with the provided contents.

    Logs the raw response text, rejects blocked prompts and empty answers,
    and returns the unescaped, stripped response text.

    Raises:
        ProviderError: The call failed, was blocked or returned no text.
    """
    llm = get_gemini_model()
    logger.debug(f"Sending request to Gemini ({debug_label}, {len(contents)} parts)...")
    try:
        response = llm.generate_content(contents)
    except Exception as e:
        error_message = _describe_provider_error(e)
        logger.error(f"Error during LLM call ({debug_label}): {error_message}", exc_info=True)
        raise ProviderError(error_message) from e

    prompt_feedback = getattr(response, "prompt_feedback", None)
    block_reason = getattr(prompt_feedback, "block_reason", None) if prompt_feedback else None
    if block_reason:
        logger.warning(f"LLM call blocked by API ({debug_label}): {block_reason}")
        raise ProviderError(f"Content blocked by API: {block_reason}")

    try:
        raw_text = response.text
    except ValueError as e:
        # The SDK raises ValueError when no candidate carries text.
        logger.warning(f"Gemini response for {debug_label} had no text content: {e}")
        raw_text = None

    logger.info(f"--- RAW GEMINI OUTPUT ({debug_label}) START ---")
    logger.info(raw_text if raw_text is not None else "[Response object did not contain text content]")
    logger.info(f"--- RAW GEMINI OUTPUT ({debug_label}) END ---")

    result_text = html.unescape(raw_text).strip() if raw_text else ""
    if not result_text:
        raise ProviderError("The AI provider returned an empty response.")
    return result_text


# ============================
# Core Service Functions
# ============================

def analyze_audio(
    audio_bytes: bytes,
    mime_type: str,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> str:
    """
    Runs the full audio pipeline: save, upload, wait until ready, generate.

    The temporary file and the uploaded provider file are released on
    every exit path.

    Args:
        audio_bytes: Decoded audio content.
        mime_type: MIME type reported by the client.
        sleep: Sleep function used between status checks.

    Returns:
        The provider's free-text analysis.
    """
    start_time = time.time()
    _configure_provider()

    with storage.temporary_audio_file(audio_bytes, mime_type) as temp_path:
        handle = upload_audio_file(temp_path, mime_type)
        try:
            ready_handle = wait_for_file_ready(handle.name, sleep=sleep)
            file_part = {
                "file_data": {
                    "mime_type": ready_handle.mime_type or handle.mime_type or mime_type,
                    "file_uri": ready_handle.uri or handle.uri,
                }
            }
            analysis = generate_analysis(
                [file_part, config.PROMPT_AUDIO_ANALYSIS], debug_label="audio_analysis"
            )
        finally:
            delete_remote_file(handle.name)

    logger.info(
        f"Audio analysis finished in {time.time() - start_time:.2f}s "
        f"({len(analysis)} chars)."
    )
    return analysis


def analyze_transcript(transcript: str) -> str:
    """Sends a transcript to the provider in a single call and returns the symptom summary."""
    transcript = transcript.strip()
    if not transcript:
        raise ValueError("Transcript is required")

    start_time = time.time()
    _configure_provider()
    prompt = config.PROMPT_TEMPLATE_TRANSCRIPT.format(transcript=transcript)
    symptoms = generate_analysis([prompt], debug_label="transcript_analysis")
    logger.info(f"Transcript analysis finished in {time.time() - start_time:.2f}s.")
    return symptoms
