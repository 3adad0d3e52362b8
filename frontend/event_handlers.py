# event_handlers.py

import base64
import html
import json
import logging
import mimetypes
import os
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple

import gradio as gr
import requests

from . import recognition
from .formatting import (TRANSCRIPT_LABEL, extract_labeled_section,
                         render_analysis_markdown)

# --- Constants ---
# Status & General Icons
ICON_SUCCESS = "✅"
ICON_ERROR = "❌"
ICON_WARNING = "⚠️"
ICON_INFO = "ℹ️"
ICON_PENDING = "⏳"

# Specific Action/Element Icons
ICON_AUDIO = "🎤"
ICON_UPLOAD = "☁️"
ICON_ANALYSIS = "🩺"
ICON_TRANSCRIBE = "✍️"
ICON_REFRESH = "🔄"

# --- Backend API Configuration ---
# Read from environment variable or use default for local development
BACKEND_BASE_URL = os.getenv("BACKEND_BASE_URL", "http://localhost:8000").rstrip('/')
API_PREFIX = "/api"
ANALYZE_URL = f"{BACKEND_BASE_URL}{API_PREFIX}/AI"

# Standard request timeout in seconds
REQUEST_TIMEOUT_LONG = 300  # Upload + remote processing + generation

# --- Transcription Strategy ---
# 'remote': send the audio to the backend, the provider transcribes and analyzes it.
# 'local': recognise speech in this process, then send only the transcript.
STRATEGY_REMOTE = "remote"
STRATEGY_LOCAL = "local"
TRANSCRIPTION_STRATEGY = os.getenv("TRANSCRIPTION_STRATEGY", STRATEGY_REMOTE).strip().lower()

# --- Audio Validation ---
SUPPORTED_AUDIO_TYPES = ("audio/wav", "audio/mp3", "audio/mpeg", "audio/webm")
_EXTENSION_MIME_TYPES = {
    ".wav": "audio/wav",
    ".mp3": "audio/mpeg",
    ".webm": "audio/webm",
}
_MIME_ALIASES = {
    "audio/x-wav": "audio/wav",
    "audio/wave": "audio/wav",
    "audio/vnd.wave": "audio/wav",
}

# --- Logging Setup ---
logger = logging.getLogger(__name__)
# Ensure logging is configured externally (e.g., in app.py)


# --- Client Errors ---

class UnsupportedAudioType(ValueError):
    """The selected file is not one of the supported audio types."""


class AnalysisRequestError(RuntimeError):
    """The backend could not be reached or answered with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class AnalysisOutcome(NamedTuple):
    transcript: str
    analysis: str


# --- Capture & Encode ---

def detect_mime_type(audio_filepath: str) -> str:
    """Infers the MIME type of an audio file from its extension."""
    extension = os.path.splitext(audio_filepath)[1].lower()
    if extension in _EXTENSION_MIME_TYPES:
        return _EXTENSION_MIME_TYPES[extension]
    guessed, _ = mimetypes.guess_type(audio_filepath)
    guessed = guessed or "application/octet-stream"
    return _MIME_ALIASES.get(guessed, guessed)


def validate_audio_type(mime_type: str) -> None:
    """Raises UnsupportedAudioType unless the MIME type is on the allow-list."""
    if mime_type not in SUPPORTED_AUDIO_TYPES:
        raise UnsupportedAudioType(
            f"Unsupported file type: {mime_type}. "
            "Please use WAV, MP3, or WebM audio files."
        )


def encode_audio_file(audio_filepath: str) -> Tuple[str, str]:
    """
    Validates the file type, reads the whole file and base64-encodes it.
    Returns (base64_audio, mime_type).
    """
    mime_type = detect_mime_type(audio_filepath)
    validate_audio_type(mime_type)

    with open(audio_filepath, 'rb') as f:
        audio_bytes = f.read()
    audio_b64 = base64.b64encode(audio_bytes).decode("ascii")
    logger.info(
        f"{ICON_AUDIO} Encoded {os.path.basename(audio_filepath)} "
        f"({mime_type}, {len(audio_bytes)} bytes)"
    )
    return audio_b64, mime_type


# --- Backend Interaction Functions ---

def _handle_request_exception(e: Exception, context: str) -> str:
    """Handles common requests exceptions and returns a user-friendly error string."""
    if isinstance(e, requests.exceptions.Timeout):
        logger.error(f"{ICON_ERROR} Timeout during {context}.")
        return f"Request timed out during {context}."
    elif isinstance(e, requests.exceptions.ConnectionError):
        logger.error(f"{ICON_ERROR} Could not connect to backend during {context}: {e}")
        return f"Could not connect to the analysis server ({BACKEND_BASE_URL})."
    elif isinstance(e, requests.exceptions.RequestException):
        logger.error(f"{ICON_ERROR} Network Error during {context}. Details: {e}")
        return f"Network error during {context}: {e}"
    else:
        logger.error(f"{ICON_ERROR} Frontend Error during {context}. Details: {e}", exc_info=True)
        return f"Application error during {context}: {e}"


def _post_analysis_request(payload: Dict[str, Any], context: str) -> Dict[str, Any]:
    """POSTs a JSON payload to the analysis endpoint and returns the decoded body."""
    logger.info(f"{ICON_PENDING} Sending {context} request to {ANALYZE_URL}")
    try:
        response = requests.post(ANALYZE_URL, json=payload, timeout=REQUEST_TIMEOUT_LONG)
    except requests.exceptions.RequestException as e:
        raise AnalysisRequestError(_handle_request_exception(e, context)) from e

    if not response.ok:
        error_detail = response.reason or "Request failed"
        try:  # Try to parse the {error: ...} body from the backend
            error_detail = response.json().get('error', error_detail)
        except (json.JSONDecodeError, ValueError, AttributeError):
            pass
        logger.error(f"{ICON_ERROR} Server Error ({response.status_code}) during {context}: {error_detail}")
        raise AnalysisRequestError(
            f"Analysis failed ({response.status_code}): {error_detail}",
            status_code=response.status_code,
        )

    try:
        data = response.json()
    except ValueError as e:
        logger.error(f"{ICON_ERROR} Error decoding {context} response JSON: {e}")
        raise AnalysisRequestError(f"Invalid response from server during {context}.") from e
    logger.info(f"{ICON_SUCCESS} Received {context} response.")
    return data


def submit_audio(audio_b64: str, mime_type: str) -> str:
    """Sends base64 audio to the backend and returns the analysis text."""
    data = _post_analysis_request({"audio": audio_b64, "mimeType": mime_type}, "audio analysis")
    return data.get("analysis") or ""


def submit_transcript(transcript: str) -> str:
    """Sends a transcript to the backend and returns the symptom summary."""
    data = _post_analysis_request({"transcript": transcript}, "transcript analysis")
    return data.get("symptoms") or ""


# --- Transcription Strategies ---

def analyze_with_remote_provider(audio_filepath: str) -> AnalysisOutcome:
    """The provider transcribes and analyzes the uploaded audio."""
    audio_b64, mime_type = encode_audio_file(audio_filepath)
    analysis = submit_audio(audio_b64, mime_type)
    transcript = extract_labeled_section(analysis, TRANSCRIPT_LABEL)
    return AnalysisOutcome(transcript=transcript, analysis=analysis)


def analyze_with_local_recognition(audio_filepath: str) -> AnalysisOutcome:
    """Speech is recognised locally; only the transcript leaves this process."""
    transcript = recognition.recognize_speech(audio_filepath)
    if not transcript or not transcript.strip():
        raise recognition.NoSpeechDetected()
    logger.info(f"{ICON_TRANSCRIBE} Local transcript ready ({len(transcript)} chars).")
    symptoms = submit_transcript(transcript.strip())
    return AnalysisOutcome(transcript=transcript.strip(), analysis=symptoms)


ANALYSIS_STRATEGIES: Dict[str, Callable[[str], AnalysisOutcome]] = {
    STRATEGY_REMOTE: analyze_with_remote_provider,
    STRATEGY_LOCAL: analyze_with_local_recognition,
}


def run_analysis(audio_filepath: str, strategy: Optional[str] = None) -> AnalysisOutcome:
    """Runs the configured transcription strategy for one audio file."""
    strategy_name = (strategy or TRANSCRIPTION_STRATEGY).strip().lower()
    analyze = ANALYSIS_STRATEGIES.get(strategy_name)
    if analyze is None:
        raise ValueError(
            f"Unknown transcription strategy '{strategy_name}'. "
            f"Expected one of: {', '.join(ANALYSIS_STRATEGIES)}"
        )
    logger.info(f"{ICON_PENDING} Analyzing {os.path.basename(audio_filepath)} with '{strategy_name}' strategy.")
    return analyze(audio_filepath)


# --- UI Event Handlers ---

def _error_banner(message: str):
    return gr.update(value=f"{ICON_ERROR} **{html.escape(message)}**", visible=True)


def _hidden_banner():
    return gr.update(value="", visible=False)


def handle_file_selected(audio_filepath: Optional[str]):
    """
    Handles a new file selection: shows the file details and clears the previous
    result, error and transcript.
    Outputs: file_info, audio_preview, error_banner, transcript, analysis.
    """
    if not audio_filepath:
        return (
            f"*{ICON_INFO} No file selected.*", gr.update(value=None),
            _hidden_banner(), "", "",
        )

    filename = os.path.basename(audio_filepath)
    try:
        size_kb = os.path.getsize(audio_filepath) / 1024
    except OSError:
        size_kb = 0.0
    mime_type = detect_mime_type(audio_filepath)
    logger.info(f"📁 File selected: {filename} ({mime_type}, {size_kb:.1f} KB)")
    file_info = f"{ICON_AUDIO} **{html.escape(filename)}** · {html.escape(mime_type)} · {size_kb:.1f} KB"
    return file_info, gr.update(value=audio_filepath), _hidden_banner(), "", ""


def process_audio(audio_filepath: Optional[str], strategy: Optional[str], is_processing: bool):
    """
    Runs one analysis and yields UI updates as it progresses.
    Outputs: is_processing, status, error_banner, transcript, analysis, analyze_button.
    Only one analysis runs at a time; the processing flag is always reset at the end.
    """
    if is_processing:
        logger.warning(f"{ICON_WARNING} Analysis already in progress; ignoring request.")
        yield (
            True, f"{ICON_PENDING} Analysis already in progress...", gr.update(),
            gr.update(), gr.update(), gr.update(),
        )
        return

    if not audio_filepath:
        logger.error(f"{ICON_ERROR} No audio file selected")
        yield (
            False, f"{ICON_WARNING} No audio file selected.",
            _error_banner("Please select an audio file first."),
            gr.update(), gr.update(), gr.update(interactive=True),
        )
        return

    final_status = f"{ICON_ERROR} Analysis failed."
    error_update = _hidden_banner()
    transcript_text = ""
    analysis_md = ""
    closed = False
    try:
        yield (
            True, f"{ICON_PENDING} Processing audio...", _hidden_banner(), "", "",
            gr.update(interactive=False, value=f"{ICON_PENDING} Processing..."),
        )
        outcome = run_analysis(audio_filepath, strategy)
        transcript_text = outcome.transcript
        analysis_md = render_analysis_markdown(outcome.analysis)
        final_status = f"{ICON_SUCCESS} Analysis complete."
        logger.info(f"{ICON_SUCCESS} Processing complete for {os.path.basename(audio_filepath)}")
    except GeneratorExit:
        # The event was cancelled; a closed generator cannot yield again.
        closed = True
        logger.warning(f"{ICON_WARNING} Analysis cancelled for {os.path.basename(audio_filepath)}")
        raise
    except (UnsupportedAudioType, recognition.NoSpeechDetected) as e:
        logger.warning(f"{ICON_WARNING} {e}")
        error_update = _error_banner(str(e))
    except (AnalysisRequestError, recognition.RecognizerUnavailable, recognition.RecognitionError) as e:
        logger.error(f"{ICON_ERROR} Processing error: {e}")
        gr.Warning(str(e))
        error_update = _error_banner(str(e))
    except Exception as e:
        logger.error(f"{ICON_ERROR} Unexpected processing error: {e}", exc_info=True)
        error_update = _error_banner(f"Failed to process audio: {e}")
    finally:
        if not closed:
            yield (
                False, final_status, error_update, transcript_text, analysis_md,
                gr.update(interactive=True, value=f"{ICON_ANALYSIS} Analyze Audio"),
            )


def dismiss_error():
    """Hides the error banner."""
    return _hidden_banner()


def remove_file():
    """
    Clears the selected file along with the transcript and error.
    Outputs: file_input, file_info, audio_preview, error_banner, transcript.
    """
    logger.info("🗑️ Removing file...")
    return None, f"*{ICON_INFO} No file selected.*", gr.update(value=None), _hidden_banner(), ""


def handle_reset():
    """
    Resets the whole form for a new analysis.
    Outputs: file_input, file_info, audio_preview, error_banner, transcript, analysis, status.
    """
    logger.info(f"{ICON_REFRESH} Resetting form...")
    return (
        None, f"*{ICON_INFO} No file selected.*", gr.update(value=None),
        _hidden_banner(), "", "", f"{ICON_INFO} Idle",
    )
