# backend/analyzer/config.py

import os
import tempfile
from pathlib import Path
from typing import Optional

# --- API Keys ---
# GEMINI_API_KEY is expected to be set as an environment variable.
# GOOGLE_API_KEY is accepted as a fallback for older deployments.
API_KEY_ENV_VARS = ("GEMINI_API_KEY", "GOOGLE_API_KEY")


def get_api_key() -> Optional[str]:
    """Reads the provider API key from the environment at call time."""
    for env_var in API_KEY_ENV_VARS:
        value = os.getenv(env_var)
        if value and value.strip():
            return value.strip()
    return None


# --- Model/Service Configurations ---
GEMINI_MODEL_NAME = os.getenv("GEMINI_MODEL_NAME", "gemini-2.5-flash")
UPLOAD_DISPLAY_NAME = "patient_audio"

# --- Audio Validation ---
SUPPORTED_AUDIO_TYPES = ("audio/wav", "audio/mp3", "audio/mpeg", "audio/webm")
DEFAULT_AUDIO_EXTENSION = "webm"

# --- Temporary Storage ---
# Uploaded audio is written here for the lifetime of a single request.
TEMP_AUDIO_DIR = Path(os.getenv("TEMP_AUDIO_DIR", tempfile.gettempdir()))

# --- File Status Polling ---
# Exponential backoff: 1s, 2s, 4s, 8s, 8s, ... until the deadline.
POLL_INITIAL_INTERVAL_SEC = float(os.getenv("POLL_INITIAL_INTERVAL_SEC", "1.0"))
POLL_BACKOFF_FACTOR = float(os.getenv("POLL_BACKOFF_FACTOR", "2.0"))
POLL_MAX_INTERVAL_SEC = float(os.getenv("POLL_MAX_INTERVAL_SEC", "8.0"))
POLL_TIMEOUT_SEC = float(os.getenv("POLL_TIMEOUT_SEC", "120.0"))
POLL_MAX_ATTEMPTS = int(os.getenv("POLL_MAX_ATTEMPTS", "30"))

# --- Prompt Templates ---
PROMPT_AUDIO_ANALYSIS = """
You are a clinical AI assistant.
Transcribe this patient audio recording.
Identify key symptoms, possible conditions, and give medical recommendations.
Return your findings in a clean, structured summary using exactly these headings:

**Transcript:** [the transcription of the recording]
**Key Symptoms:** [symptoms the patient reports]
**Possible Conditions:** [conditions consistent with the symptoms]
**Medical Recommendations:** [next steps, always including seeing a qualified professional]
"""

PROMPT_TEMPLATE_TRANSCRIPT = """
You are a clinical AI assistant. A patient described how they feel in the
transcript below.

**Patient Transcript:**
---
{transcript}
---

**Instructions:**
*   List the symptoms mentioned in the transcript as concise bullet points.
*   Do NOT invent symptoms that are not mentioned.
*   Then suggest possible conditions and medical recommendations.
*   Use exactly these headings:

**Key Symptoms:**
**Possible Conditions:**
**Medical Recommendations:**
"""

# --- Basic Checks (Run when module is loaded) ---
if not get_api_key():
    print(
        "Warning: GEMINI_API_KEY environment variable not set! "
        "Analysis requests will fail until it is provided."
    )
