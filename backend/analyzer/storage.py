# backend/analyzer/storage.py
import logging
import os
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from . import config

# Set up logger
logger = logging.getLogger(__name__)


# --- Helper Functions ---
def extension_for_mime_type(mime_type: Optional[str]) -> str:
    """
    Infers a file extension from a MIME type ('audio/mpeg' -> 'mpeg').
    Falls back to the default extension when the subtype is missing.
    """
    subtype = ""
    if mime_type and "/" in mime_type:
        subtype = mime_type.split("/", 1)[1]
    # Drop parameters such as 'audio/webm;codecs=opus'
    subtype = subtype.split(";", 1)[0].strip()
    safe_subtype = "".join(c for c in subtype if c.isalnum() or c in ('-', '_'))
    return safe_subtype or config.DEFAULT_AUDIO_EXTENSION


def build_temp_audio_path(mime_type: Optional[str], directory: Optional[Path] = None) -> Path:
    """
    Constructs a unique path for a temporary audio file.
    The name is derived from the current time plus a random suffix so
    concurrent requests never share a file.
    """
    base_dir = Path(directory) if directory is not None else config.TEMP_AUDIO_DIR
    timestamp_ms = int(time.time() * 1000)
    filename = f"audio_{timestamp_ms}_{uuid.uuid4().hex[:8]}.{extension_for_mime_type(mime_type)}"
    return base_dir / filename


def remove_file_quietly(file_path: Path) -> None:
    """Removes a file if present, logging (not raising) on failure."""
    try:
        if file_path.exists():
            os.remove(file_path)
            logger.info(f"Removed temp audio file: {file_path}")
    except OSError as rm_err:
        logger.error(f"Error removing temp file {file_path}: {rm_err}")


# --- Scoped Resources ---
@contextmanager
def temporary_audio_file(
    audio_bytes: bytes, mime_type: Optional[str], directory: Optional[Path] = None
) -> Iterator[Path]:
    """
    Writes audio bytes to a uniquely named temporary file and yields its path.

    The file is removed when the block exits, whether it completed normally
    or raised.
    """
    file_path = build_temp_audio_path(mime_type, directory)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    try:
        with open(file_path, "wb") as f:
            f.write(audio_bytes)
        logger.info(f"Saved {len(audio_bytes)} bytes of audio to {file_path}")
        yield file_path
    finally:
        remove_file_quietly(file_path)
