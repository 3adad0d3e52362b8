# recognition.py

import logging
import os
from functools import lru_cache
from typing import Tuple

import numpy as np
import soundfile as sf

logger = logging.getLogger(__name__)

WHISPER_MODEL_NAME = os.getenv("WHISPER_MODEL_NAME", "openai/whisper-base.en")


class RecognizerUnavailable(RuntimeError):
    """The local speech recognizer could not be loaded in this runtime."""


class RecognitionError(RuntimeError):
    """The local speech recognizer failed while processing the audio."""


class NoSpeechDetected(ValueError):
    """Recognition finished without producing any text."""

    def __init__(self, message: str = "No speech detected in the audio."):
        super().__init__(message)


@lru_cache(maxsize=1)
def get_whisper_model():
    """
    Loads and returns the Whisper ASR pipeline using transformers.
    Caches the loaded model. Raises RecognizerUnavailable if loading fails.
    """
    model_name = WHISPER_MODEL_NAME
    try:
        import torch
        from transformers import pipeline as transformers_pipeline

        # Prefer GPU if available, fall back to CPU otherwise
        device_index = 0 if torch.cuda.is_available() else -1
        logger.info(f"Loading Whisper model ({model_name}) on device {device_index}...")
        model_pipeline = transformers_pipeline(
            "automatic-speech-recognition",
            model=model_name,
            device=device_index,
        )
    except Exception as e:
        logger.error(f"Failed to load Whisper model '{model_name}': {e}", exc_info=True)
        raise RecognizerUnavailable(
            f"Speech recognition is not available: {e}"
        ) from e

    logger.info(f"Whisper model '{model_name}' loaded successfully.")
    return model_pipeline


def _read_audio(audio_filepath: str) -> Tuple[np.ndarray, int]:
    """Reads an audio file with soundfile, falling back to librosa for compressed formats."""
    try:
        audio_data, sample_rate = sf.read(audio_filepath, dtype="float32", always_2d=False)
        if audio_data.ndim > 1:
            audio_data = audio_data.mean(axis=1)
        return audio_data, sample_rate
    except sf.SoundFileError as sf_err:
        logger.warning(f"Soundfile failed to read audio ({sf_err}). Trying librosa...")

    try:
        import librosa

        audio_data, sample_rate = librosa.load(audio_filepath, sr=None, mono=True)
        return audio_data, sample_rate
    except Exception as lb_err:
        logger.error(f"Librosa also failed to read audio: {lb_err}")
        raise RecognitionError(f"Could not read audio format: {lb_err}") from lb_err


def recognize_speech(audio_filepath: str) -> str:
    """
    Transcribes an audio file locally with the Whisper pipeline.

    Returns:
        The recognised text.

    Raises:
        RecognizerUnavailable: The model could not be loaded.
        RecognitionError: The audio could not be read or inference failed.
        NoSpeechDetected: Recognition produced no text.
    """
    whisper_model = get_whisper_model()

    audio_data, sample_rate = _read_audio(audio_filepath)
    logger.info(f"Recognising speech from {os.path.basename(audio_filepath)} ({sample_rate} Hz)...")
    try:
        audio_input = {"array": audio_data.astype(np.float32), "sampling_rate": sample_rate}
        result = whisper_model(audio_input, chunk_length_s=30, batch_size=8)
    except Exception as e:
        logger.error(f"Error during Whisper model inference: {e}", exc_info=True)
        raise RecognitionError(f"Speech recognition error: {e}") from e

    transcript = (result or {}).get("text") or ""
    transcript = transcript.strip()
    if not transcript:
        logger.info("Recognition result is empty (no speech detected).")
        raise NoSpeechDetected()

    logger.info(f"Recognition successful ({len(transcript)} chars).")
    return transcript
