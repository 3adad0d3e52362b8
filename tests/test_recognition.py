import sys

import numpy as np
import pytest
import soundfile as sf

from frontend import recognition


class FakeWhisper:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.inputs = []

    def __call__(self, audio_input, **kwargs):
        self.inputs.append(audio_input)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def wav_path(tmp_path):
    path = tmp_path / "visit.wav"
    samples = 0.1 * np.sin(np.linspace(0, 2 * np.pi * 440, 16000)).astype(np.float32)
    sf.write(str(path), samples, 16000)
    return str(path)


@pytest.fixture
def whisper(monkeypatch):
    fake = FakeWhisper(result={"text": "  I have had a cough for a week.  "})
    monkeypatch.setattr(recognition, "get_whisper_model", lambda: fake)
    return fake


def test_recognize_speech_returns_trimmed_text(whisper, wav_path):
    assert recognition.recognize_speech(wav_path) == "I have had a cough for a week."

    (audio_input,) = whisper.inputs
    assert audio_input["sampling_rate"] == 16000
    assert audio_input["array"].dtype == np.float32


def test_stereo_audio_is_mixed_down_to_mono(whisper, tmp_path):
    path = tmp_path / "stereo.wav"
    sf.write(str(path), np.zeros((8000, 2), dtype=np.float32), 8000)

    recognition.recognize_speech(str(path))
    assert whisper.inputs[0]["array"].ndim == 1


@pytest.mark.parametrize("result", [{"text": "   "}, {"text": ""}, {}, None])
def test_blank_result_raises_no_speech(whisper, wav_path, result):
    whisper.result = result

    with pytest.raises(recognition.NoSpeechDetected, match="No speech detected in the audio."):
        recognition.recognize_speech(wav_path)


def test_inference_failure_raises_recognition_error(whisper, wav_path):
    whisper.error = RuntimeError("CUDA out of memory")

    with pytest.raises(recognition.RecognitionError, match="CUDA out of memory"):
        recognition.recognize_speech(wav_path)


def test_unreadable_audio_raises_recognition_error(whisper, tmp_path, monkeypatch):
    path = tmp_path / "broken.wav"
    path.write_bytes(b"definitely not audio")
    # Without librosa the soundfile failure has no fallback.
    monkeypatch.setitem(sys.modules, "librosa", None)

    with pytest.raises(recognition.RecognitionError, match="Could not read audio format"):
        recognition.recognize_speech(str(path))
    assert whisper.inputs == []


def test_model_load_failure_raises_recognizer_unavailable(monkeypatch, wav_path):
    monkeypatch.setitem(sys.modules, "torch", None)
    monkeypatch.setitem(sys.modules, "transformers", None)
    recognition.get_whisper_model.cache_clear()

    try:
        with pytest.raises(recognition.RecognizerUnavailable, match="not available"):
            recognition.recognize_speech(wav_path)
    finally:
        recognition.get_whisper_model.cache_clear()
