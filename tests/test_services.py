import base64

import pytest

from backend.analyzer import config, services
from backend.analyzer.schemas import FileStatus


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


# ============================
# Polling
# ============================

def test_poll_sleeps_once_per_processing_status(provider):
    provider.states = ["PROCESSING", "PROCESSING", "ACTIVE"]
    clock = FakeClock()

    handle = services.wait_for_file_ready(
        "files/abc123", sleep=clock.sleep, clock=clock,
        initial_interval=1.0, backoff_factor=2.0, max_interval=8.0, timeout=120, max_attempts=30,
    )

    assert handle.status == FileStatus.READY
    assert clock.sleeps == [1.0, 2.0]
    assert len(provider.status_checks) == 3


def test_poll_returns_immediately_when_ready(provider):
    clock = FakeClock()
    handle = services.wait_for_file_ready("files/abc123", sleep=clock.sleep, clock=clock)
    assert handle.status == FileStatus.READY
    assert clock.sleeps == []


def test_poll_raises_when_file_failed(provider):
    provider.states = ["PROCESSING", "FAILED"]
    clock = FakeClock()

    with pytest.raises(services.FileProcessingFailed, match="File processing failed"):
        services.wait_for_file_ready(
            "files/abc123", sleep=clock.sleep, clock=clock, initial_interval=1.0,
        )
    assert clock.sleeps == [1.0]


def test_poll_backoff_is_capped(provider):
    provider.states = ["PROCESSING"] * 5 + ["ACTIVE"]
    clock = FakeClock()

    services.wait_for_file_ready(
        "files/abc123", sleep=clock.sleep, clock=clock,
        initial_interval=1.0, backoff_factor=2.0, max_interval=3.0, timeout=600, max_attempts=30,
    )
    assert clock.sleeps == [1.0, 2.0, 3.0, 3.0, 3.0]


def test_poll_times_out_at_deadline(provider):
    provider.states = ["PROCESSING"]
    clock = FakeClock()

    with pytest.raises(services.FileProcessingTimeout):
        services.wait_for_file_ready(
            "files/abc123", sleep=clock.sleep, clock=clock,
            initial_interval=1.0, backoff_factor=2.0, max_interval=8.0, timeout=5, max_attempts=30,
        )
    # 1s and 2s fit inside the 5s deadline, the next 4s sleep would not.
    assert clock.sleeps == [1.0, 2.0]


def test_poll_times_out_after_max_attempts(provider):
    provider.states = ["PROCESSING"]
    clock = FakeClock()

    with pytest.raises(services.FileProcessingTimeout):
        services.wait_for_file_ready(
            "files/abc123", sleep=clock.sleep, clock=clock,
            initial_interval=0.5, backoff_factor=1.0, timeout=600, max_attempts=3,
        )
    assert len(provider.status_checks) == 3
    assert len(clock.sleeps) == 2


def test_timeout_is_not_a_provider_error():
    assert not issubclass(services.FileProcessingTimeout, services.ProviderError)
    assert issubclass(services.FileProcessingFailed, services.ProviderError)


# ============================
# Audio pipeline
# ============================

def test_analyze_audio_uploads_generates_and_cleans_up(provider, tmp_path):
    analysis = services.analyze_audio(b"RIFF....WAVE", "audio/wav")

    assert "Key Symptoms" in analysis
    assert len(provider.uploads) == 1
    upload = provider.uploads[0]
    assert upload["content"] == b"RIFF....WAVE"
    assert upload["mime_type"] == "audio/wav"
    assert upload["display_name"] == config.UPLOAD_DISPLAY_NAME
    assert upload["path"].endswith(".wav")

    file_part, prompt = provider.generated[0]
    assert file_part["file_data"]["file_uri"].endswith("files/abc123")
    assert prompt == config.PROMPT_AUDIO_ANALYSIS

    assert provider.deleted == ["files/abc123"]
    assert list(tmp_path.iterdir()) == []


def test_analyze_audio_cleans_up_when_generation_fails(provider, tmp_path):
    provider.generate_error = RuntimeError("quota exceeded")

    with pytest.raises(services.ProviderError, match="quota exceeded"):
        services.analyze_audio(b"audio-bytes", "audio/webm")

    assert list(tmp_path.iterdir()) == []
    assert provider.deleted == ["files/abc123"]


def test_analyze_audio_cleans_up_when_upload_fails(provider, tmp_path):
    provider.upload_error = RuntimeError("upload rejected")

    with pytest.raises(services.ProviderError, match="upload rejected"):
        services.analyze_audio(b"audio-bytes", "audio/mpeg")

    assert list(tmp_path.iterdir()) == []
    assert provider.generated == []


def test_analyze_audio_never_generates_for_failed_file(provider, tmp_path):
    provider.states = ["PROCESSING", "FAILED"]

    with pytest.raises(services.FileProcessingFailed):
        services.analyze_audio(b"audio-bytes", "audio/wav")

    assert provider.generated == []
    assert list(tmp_path.iterdir()) == []


def test_analyze_audio_requires_api_key(provider, monkeypatch):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)

    with pytest.raises(services.ProviderError, match="GEMINI_API_KEY"):
        services.analyze_audio(b"audio-bytes", "audio/wav")
    assert provider.uploads == []


def test_invalid_api_key_message_is_friendly(provider):
    provider.generate_error = RuntimeError("400 API key not valid. Please pass a valid API key.")
    with pytest.raises(services.ProviderError, match="Invalid Google API Key provided."):
        services.analyze_transcript("I have a cough")


# ============================
# Transcript pipeline & generation
# ============================

def test_analyze_transcript_embeds_transcript_in_prompt(provider):
    result = services.analyze_transcript("  I have a headache and fever  ")

    assert result.startswith("**Key Symptoms:**")
    (prompt,) = provider.generated[0]
    assert "I have a headache and fever" in prompt
    assert provider.uploads == []
    assert provider.status_checks == []


def test_analyze_transcript_rejects_blank_text(provider):
    with pytest.raises(ValueError, match="Transcript is required"):
        services.analyze_transcript("   ")
    assert provider.generated == []


def test_generate_analysis_rejects_blocked_prompt(provider, monkeypatch):
    from types import SimpleNamespace

    blocked = SimpleNamespace(
        text="", prompt_feedback=SimpleNamespace(block_reason="SAFETY"),
    )
    monkeypatch.setattr(provider, "generate_content", lambda contents: blocked)

    with pytest.raises(services.ProviderError, match="Content blocked by API: SAFETY"):
        services.generate_analysis(["prompt"])


def test_generate_analysis_rejects_empty_response(provider):
    provider.response_text = "   "
    with pytest.raises(services.ProviderError, match="empty response"):
        services.generate_analysis(["prompt"])


def test_generate_analysis_unescapes_html(provider):
    provider.response_text = "  Fever &amp; chills  "
    assert services.generate_analysis(["prompt"]) == "Fever & chills"


# ============================
# Payload decoding & status mapping
# ============================

def test_decode_audio_payload_round_trip():
    encoded = base64.b64encode(b"\x00\x01audio").decode()
    assert services.decode_audio_payload(encoded) == b"\x00\x01audio"


def test_decode_audio_payload_accepts_data_url():
    encoded = base64.b64encode(b"webm-bytes").decode()
    assert services.decode_audio_payload(f"data:audio/webm;base64,{encoded}") == b"webm-bytes"


@pytest.mark.parametrize("payload", ["not base64!!", ""])
def test_decode_audio_payload_rejects_bad_input(payload):
    with pytest.raises(ValueError):
        services.decode_audio_payload(payload)


@pytest.mark.parametrize(
    "state, expected",
    [
        ("STATE_UNSPECIFIED", FileStatus.UPLOADING),
        ("PROCESSING", FileStatus.PROCESSING),
        ("ACTIVE", FileStatus.READY),
        ("FAILED", FileStatus.FAILED),
        (None, FileStatus.UPLOADING),
    ],
)
def test_file_status_from_provider_state(state, expected):
    assert FileStatus.from_provider_state(state) == expected


def test_decode_audio_payload_accepts_line_wrapped_base64():
    audio = bytes(range(256)) * 2
    wrapped = base64.encodebytes(audio).decode()
    assert "\n" in wrapped
    assert services.decode_audio_payload(wrapped) == audio
