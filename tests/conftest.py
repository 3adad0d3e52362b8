from types import SimpleNamespace
from typing import Any, List, Optional

import pytest

from backend.analyzer import config, services


def make_remote_file(state: str, name: str = "files/abc123") -> SimpleNamespace:
    return SimpleNamespace(
        name=name,
        uri=f"https://generativelanguage.googleapis.com/v1beta/{name}",
        mime_type="audio/wav",
        state=SimpleNamespace(name=state),
    )


class FakeProvider:
    """Stands in for the google.generativeai module functions the services call."""

    def __init__(self):
        self.states: List[str] = ["ACTIVE"]
        self.response_text: Optional[str] = (
            "**Key Symptoms:** headache, fever "
            "**Possible Conditions:** viral infection "
            "**Medical Recommendations:** rest and fluids"
        )
        self.generate_error: Optional[Exception] = None
        self.upload_error: Optional[Exception] = None
        self.uploads: List[dict] = []
        self.status_checks: List[str] = []
        self.deleted: List[str] = []
        self.generated: List[Any] = []
        self.configured_keys: List[str] = []

    # --- genai module functions ---
    def configure(self, api_key=None, **kwargs):
        self.configured_keys.append(api_key)

    def upload_file(self, path, mime_type=None, display_name=None, **kwargs):
        if self.upload_error:
            raise self.upload_error
        with open(path, "rb") as f:
            content = f.read()
        self.uploads.append({
            "path": path, "mime_type": mime_type,
            "display_name": display_name, "content": content,
        })
        return make_remote_file("PROCESSING")

    def get_file(self, name):
        self.status_checks.append(name)
        state = self.states.pop(0) if len(self.states) > 1 else self.states[0]
        return make_remote_file(state, name)

    def delete_file(self, name):
        self.deleted.append(name)

    # --- model ---
    def generate_content(self, contents):
        self.generated.append(contents)
        if self.generate_error:
            raise self.generate_error
        return SimpleNamespace(text=self.response_text, prompt_feedback=None)


@pytest.fixture
def provider(monkeypatch, tmp_path):
    fake = FakeProvider()
    monkeypatch.setenv("GEMINI_API_KEY", "test-key")
    monkeypatch.setattr(config, "TEMP_AUDIO_DIR", tmp_path)
    monkeypatch.setattr(config, "POLL_INITIAL_INTERVAL_SEC", 0.0)
    monkeypatch.setattr(services.genai, "configure", fake.configure)
    monkeypatch.setattr(services.genai, "upload_file", fake.upload_file)
    monkeypatch.setattr(services.genai, "get_file", fake.get_file)
    monkeypatch.setattr(services.genai, "delete_file", fake.delete_file)
    monkeypatch.setattr(services, "get_gemini_model", lambda: fake)
    return fake
