from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AnalyzeRequest(BaseModel):
    """Request body for POST /api/AI. Either audio+mimeType or transcript."""
    audio: Optional[str] = None  # base64 encoded bytes
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    transcript: Optional[str] = None

    def is_audio_request(self) -> bool:
        return self.audio is not None or self.mime_type is not None


class AudioAnalysisResponse(BaseModel):
    success: bool = True
    analysis: str


class TranscriptAnalysisResponse(BaseModel):
    success: bool = True
    symptoms: str


class ErrorResponse(BaseModel):
    error: str


class FileStatus(str, Enum):
    UPLOADING = "uploading"
    PROCESSING = "processing"
    READY = "ready"
    FAILED = "failed"

    @classmethod
    def from_provider_state(cls, state_name: Optional[str]) -> "FileStatus":
        """Maps a provider file state name (e.g. 'ACTIVE') onto FileStatus."""
        return _PROVIDER_STATE_MAP.get((state_name or "").upper(), cls.UPLOADING)

    @property
    def is_terminal(self) -> bool:
        return self in (FileStatus.READY, FileStatus.FAILED)


_PROVIDER_STATE_MAP = {
    "STATE_UNSPECIFIED": FileStatus.UPLOADING,
    "PROCESSING": FileStatus.PROCESSING,
    "ACTIVE": FileStatus.READY,
    "FAILED": FileStatus.FAILED,
}


class RemoteFileHandle(BaseModel):
    """Provider-side reference to an uploaded file plus its processing status."""
    name: str
    uri: Optional[str] = None
    mime_type: Optional[str] = None
    status: FileStatus = FileStatus.UPLOADING
