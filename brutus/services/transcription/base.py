"""Transcription service abstractions."""

from __future__ import annotations

import abc
from typing import Optional

from ...data.models import TranscriptResult
from ...logging import get_logger

LOGGER = get_logger(__name__)


class TranscriptionError(RuntimeError):
    """Raised when the provider rejects or cannot process an audio payload."""


class TranscriptionService(abc.ABC):
    """Convert raw audio bytes into transcript results."""

    @abc.abstractmethod
    def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> TranscriptResult:
        raise NotImplementedError

    def transcribe_chunk(self, audio: bytes, mime_type: str = "audio/webm") -> Optional[str]:
        """Transcribe a short live chunk, returning ``None`` instead of raising."""

        try:
            result = self.transcribe(audio, mime_type)
        except Exception:
            LOGGER.exception("Chunk transcription failed")
            return None
        text = (result.text or "").strip()
        return text or None


__all__ = ["TranscriptionError", "TranscriptionService"]
