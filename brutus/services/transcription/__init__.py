"""Transcription services."""

from .base import TranscriptionError, TranscriptionService
from .dummy import DummyTranscriptionService

__all__ = ["TranscriptionError", "TranscriptionService", "DummyTranscriptionService"]
