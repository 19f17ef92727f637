"""Factories for runtime service selection."""

from __future__ import annotations

from typing import Optional

from .oracle.base import AnalysisOracle
from .oracle.dummy import DummyAnalysisOracle
from .transcription.base import TranscriptionService
from .transcription.dummy import DummyTranscriptionService


class ServiceConfigurationError(ValueError):
    """Raised when an unknown backend is requested."""


def _normalise(name: Optional[str]) -> str:
    if not name:
        return "none"
    return name.strip().lower()


def resolve_transcription_backend(name: Optional[str]) -> Optional[TranscriptionService]:
    backend = _normalise(name)
    if backend in {"", "none", "off"}:
        return None
    if backend == "dummy":
        return DummyTranscriptionService()
    if backend == "openai":
        from .transcription.openai_client import OpenAITranscriptionService

        return OpenAITranscriptionService()
    raise ServiceConfigurationError(f"Unknown transcription backend: {name}")


def resolve_oracle_backend(name: Optional[str]) -> AnalysisOracle:
    backend = _normalise(name)
    if backend in {"", "none", "off", "dummy"}:
        return DummyAnalysisOracle()
    if backend == "openai":
        from .oracle.openai_oracle import OpenAIAnalysisOracle

        return OpenAIAnalysisOracle()
    raise ServiceConfigurationError(f"Unknown oracle backend: {name}")


__all__ = [
    "ServiceConfigurationError",
    "resolve_oracle_backend",
    "resolve_transcription_backend",
]
