"""Dummy transcription service for testing or offline usage."""

from __future__ import annotations

import wave
from typing import Optional

from ...data.models import TranscriptResult, TranscriptSegment
from ...utils.audio import decode_wave_bytes, is_silent, is_wave_payload
from .base import TranscriptionError, TranscriptionService


class DummyTranscriptionService(TranscriptionService):
    def __init__(self, text: Optional[str] = None) -> None:
        self.text = text

    def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> TranscriptResult:
        if not audio:
            raise TranscriptionError("Empty audio payload")

        duration = 0.0
        if is_wave_payload(audio):
            try:
                data, sample_rate = decode_wave_bytes(audio)
            except (wave.Error, EOFError) as exc:
                raise TranscriptionError(f"Unreadable WAV payload: {exc}") from exc
            duration = data.shape[0] / float(sample_rate) if sample_rate else 0.0
            if is_silent(data):
                return TranscriptResult(text="", duration_seconds=duration)

        text = self.text or (
            f"Dummy transcript for {len(audio)} bytes of {mime_type}. "
            "Replace with a real transcription backend."
        )
        return TranscriptResult(
            text=text,
            duration_seconds=duration,
            segments=[TranscriptSegment(start=0.0, end=duration or None, text=text)],
        )


__all__ = ["DummyTranscriptionService"]
