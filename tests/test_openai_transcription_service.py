from __future__ import annotations

from types import SimpleNamespace

import pytest

from brutus.services.transcription.base import TranscriptionError
from brutus.services.transcription.openai_client import OpenAITranscriptionService


class DummyResponseFormatError(Exception):
    """Fake error raised by the mocked OpenAI client for unsupported formats."""


def _make_service() -> tuple[OpenAITranscriptionService, list[tuple[str, str]]]:
    service = object.__new__(OpenAITranscriptionService)
    service.model = "test-model"
    service._openai_error_cls = DummyResponseFormatError

    calls: list[tuple[str, str]] = []

    class DummyTranscriptions:
        def create(self, model, file, response_format):
            calls.append((file[0], response_format))
            if response_format != "text":
                raise DummyResponseFormatError(
                    f"response_format '{response_format}' unsupported"
                )
            return "Mock transcript from text response"

    transcriptions = DummyTranscriptions()
    service.client = SimpleNamespace(
        audio=SimpleNamespace(transcriptions=transcriptions)
    )
    return service, calls


def test_transcribe_falls_back_to_text():
    service, calls = _make_service()

    result = service.transcribe(b"fake audio content", "audio/webm;codecs=opus")

    assert [call[1] for call in calls] == ["verbose_json", "json", "text"]
    assert calls[0][0] == "audio.webm"
    assert result.text == "Mock transcript from text response"
    assert result.segments == []


def test_transcribe_parses_verbose_json():
    service, _ = _make_service()

    class DummyTranscriptions:
        def create(self, model, file, response_format):
            return {
                "text": " so what does your budget look like? ",
                "duration": 4.5,
                "segments": [
                    {"start": 0.0, "end": 4.5, "text": " so what does your budget look like? "},
                ],
            }

    service.client.audio.transcriptions = DummyTranscriptions()

    result = service.transcribe(b"RIFF", "audio/wav")

    assert result.text == "so what does your budget look like?"
    assert result.duration_seconds == 4.5
    assert result.segments[0].text == "so what does your budget look like?"


def test_transcribe_wraps_provider_errors():
    service, _ = _make_service()

    class FailingTranscriptions:
        def create(self, model, file, response_format):
            raise DummyResponseFormatError("invalid file format")

    service.client.audio.transcriptions = FailingTranscriptions()

    with pytest.raises(TranscriptionError):
        service.transcribe(b"not audio", "audio/webm")

    assert service.transcribe_chunk(b"not audio", "audio/webm") is None


def test_transcribe_rejects_empty_audio():
    service, calls = _make_service()

    with pytest.raises(TranscriptionError):
        service.transcribe(b"", "audio/webm")
    assert calls == []
