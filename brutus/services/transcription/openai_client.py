"""OpenAI powered transcription service."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from ...config import get_settings
from ...data.models import TranscriptResult, TranscriptSegment
from ...logging import get_logger
from ...utils.audio import extension_for_mime_type
from .base import TranscriptionError, TranscriptionService

LOGGER = get_logger(__name__)


class OpenAITranscriptionService(TranscriptionService):
    def __init__(self, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_transcription_model
        try:
            from openai import OpenAI, OpenAIError  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RuntimeError("openai package is required for OpenAITranscriptionService") from exc
        client_kwargs = {}
        if settings.openai_api_key:
            client_kwargs["api_key"] = settings.openai_api_key

        try:
            self.client = OpenAI(**client_kwargs)
            self._openai_error_cls = OpenAIError
        except OpenAIError as exc:
            message = str(exc)
            if "api_key" in message.lower():
                raise RuntimeError(
                    "OpenAI API key not configured. Set the OPENAI_API_KEY environment variable "
                    "or BRUTUS_OPENAI_API_KEY."
                ) from exc
            raise RuntimeError(f"Failed to initialise OpenAI transcription client: {message}") from exc

    def transcribe(self, audio: bytes, mime_type: str = "audio/webm") -> TranscriptResult:
        if not audio:
            raise TranscriptionError("Empty audio payload")

        filename = f"audio.{extension_for_mime_type(mime_type)}"
        LOGGER.info("Requesting OpenAI transcription for %d bytes of %s", len(audio), mime_type)
        response: Any = None
        formats = self._candidate_response_formats()
        for index, response_format in enumerate(formats):
            try:
                response = self.client.audio.transcriptions.create(
                    model=self.model,
                    file=(filename, audio),
                    response_format=response_format,
                )
                break
            except self._openai_error_cls as exc:
                if self._is_response_format_error(exc) and index < len(formats) - 1:
                    LOGGER.info(
                        "Response format '%s' is not supported by model '%s'; retrying with '%s'",
                        response_format,
                        self.model,
                        formats[index + 1],
                    )
                    continue
                raise TranscriptionError(f"Failed to transcribe audio: {exc}") from exc

        text, duration, segments = self._parse_transcription_response(response)
        return TranscriptResult(text=text, duration_seconds=duration, segments=segments)

    def _candidate_response_formats(self) -> List[str]:
        return ["verbose_json", "json", "text"]

    def _is_response_format_error(self, exc: Exception) -> bool:
        message = str(getattr(exc, "message", None) or exc)
        return "response_format" in message and "unsupported" in message.lower()

    def _parse_transcription_response(
        self, response: Any
    ) -> Tuple[str, float, List[TranscriptSegment]]:
        if response is None:
            return "", 0.0, []

        data: Optional[Dict[str, Any]] = None
        text = ""
        duration = 0.0
        segments_data: List[Any] = []

        if isinstance(response, str):
            return response.strip(), 0.0, []
        if isinstance(response, dict):
            data = response
        elif hasattr(response, "model_dump"):
            data = response.model_dump()

        if data is not None:
            text = str(data.get("text", "") or "")
            duration = float(data.get("duration") or 0.0)
            segments_source = data.get("segments", []) or []
            if isinstance(segments_source, list):
                segments_data = segments_source
        elif hasattr(response, "text"):
            text = str(getattr(response, "text", "") or "")
            duration = float(getattr(response, "duration", 0.0) or 0.0)
            possible_segments = getattr(response, "segments", None)
            if isinstance(possible_segments, list):
                segments_data = possible_segments

        segments: List[TranscriptSegment] = []
        for segment in segments_data:
            if isinstance(segment, dict):
                start = segment.get("start")
                end = segment.get("end")
                segment_text = str(segment.get("text") or "")
            else:
                start = getattr(segment, "start", None)
                end = getattr(segment, "end", None)
                segment_text = str(getattr(segment, "text", segment) or "")
            segments.append(TranscriptSegment(start=start, end=end, text=segment_text.strip()))

        return text.strip(), duration, segments


__all__ = ["OpenAITranscriptionService"]
