"""OpenAI-powered Analysis Oracle."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from ...config import get_settings
from ...data.models import (
    Call,
    CallAnalysis,
    FeedbackEntry,
    LiveFeedback,
    ProfileUpdate,
    UserProfile,
)
from ...logging import get_logger
from . import prompts
from .base import AnalysisOracle, OracleError
from .parsing import parse_model, parse_structured_response

LOGGER = get_logger(__name__)


class OpenAIAnalysisOracle(AnalysisOracle):
    def __init__(self, model: Optional[str] = None) -> None:
        settings = get_settings()
        self.model = model or settings.openai_oracle_model
        self.feedback_highlights = settings.feedback_highlights
        try:
            from openai import OpenAI, OpenAIError  # type: ignore
        except ImportError as exc:  # pragma: no cover - runtime dependency guard
            raise RuntimeError("openai package is required for OpenAIAnalysisOracle") from exc
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
            raise RuntimeError(f"Failed to initialise OpenAI oracle client: {message}") from exc

    def _complete(
        self,
        system: Optional[str],
        content: Any,
        max_output_tokens: int,
    ) -> str:
        messages: List[Dict[str, Any]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": content})
        try:
            response = self.client.responses.create(
                model=self.model,
                input=messages,
                max_output_tokens=max_output_tokens,
            )
        except self._openai_error_cls as exc:
            raise OracleError(f"OpenAI request failed: {exc}") from exc
        return response.output_text or ""

    def live_feedback(
        self,
        fragment: str,
        feedback_given: Sequence[FeedbackEntry],
        time_into_call: float,
        full_transcript: str,
        screenshot: Optional[str] = None,
        bad_habits: Sequence[str] = (),
    ) -> Optional[LiveFeedback]:
        text = prompts.live_feedback_prompt(
            fragment,
            feedback_given,
            time_into_call,
            full_transcript,
            has_screenshot=bool(screenshot),
        )
        content: Any = text
        if screenshot:
            content = [
                {"type": "input_image", "image_url": f"data:image/jpeg;base64,{screenshot}"},
                {"type": "input_text", "text": text},
            ]
        raw = self._complete(prompts.live_system_prompt(bad_habits), content, 300)
        payload = parse_structured_response(raw)
        if payload.get("skip"):
            return None
        return parse_model(raw, LiveFeedback)

    def analyze_call(
        self,
        transcript: str,
        duration_seconds: float,
        profile: Optional[UserProfile] = None,
    ) -> CallAnalysis:
        LOGGER.info("Requesting OpenAI call analysis (%d characters)", len(transcript))
        raw = self._complete(
            prompts.COACH_SYSTEM_PROMPT,
            prompts.full_analysis_prompt(transcript, duration_seconds, profile),
            2000,
        )
        return parse_model(raw, CallAnalysis)

    def update_profile(
        self,
        recent_calls: Sequence[Call],
        profile: Optional[UserProfile] = None,
    ) -> ProfileUpdate:
        raw = self._complete(
            prompts.COACH_SYSTEM_PROMPT,
            prompts.profile_update_prompt(recent_calls, profile, self.feedback_highlights),
            500,
        )
        return parse_model(raw, ProfileUpdate)

    def generate_note(self, fragment: str, trailing_context: str) -> Optional[str]:
        raw = self._complete(None, prompts.note_prompt(fragment, trailing_context), 200).strip()
        if not raw or raw == prompts.NOTE_SKIP_SENTINEL:
            return None
        return raw

    def chat(
        self,
        message: str,
        profile: Optional[UserProfile],
        recent_calls: Sequence[Call],
    ) -> str:
        system = f"{prompts.COACH_SYSTEM_PROMPT}\n\n{prompts.CHAT_SYSTEM_SUFFIX}"
        return self._complete(system, prompts.chat_prompt(message, profile, recent_calls), 500)

    def research(self, query: str) -> str:
        return self._complete(None, prompts.research_prompt(query), 2000)


__all__ = ["OpenAIAnalysisOracle"]
