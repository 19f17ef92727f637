"""Full-call scoring and rolling coaching profiles."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

import numpy as np

from ...config import Settings, get_settings
from ...data.models import Call, CallAnalysis, UserProfile
from ...data.storage import CoachStore
from ...logging import get_logger
from ...services.oracle.base import AnalysisOracle
from ...services.transcription.base import TranscriptionError, TranscriptionService
from ..tasks import BackgroundTasks
from .tags import detect_call_tags

LOGGER = get_logger(__name__)

FALLBACK_CHAT_REPLY = (
    "something went wrong on my end. try again, and maybe this time "
    "i'll actually be able to roast you properly."
)


class InvalidRequestError(ValueError):
    """Raised when a caller supplies missing or malformed input."""


class InvalidTranscriptError(InvalidRequestError):
    """Raised when a transcript is too short to be worth analysing."""


class AnalysisError(RuntimeError):
    """Raised when a full-call analysis cannot be produced."""


@dataclass
class CallReport:
    call: Call
    analysis: CallAnalysis


@dataclass
class Dashboard:
    profile: Optional[UserProfile]
    recent_calls: List[Call]
    weekly_call_count: int
    # (created_at, overall_score), oldest first.
    weekly_scores: List[Tuple[float, float]]


class CallAnalysisAggregator:
    """Scores finished calls and folds them into the owner's profile."""

    def __init__(
        self,
        store: CoachStore,
        oracle: AnalysisOracle,
        tasks: Optional[BackgroundTasks] = None,
        transcription: Optional[TranscriptionService] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.oracle = oracle
        self.tasks = tasks or BackgroundTasks(max_workers=self.settings.background_workers)
        self.transcription = transcription
        self._clock = clock

    def analyze_full_call(
        self, owner: str, transcript: str, duration_seconds: float
    ) -> CallAnalysis:
        profile = self.store.fetch_profile(owner)
        try:
            return self.oracle.analyze_call(transcript, duration_seconds, profile)
        except Exception as exc:
            LOGGER.error("Full-call analysis failed for %s: %s", owner, exc)
            raise AnalysisError(f"Failed to analyze call: {exc}") from exc

    def build_call(
        self,
        owner: str,
        transcript: str,
        duration_seconds: float,
        analysis: CallAnalysis,
    ) -> Call:
        return Call(
            id=uuid.uuid4().hex,
            owner=owner,
            transcript=transcript,
            duration_seconds=int(duration_seconds),
            talk_ratio=analysis.talk_ratio,
            interruption_count=analysis.interruption_count,
            overall_score=analysis.overall_score,
            feedback=list(analysis.feedback),
            tags=sorted(detect_call_tags(transcript)),
            created_at=self._clock(),
        )

    def record_call(
        self,
        owner: str,
        transcript: str,
        duration_seconds: float,
        analysis: CallAnalysis,
    ) -> Call:
        call = self.build_call(owner, transcript, duration_seconds, analysis)
        self.store.create_call(call)
        LOGGER.info("Saved call %s for %s (score %.0f)", call.id, owner, call.overall_score)
        self.schedule_profile_refresh(owner)
        return call

    def _require_substantial(self, transcript: Optional[str]) -> str:
        text = (transcript or "").strip()
        minimum = self.settings.min_call_transcript_chars
        if len(text) < minimum:
            raise InvalidTranscriptError(
                f"Transcript too short to analyze (minimum {minimum} characters)"
            )
        return text

    def analyze_transcript(
        self, owner: str, transcript: str, duration_seconds: float = 0
    ) -> CallReport:
        text = self._require_substantial(transcript)
        analysis = self.analyze_full_call(owner, text, duration_seconds)
        call = self.record_call(owner, text, duration_seconds, analysis)
        return CallReport(call=call, analysis=analysis)

    def analyze_audio(self, owner: str, audio: bytes, mime_type: str) -> CallReport:
        if self.transcription is None:
            raise TranscriptionError("No transcription backend configured")
        result = self.transcription.transcribe(audio, mime_type)
        return self.analyze_transcript(owner, result.text, result.duration_seconds)

    def schedule_profile_refresh(self, owner: str) -> None:
        self.tasks.submit(f"refresh-profile:{owner}", self.refresh_profile, owner)

    def refresh_profile(self, owner: str) -> Optional[UserProfile]:
        calls = self.store.list_calls(owner, limit=self.settings.profile_history_size)
        if not calls:
            return None

        profile = self.store.fetch_profile(owner)
        score_avg = float(np.mean([call.overall_score for call in calls]))
        talk_ratio_avg = float(np.mean([call.talk_ratio for call in calls]))
        update = self.oracle.update_profile(calls, profile)

        updated = self.store.update_profile(
            owner,
            talk_ratio_avg=talk_ratio_avg,
            score_avg=score_avg,
            bad_habits=update.bad_habits,
            strengths=update.strengths,
            areas_improving=update.areas_improving,
            summary=update.summary,
        )
        LOGGER.info("Updated profile summary for %s from %d calls", owner, len(calls))
        return updated

    def delete_call(self, owner: str, call_id: str) -> bool:
        deleted = self.store.delete_call(owner, call_id)
        if deleted:
            LOGGER.info("Deleted call %s for %s", call_id, owner)
        return deleted

    def dashboard(self, owner: str) -> Dashboard:
        """Profile, latest calls, and the score trend over the recent window."""

        since = self._clock() - self.settings.dashboard_window_days * 86400
        window = self.store.list_calls(owner, since=since)
        window.reverse()
        return Dashboard(
            profile=self.store.fetch_profile(owner),
            recent_calls=self.store.list_calls(owner, limit=self.settings.dashboard_recent_calls),
            weekly_call_count=len(window),
            weekly_scores=[(call.created_at, call.overall_score) for call in window],
        )

    def chat(self, owner: str, message: str) -> str:
        if not message or not message.strip():
            raise InvalidRequestError("Message is required")
        try:
            profile = self.store.fetch_profile(owner)
            recent = self.store.list_calls(owner, limit=self.settings.chat_history_size)
            reply = self.oracle.chat(message.strip(), profile, recent)
        except Exception:
            LOGGER.exception("Chat failed for %s", owner)
            return FALLBACK_CHAT_REPLY
        return reply.strip() or FALLBACK_CHAT_REPLY


__all__ = [
    "AnalysisError",
    "CallAnalysisAggregator",
    "CallReport",
    "Dashboard",
    "FALLBACK_CHAT_REPLY",
    "InvalidRequestError",
    "InvalidTranscriptError",
]
