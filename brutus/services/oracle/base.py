"""Analysis Oracle abstractions."""

from __future__ import annotations

import abc
from typing import Optional, Sequence

from ...data.models import (
    Call,
    CallAnalysis,
    FeedbackEntry,
    LiveFeedback,
    ProfileUpdate,
    UserProfile,
)


class OracleError(RuntimeError):
    """Raised when the Oracle cannot be reached or refuses a request."""


class OracleParseError(OracleError):
    """Raised when an Oracle response does not contain the expected structure."""

    def __init__(self, message: str, raw: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw = raw


class AnalysisOracle(abc.ABC):
    """Reasoning capability used for live nudges, call scoring, and profiles."""

    @abc.abstractmethod
    def live_feedback(
        self,
        fragment: str,
        feedback_given: Sequence[FeedbackEntry],
        time_into_call: float,
        full_transcript: str,
        screenshot: Optional[str] = None,
        bad_habits: Sequence[str] = (),
    ) -> Optional[LiveFeedback]:
        """Return a feedback item, or ``None`` when the fragment needs no comment."""

    @abc.abstractmethod
    def analyze_call(
        self,
        transcript: str,
        duration_seconds: float,
        profile: Optional[UserProfile] = None,
    ) -> CallAnalysis:
        raise NotImplementedError

    @abc.abstractmethod
    def update_profile(
        self,
        recent_calls: Sequence[Call],
        profile: Optional[UserProfile] = None,
    ) -> ProfileUpdate:
        raise NotImplementedError

    @abc.abstractmethod
    def generate_note(self, fragment: str, trailing_context: str) -> Optional[str]:
        """Return a short note, or ``None`` when nothing notable happened."""

    @abc.abstractmethod
    def chat(
        self,
        message: str,
        profile: Optional[UserProfile],
        recent_calls: Sequence[Call],
    ) -> str:
        raise NotImplementedError

    @abc.abstractmethod
    def research(self, query: str) -> str:
        raise NotImplementedError


__all__ = ["AnalysisOracle", "OracleError", "OracleParseError"]
