"""Heuristic Oracle for offline usage."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from ...data.models import (
    Call,
    CallAnalysis,
    CallFeedback,
    FeedbackEntry,
    LiveFeedback,
    ProfileUpdate,
    UserProfile,
)
from .base import AnalysisOracle

_WORD_RE = re.compile(r"[a-z']+")
_FILLERS = {"um", "uh", "like", "basically", "literally"}
_NOTABLE = ("budget", "next steps", "follow up", "decision", "competitor", "deadline", "$")
_REP_PREFIXES = ("rep:", "me:", "sales:", "salesperson:")


def _filler_count(text: str) -> int:
    words = _WORD_RE.findall(text.lower())
    return sum(1 for word in words if word in _FILLERS) + text.lower().count("you know")


def _talk_ratio(transcript: str) -> float:
    rep_words = 0
    total_words = 0
    for line in transcript.splitlines():
        stripped = line.strip().lower()
        if not stripped:
            continue
        count = len(stripped.split())
        total_words += count
        if stripped.startswith(_REP_PREFIXES):
            rep_words += count
    if total_words == 0 or rep_words == 0:
        return 50.0
    return round(100.0 * rep_words / total_words, 1)


class DummyAnalysisOracle(AnalysisOracle):
    def live_feedback(
        self,
        fragment: str,
        feedback_given: Sequence[FeedbackEntry],
        time_into_call: float,
        full_transcript: str,
        screenshot: Optional[str] = None,
        bad_habits: Sequence[str] = (),
    ) -> Optional[LiveFeedback]:
        lowered = fragment.lower()
        if "does that make sense" in lowered:
            return LiveFeedback(
                kind="warning",
                text="weak check-in. ask what they think instead of fishing for a yes.",
            )
        if "too expensive" in lowered or "price" in lowered:
            return LiveFeedback(
                kind="suggestion",
                text="ask them: 'what would solving this be worth to your team?'",
            )
        if _filler_count(fragment) >= 3:
            return LiveFeedback(kind="warning", text="filler words are piling up. slow down.")
        return None

    def analyze_call(
        self,
        transcript: str,
        duration_seconds: float,
        profile: Optional[UserProfile] = None,
    ) -> CallAnalysis:
        questions = transcript.count("?")
        fillers = _filler_count(transcript)
        talk_ratio = _talk_ratio(transcript)
        score = 50 + min(questions * 5, 30) - min(fillers * 2, 30)
        if talk_ratio > 60:
            score -= 10

        feedback: List[CallFeedback] = []
        if questions < 3:
            feedback.append(CallFeedback(type="critical", text="barely any questions. discovery skipped."))
        if fillers:
            feedback.append(CallFeedback(type="warning", text=f"{fillers} filler words. cut them."))
        if talk_ratio > 60:
            feedback.append(
                CallFeedback(type="warning", text=f"you talked {talk_ratio:.0f}% of the call.")
            )
        if not feedback:
            feedback.append(CallFeedback(type="insight", text="solid structure. keep asking."))

        return CallAnalysis(
            overall_score=score,
            talk_ratio=talk_ratio,
            interruption_count=transcript.count("--"),
            feedback=feedback,
            action_items=["ask three open questions before pitching"] if questions < 3 else [],
            overall_roast=f"{questions} questions in {int(duration_seconds // 60)} minutes. do better.",
        )

    def update_profile(
        self,
        recent_calls: Sequence[Call],
        profile: Optional[UserProfile] = None,
    ) -> ProfileUpdate:
        bad_habits = list(profile.bad_habits) if profile else []
        strengths = list(profile.strengths) if profile else []
        if not recent_calls:
            return ProfileUpdate(bad_habits=bad_habits, strengths=strengths)

        avg_score = sum(call.overall_score for call in recent_calls) / len(recent_calls)
        avg_ratio = sum(call.talk_ratio for call in recent_calls) / len(recent_calls)
        if avg_ratio > 60 and "talks too much" not in bad_habits:
            bad_habits.append("talks too much")
        if avg_score >= 70 and "asks good questions" not in strengths:
            strengths.append("asks good questions")
        improving = []
        if len(recent_calls) > 1 and recent_calls[0].overall_score > recent_calls[-1].overall_score:
            improving.append("overall call quality")
        return ProfileUpdate(
            bad_habits=bad_habits,
            strengths=strengths,
            areas_improving=improving,
            summary=f"averaging {avg_score:.0f}/100 over {len(recent_calls)} calls.",
        )

    def generate_note(self, fragment: str, trailing_context: str) -> Optional[str]:
        lowered = fragment.lower()
        if any(marker in lowered for marker in _NOTABLE) or re.search(r"\d", fragment):
            return fragment.strip()[:150]
        return None

    def chat(
        self,
        message: str,
        profile: Optional[UserProfile],
        recent_calls: Sequence[Call],
    ) -> str:
        total = profile.total_calls_analyzed if profile else 0
        return f"you've got {total} calls on record. stop asking me and go make another one."

    def research(self, query: str) -> str:
        return f"Offline research brief for '{query}'. Configure a real oracle backend for details."


__all__ = ["DummyAnalysisOracle"]
