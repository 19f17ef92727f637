"""Shared fixtures: a scripted Oracle, a controllable clock, and a real store."""

from __future__ import annotations

import io
import wave
from typing import Any, Callable, List, Optional, Sequence

import numpy as np
import pytest

from brutus.config import Settings
from brutus.core.analysis.aggregator import CallAnalysisAggregator
from brutus.core.pipeline.coordinator import SessionCoordinator
from brutus.core.tasks import BackgroundTasks
from brutus.data.models import (
    Call,
    CallAnalysis,
    CallFeedback,
    FeedbackEntry,
    LiveFeedback,
    ProfileUpdate,
    UserProfile,
)
from brutus.data.storage import CoachStore
from brutus.services.oracle.base import AnalysisOracle


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _next(queue: List[Any]) -> Any:
    item = queue.pop(0) if queue else None
    if isinstance(item, Exception):
        raise item
    return item


class ScriptedOracle(AnalysisOracle):
    """Returns queued answers in order; ``None`` once a queue runs dry."""

    def __init__(self) -> None:
        self.feedback: List[Any] = []
        self.notes: List[Any] = []
        self.analysis: Any = CallAnalysis(
            overall_score=72,
            talk_ratio=41,
            interruption_count=1,
            feedback=[CallFeedback(type="good", text="solid discovery")],
        )
        self.profile_update: Any = ProfileUpdate(
            bad_habits=["rushes the close"],
            strengths=["asks about budget"],
            summary="getting there.",
        )
        self.chat_reply: Any = "stop talking so much."
        self.research_reply: Any = "acme sells anvils."
        self.live_calls: List[dict] = []
        self.note_calls: List[tuple] = []
        self.profile_calls: List[Sequence[Call]] = []
        self.chat_calls: List[tuple] = []

    def live_feedback(
        self,
        fragment: str,
        feedback_given: Sequence[FeedbackEntry],
        time_into_call: float,
        full_transcript: str,
        screenshot: Optional[str] = None,
        bad_habits: Sequence[str] = (),
    ) -> Optional[LiveFeedback]:
        self.live_calls.append(
            {
                "fragment": fragment,
                "feedback_given": list(feedback_given),
                "time_into_call": time_into_call,
                "full_transcript": full_transcript,
                "screenshot": screenshot,
                "bad_habits": list(bad_habits),
            }
        )
        return _next(self.feedback)

    def analyze_call(
        self,
        transcript: str,
        duration_seconds: float,
        profile: Optional[UserProfile] = None,
    ) -> CallAnalysis:
        if isinstance(self.analysis, Exception):
            raise self.analysis
        return self.analysis

    def update_profile(
        self,
        recent_calls: Sequence[Call],
        profile: Optional[UserProfile] = None,
    ) -> ProfileUpdate:
        self.profile_calls.append(list(recent_calls))
        if isinstance(self.profile_update, Exception):
            raise self.profile_update
        return self.profile_update

    def generate_note(self, fragment: str, trailing_context: str) -> Optional[str]:
        self.note_calls.append((fragment, trailing_context))
        return _next(self.notes)

    def chat(
        self,
        message: str,
        profile: Optional[UserProfile],
        recent_calls: Sequence[Call],
    ) -> str:
        self.chat_calls.append((message, profile, list(recent_calls)))
        if isinstance(self.chat_reply, Exception):
            raise self.chat_reply
        return self.chat_reply

    def research(self, query: str) -> str:
        if isinstance(self.research_reply, Exception):
            raise self.research_reply
        return self.research_reply


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def store(tmp_path) -> CoachStore:
    store = CoachStore(tmp_path / "brutus.db")
    store.initialize()
    return store


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def oracle() -> ScriptedOracle:
    return ScriptedOracle()


@pytest.fixture
def tasks():
    runner = BackgroundTasks(max_workers=2)
    yield runner
    runner.shutdown()


@pytest.fixture
def aggregator(store, oracle, tasks, settings, clock) -> CallAnalysisAggregator:
    return CallAnalysisAggregator(store, oracle, tasks=tasks, settings=settings, clock=clock)


@pytest.fixture
def coordinator(store, oracle, aggregator, settings, clock) -> SessionCoordinator:
    return SessionCoordinator(store, oracle, aggregator, settings=settings, clock=clock)


@pytest.fixture
def wave_bytes() -> Callable[[np.ndarray, int], bytes]:
    """Encode a float array in ``[-1, 1]`` as 16-bit PCM WAV bytes."""

    def encode(data: np.ndarray, sample_rate: int) -> bytes:
        if data.ndim == 1:
            data = data[:, np.newaxis]
        int16 = (np.clip(data, -1.0, 1.0) * 32767.0).astype(np.int16)
        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wf:
            wf.setnchannels(data.shape[1])
            wf.setsampwidth(2)
            wf.setframerate(sample_rate)
            wf.writeframes(int16.tobytes())
        return buffer.getvalue()

    return encode
