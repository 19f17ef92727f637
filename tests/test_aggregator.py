import numpy as np
import pytest

from brutus.core.analysis.aggregator import (
    FALLBACK_CHAT_REPLY,
    AnalysisError,
    CallAnalysisAggregator,
    InvalidRequestError,
    InvalidTranscriptError,
)
from brutus.data.models import Call, CallAnalysis
from brutus.services.oracle.base import OracleError
from brutus.services.transcription.base import TranscriptionError
from brutus.services.transcription.dummy import DummyTranscriptionService

OWNER = "rep-1"

TRANSCRIPT = (
    "rep: hey, just following up on our last chat.\n"
    "prospect: right, we're still not sure about the price."
)


def test_analyze_transcript_creates_tagged_call(aggregator, store, tasks):
    report = aggregator.analyze_transcript(OWNER, TRANSCRIPT, 95)
    tasks.drain()

    assert report.call.tags == ["follow-up", "objection-handling", "pricing"]
    assert report.call.overall_score == 72
    assert report.call.duration_seconds == 95
    assert report.call.feedback[0].text == "solid discovery"
    assert store.fetch_call(OWNER, report.call.id) is not None
    assert store.fetch_profile(OWNER).total_calls_analyzed == 1


def test_short_transcript_is_rejected(aggregator, store):
    with pytest.raises(InvalidTranscriptError):
        aggregator.analyze_transcript(OWNER, "rep: hi\nprospect: bye")
    assert store.count_calls(OWNER) == 0


def test_analysis_failure_is_wrapped(aggregator, oracle, store):
    oracle.analysis = OracleError("rate limited")

    with pytest.raises(AnalysisError, match="Failed to analyze call"):
        aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    assert store.count_calls(OWNER) == 0


def test_analyze_audio_uses_transcription(store, oracle, tasks, settings, clock):
    aggregator = CallAnalysisAggregator(
        store,
        oracle,
        tasks=tasks,
        transcription=DummyTranscriptionService(text=TRANSCRIPT),
        settings=settings,
        clock=clock,
    )

    report = aggregator.analyze_audio(OWNER, b"\x1aE\xdf\xa3recording", "audio/webm")

    assert report.call.transcript == TRANSCRIPT


def test_silent_audio_is_too_short(store, oracle, tasks, settings, clock, wave_bytes):
    aggregator = CallAnalysisAggregator(
        store,
        oracle,
        tasks=tasks,
        transcription=DummyTranscriptionService(text=TRANSCRIPT),
        settings=settings,
        clock=clock,
    )
    silence = wave_bytes(np.zeros(16000, dtype=np.float32), 16000)

    with pytest.raises(InvalidTranscriptError):
        aggregator.analyze_audio(OWNER, silence, "audio/wav")


def test_analyze_audio_without_backend(aggregator):
    with pytest.raises(TranscriptionError):
        aggregator.analyze_audio(OWNER, b"audio", "audio/webm")


def test_refresh_profile_uses_recent_calls(aggregator, store, oracle, clock, settings):
    for index, score in enumerate([40, 60, 80]):
        clock.advance(10)
        oracle.analysis = CallAnalysis(overall_score=score, talk_ratio=30 + index * 10)
        aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    aggregator.tasks.drain()

    profile = aggregator.refresh_profile(OWNER)

    assert profile.score_avg == pytest.approx(60.0)
    assert profile.talk_ratio_avg == pytest.approx(40.0)
    assert profile.strengths == ["asks about budget"]
    assert profile.total_calls_analyzed == 3
    assert [call.overall_score for call in oracle.profile_calls[-1]] == [80, 60, 40]


def test_refresh_profile_window_is_bounded(aggregator, store, oracle, clock, settings):
    for _ in range(settings.profile_history_size + 2):
        clock.advance(1)
        aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    aggregator.tasks.drain()

    aggregator.refresh_profile(OWNER)

    assert len(oracle.profile_calls[-1]) == settings.profile_history_size


def test_refresh_profile_without_calls_is_noop(aggregator, store, oracle):
    assert aggregator.refresh_profile(OWNER) is None
    assert oracle.profile_calls == []
    assert store.fetch_profile(OWNER) is None


def test_background_refresh_failure_does_not_break_call(aggregator, store, oracle, tasks):
    oracle.profile_update = OracleError("down")

    report = aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    tasks.drain()

    assert store.fetch_call(OWNER, report.call.id) is not None
    assert store.fetch_profile(OWNER).summary == ""


def test_delete_call_decrements_counter(aggregator, store, tasks):
    first = aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    tasks.drain()

    assert aggregator.delete_call(OWNER, first.call.id)
    assert not aggregator.delete_call(OWNER, first.call.id)
    assert not aggregator.delete_call("rep-2", first.call.id)
    assert store.fetch_profile(OWNER).total_calls_analyzed == 1


def test_chat_uses_profile_and_last_calls(aggregator, oracle, clock, tasks, settings):
    for _ in range(5):
        clock.advance(1)
        aggregator.analyze_transcript(OWNER, TRANSCRIPT)
    tasks.drain()

    reply = aggregator.chat(OWNER, "  how am I doing?  ")

    assert reply == "stop talking so much."
    message, profile, calls = oracle.chat_calls[0]
    assert message == "how am I doing?"
    assert profile.total_calls_analyzed == 5
    assert len(calls) == settings.chat_history_size


def test_chat_falls_back_in_character(aggregator, oracle):
    oracle.chat_reply = OracleError("down")
    assert aggregator.chat(OWNER, "roast me") == FALLBACK_CHAT_REPLY

    oracle.chat_reply = "   "
    assert aggregator.chat(OWNER, "roast me") == FALLBACK_CHAT_REPLY


def test_chat_requires_message(aggregator):
    with pytest.raises(InvalidRequestError):
        aggregator.chat(OWNER, " ")


def _stored_call(store, call_id, created_at, score):
    store.create_call(
        Call(
            id=call_id,
            owner=OWNER,
            transcript="rep: hello\nprospect: hi",
            overall_score=score,
            created_at=created_at,
        )
    )


def test_dashboard_weekly_window_is_inclusive(aggregator, store, clock):
    clock.advance(30 * 86400)
    week_ago = clock.now - 7 * 86400
    _stored_call(store, "too-old", week_ago - 1, 10)
    _stored_call(store, "edge", week_ago, 40)
    _stored_call(store, "recent", clock.now - 60, 80)

    dashboard = aggregator.dashboard(OWNER)

    assert dashboard.weekly_call_count == 2
    assert dashboard.weekly_scores == [(week_ago, 40), (clock.now - 60, 80)]
    assert [call.id for call in dashboard.recent_calls] == ["recent", "edge", "too-old"]
    assert dashboard.profile.total_calls_analyzed == 3


def test_dashboard_recent_calls_are_capped(aggregator, store, clock, settings):
    for index in range(settings.dashboard_recent_calls + 2):
        _stored_call(store, f"c{index}", clock.now - 1000 + index, 50)

    dashboard = aggregator.dashboard(OWNER)

    assert len(dashboard.recent_calls) == settings.dashboard_recent_calls
    assert dashboard.recent_calls[0].id == f"c{settings.dashboard_recent_calls + 1}"


def test_dashboard_without_calls(aggregator):
    dashboard = aggregator.dashboard(OWNER)

    assert dashboard.profile is None
    assert dashboard.recent_calls == []
    assert dashboard.weekly_call_count == 0
    assert dashboard.weekly_scores == []
