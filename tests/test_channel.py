import base64
import json

import pytest

from brutus.core.pipeline.channel import LiveChannel
from brutus.data.models import LiveFeedback, SessionStatus

OWNER = "rep-1"


@pytest.fixture
def channel(coordinator):
    return LiveChannel(coordinator)


def _start(channel):
    reply = channel.handle_message(OWNER, {"type": "start_session"})
    assert reply["type"] == "session_started"
    return reply["payload"]["sessionId"]


def test_welcome(channel):
    assert channel.welcome() == {
        "type": "connected",
        "payload": {"message": "brutus is ready to judge you."},
    }


def test_ping_pong(channel):
    assert channel.handle_message(OWNER, '{"type": "ping"}') == {"type": "pong"}


def test_transcript_chunk_with_feedback(channel, oracle):
    session_id = _start(channel)
    oracle.feedback = [LiveFeedback(kind="warning", text="weak check-in.")]

    reply = channel.handle_message(
        OWNER,
        json.dumps(
            {
                "type": "transcript_chunk",
                "payload": {
                    "sessionId": session_id,
                    "transcriptChunk": "rep: does that make sense?",
                    "timeIntoCall": 42,
                },
            }
        ),
    )

    assert reply == {
        "type": "brutus_feedback",
        "payload": {"type": "warning", "text": "weak check-in.", "timestamp": 42.0},
    }


def test_chunk_without_feedback_sends_nothing(channel, store):
    session_id = _start(channel)

    reply = channel.handle_message(
        OWNER,
        {"type": "transcript_chunk", "payload": {"sessionId": session_id, "transcriptChunk": "hi"}},
    )

    assert reply is None
    assert store.fetch_session(session_id).transcript_so_far == "hi"


def test_monitoring_data_decodes_audio(store, oracle, aggregator, settings, clock):
    from brutus.core.pipeline.coordinator import SessionCoordinator
    from brutus.services.transcription.dummy import DummyTranscriptionService

    coordinator = SessionCoordinator(
        store,
        oracle,
        aggregator,
        transcription=DummyTranscriptionService(text="what's your timeline?"),
        settings=settings,
        clock=clock,
    )
    channel = LiveChannel(coordinator)
    session_id = _start(channel)

    reply = channel.handle_message(
        OWNER,
        {
            "type": "monitoring_data",
            "payload": {
                "sessionId": session_id,
                "timeIntoCall": 12,
                "audioData": base64.b64encode(b"\x1aE\xdf\xa3chunk").decode(),
                "mimeType": "audio/webm",
                "screenshot": "c2NyZWVu",
            },
        },
    )

    assert reply is None
    assert store.fetch_session(session_id).transcript_so_far == "what's your timeline?"
    assert oracle.live_calls[0]["screenshot"] == "c2NyZWVu"
    assert oracle.live_calls[0]["time_into_call"] == 12


def test_unknown_type_is_ignored(channel):
    assert channel.handle_message(OWNER, {"type": "dance"}) is None


def test_malformed_message_yields_error(channel):
    assert channel.handle_message(OWNER, "{not json") == {
        "type": "error",
        "payload": {"message": "Failed to process message"},
    }


def test_bad_audio_yields_error(channel):
    session_id = _start(channel)

    reply = channel.handle_message(
        OWNER,
        {"type": "monitoring_data", "payload": {"sessionId": session_id, "audioData": "@@@"}},
    )

    assert reply == {
        "type": "error",
        "payload": {"message": "Invalid fragment payload: audioData is not valid base64"},
    }


def test_malformed_fragment_fields_are_named(channel, oracle):
    session_id = _start(channel)

    reply = channel.handle_message(
        OWNER,
        {
            "type": "transcript_chunk",
            "payload": {"sessionId": session_id, "transcriptChunk": "hi", "timeIntoCall": "abc"},
        },
    )

    assert reply == {"type": "error", "payload": {"message": "Invalid fragment payload: timeIntoCall"}}
    assert oracle.live_calls == []


def test_missing_session_id_yields_error(channel):
    reply = channel.handle_message(OWNER, {"type": "transcript_chunk", "payload": {"transcriptChunk": "hi"}})

    assert reply == {"type": "error", "payload": {"message": "Session ID is required"}}


def test_end_and_cancel_session(channel, store):
    session_id = _start(channel)

    ended = channel.handle_message(OWNER, {"type": "end_session", "payload": {"sessionId": session_id}})
    assert ended["type"] == "session_ended"
    assert ended["payload"]["callId"] is None
    assert ended["payload"]["message"] == "Session too short to analyze"

    cancelled = channel.handle_message(
        OWNER, {"type": "cancel_session", "payload": {"sessionId": session_id}}
    )
    assert cancelled["payload"]["status"] == SessionStatus.CANCELLED.value

    missing = channel.handle_message(OWNER, {"type": "end_session", "payload": {"sessionId": session_id}})
    assert missing == {"type": "error", "payload": {"message": "Session not found"}}


def test_end_session_reply_carries_camel_case_analysis(channel):
    session_id = _start(channel)
    channel.handle_message(
        OWNER,
        {
            "type": "transcript_chunk",
            "payload": {
                "sessionId": session_id,
                "transcriptChunk": "rep: so tell me about your current process for onboarding new hires",
                "timeIntoCall": 5,
            },
        },
    )

    ended = channel.handle_message(OWNER, {"type": "end_session", "payload": {"sessionId": session_id}})

    assert ended["payload"]["callId"]
    assert ended["payload"]["analysis"]["overallScore"] == 72
    assert ended["payload"]["analysis"]["talkRatio"] == 41
