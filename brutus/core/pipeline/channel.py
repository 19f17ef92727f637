"""Transport-independent dispatcher for the real-time coaching channel."""

from __future__ import annotations

import base64
import json
from typing import Any, Callable, Dict, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ...data.models import Fragment
from ...logging import get_logger
from ..analysis.aggregator import AnalysisError, InvalidRequestError
from .coordinator import SessionCoordinator, SessionNotFoundError

LOGGER = get_logger(__name__)

Reply = Dict[str, Any]

WELCOME_MESSAGE = "brutus is ready to judge you."
GENERIC_ERROR_MESSAGE = "Failed to process message"


class FragmentPayload(BaseModel):
    """Payload of ``transcript_chunk`` and ``monitoring_data`` messages."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    session_id: Optional[str] = None
    transcript_chunk: Optional[str] = None
    time_into_call: Optional[float] = None
    audio_data: Optional[str] = None
    mime_type: Optional[str] = None
    screenshot: Optional[str] = None
    notes_enabled: bool = False

    def to_fragment(self) -> Fragment:
        audio = base64.b64decode(self.audio_data, validate=True) if self.audio_data else None
        return Fragment(
            text=self.transcript_chunk,
            audio=audio,
            mime_type=self.mime_type or "audio/webm",
            time_into_call=self.time_into_call or 0.0,
            screenshot=self.screenshot,
            notes_enabled=self.notes_enabled,
        )


def _error(message: str) -> Reply:
    return {"type": "error", "payload": {"message": message}}


class LiveChannel:
    """Turns inbound JSON messages into coordinator calls and replies.

    ``handle_message`` never raises: expected input problems come back as an
    ``error`` reply carrying their message, anything else as the generic one.
    A return value of ``None`` means nothing should be sent.
    """

    def __init__(self, coordinator: SessionCoordinator) -> None:
        self.coordinator = coordinator
        self._handlers: Dict[str, Callable[[str, Mapping[str, Any]], Optional[Reply]]] = {
            "ping": self._on_ping,
            "transcript_chunk": self._on_fragment,
            "monitoring_data": self._on_fragment,
            "start_session": self._on_start_session,
            "end_session": self._on_end_session,
            "cancel_session": self._on_cancel_session,
        }

    def welcome(self) -> Reply:
        return {"type": "connected", "payload": {"message": WELCOME_MESSAGE}}

    def handle_message(self, owner: str, raw: Union[str, bytes, Mapping[str, Any]]) -> Optional[Reply]:
        try:
            message = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            if not isinstance(message, Mapping):
                raise InvalidRequestError("Message must be a JSON object")
            kind = message.get("type")
            handler = self._handlers.get(kind)
            if handler is None:
                LOGGER.info("Unknown message type: %s", kind)
                return None
            return handler(owner, message.get("payload") or {})
        except (InvalidRequestError, SessionNotFoundError) as exc:
            LOGGER.warning("Rejected channel message from %s: %s", owner, exc)
            return _error(str(exc))
        except AnalysisError as exc:
            LOGGER.error("Channel analysis failed for %s: %s", owner, exc)
            return _error(str(exc))
        except Exception:
            LOGGER.exception("Channel message error for %s", owner)
            return _error(GENERIC_ERROR_MESSAGE)

    def _on_ping(self, owner: str, payload: Mapping[str, Any]) -> Reply:
        return {"type": "pong"}

    def _on_fragment(self, owner: str, payload: Mapping[str, Any]) -> Optional[Reply]:
        try:
            parsed = FragmentPayload.model_validate(payload)
            fragment = parsed.to_fragment()
        except ValidationError as exc:
            fields = ", ".join(str(error["loc"][0]) for error in exc.errors() if error["loc"])
            raise InvalidRequestError(f"Invalid fragment payload: {fields or 'payload'}") from exc
        except ValueError as exc:
            # b64decode rejects non-base64 input with binascii.Error, a ValueError.
            raise InvalidRequestError("Invalid fragment payload: audioData is not valid base64") from exc
        LOGGER.debug(
            "Fragment for session %s at %.1fs (audio=%s, screenshot=%s)",
            parsed.session_id,
            parsed.time_into_call or 0.0,
            bool(parsed.audio_data),
            bool(parsed.screenshot),
        )
        feedback = self.coordinator.handle_fragment(owner, parsed.session_id or "", fragment)
        if feedback is None:
            return None
        return {
            "type": "brutus_feedback",
            "payload": {
                "type": feedback.kind,
                "text": feedback.text,
                "timestamp": feedback.timestamp,
            },
        }

    def _on_start_session(self, owner: str, payload: Mapping[str, Any]) -> Reply:
        session = self.coordinator.start_session(owner)
        return {
            "type": "session_started",
            "payload": {"sessionId": session.id, "startedAt": session.started_at},
        }

    def _on_end_session(self, owner: str, payload: Mapping[str, Any]) -> Reply:
        summary = self.coordinator.end_session(owner, payload.get("sessionId") or "")
        analysis = summary.analysis.model_dump(by_alias=True) if summary.analysis else None
        return {
            "type": "session_ended",
            "payload": {
                "callId": summary.call_id,
                "analysis": analysis,
                "durationSeconds": summary.duration_seconds,
                "message": summary.message,
            },
        }

    def _on_cancel_session(self, owner: str, payload: Mapping[str, Any]) -> Reply:
        session = self.coordinator.cancel_session(owner, payload.get("sessionId") or "")
        return {
            "type": "session_cancelled",
            "payload": {"sessionId": session.id, "status": session.status.value},
        }


__all__ = ["FragmentPayload", "LiveChannel", "WELCOME_MESSAGE"]
