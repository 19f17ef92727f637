"""Live-session coordinator: session lifecycle, feedback throttling, and AI notes."""

from __future__ import annotations

import contextlib
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional

from ...config import Settings, get_settings
from ...data.models import (
    CallAnalysis,
    FeedbackEntry,
    Fragment,
    LiveFeedback,
    LiveSession,
    Note,
    NoteType,
    SessionStatus,
)
from ...data.storage import CoachStore
from ...logging import get_logger
from ...services.oracle.base import AnalysisOracle
from ...services.transcription.base import TranscriptionService
from ..analysis.aggregator import CallAnalysisAggregator, InvalidRequestError

LOGGER = get_logger(__name__)


class SessionNotFoundError(LookupError):
    """Raised when no session matches the owner and identifier."""


class SessionConflictError(RuntimeError):
    """Raised when a session keeps changing underneath a read-modify-write."""


@dataclass
class SessionSummary:
    call_id: Optional[str]
    analysis: Optional[CallAnalysis]
    duration_seconds: int
    message: str


class _SessionLocks:
    """Per-session mutual exclusion, scoped to one coordinator."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    @contextlib.contextmanager
    def hold(self, session_id: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(session_id, threading.Lock())
        with lock:
            yield

    def discard(self, session_id: str) -> None:
        with self._guard:
            self._locks.pop(session_id, None)


class SessionCoordinator:
    """Owns the live-session state machine.

    Sessions move ``active -> completed | cancelled`` and never leave a
    terminal state. Each fragment is appended to the transcript, offered to
    the Oracle for a live nudge, and, when nothing is emitted, optionally
    used for an AI note. Both outputs are throttled on the call timeline.

    Oracle calls run outside the per-session lock. Every write re-reads the
    session, re-validates that it is still active, and persists with a
    compare-and-set on ``version``, so results that arrive after the session
    ended are dropped.
    """

    def __init__(
        self,
        store: CoachStore,
        oracle: AnalysisOracle,
        aggregator: CallAnalysisAggregator,
        transcription: Optional[TranscriptionService] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
        max_write_attempts: int = 5,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store
        self.oracle = oracle
        self.aggregator = aggregator
        self.transcription = transcription
        self.max_write_attempts = max_write_attempts
        self._clock = clock
        self._locks = _SessionLocks()

    # Lifecycle

    def start_session(self, owner: str) -> LiveSession:
        if not owner:
            raise InvalidRequestError("Owner is required")
        previous = self.store.find_active_session(owner)
        session = LiveSession(id=uuid.uuid4().hex, owner=owner, started_at=self._clock())
        self.store.start_session(session)
        if previous is not None:
            self._locks.discard(previous.id)
            LOGGER.info("Cancelled session %s for %s; superseded by %s", previous.id, owner, session.id)
        LOGGER.info("Started live session %s for %s", session.id, owner)
        return session

    def get_active_session(self, owner: str) -> Optional[LiveSession]:
        return self.store.find_active_session(owner)

    def end_session(self, owner: str, session_id: str) -> SessionSummary:
        if not session_id:
            raise InvalidRequestError("Session ID is required")
        session = self.store.find_active_session(owner, session_id)
        if session is None:
            raise SessionNotFoundError("Session not found")

        duration = max(0, int(self._clock() - session.started_at))
        transcript = session.transcript_so_far

        if len(transcript.strip()) <= self.settings.min_call_transcript_chars:
            with self._locks.hold(session_id):
                finished = self.store.finish_session(
                    session_id, owner, SessionStatus.CANCELLED, self._clock()
                )
            if not finished:
                raise SessionNotFoundError("Session not found")
            self._locks.discard(session_id)
            LOGGER.info("Session %s too short to analyze; cancelled", session_id)
            return SessionSummary(
                call_id=None,
                analysis=None,
                duration_seconds=duration,
                message="Session too short to analyze",
            )

        # Raises AnalysisError and leaves the session active.
        analysis = self.aggregator.analyze_full_call(owner, transcript, duration)

        call = self.aggregator.build_call(owner, transcript, duration, analysis)
        with self._locks.hold(session_id):
            # The call only lands if the session is still active at commit time.
            completed = self.store.complete_session(session_id, call, self._clock())
        self._locks.discard(session_id)
        if not completed:
            LOGGER.warning("Session %s ended elsewhere before analysis was saved", session_id)
            raise SessionNotFoundError("Session not found")
        LOGGER.info("Session %s completed as call %s", session_id, call.id)
        self.aggregator.schedule_profile_refresh(owner)
        return SessionSummary(
            call_id=call.id,
            analysis=analysis,
            duration_seconds=duration,
            message="Session ended and analyzed",
        )

    def cancel_session(self, owner: str, session_id: str) -> LiveSession:
        if not session_id:
            raise InvalidRequestError("Session ID is required")
        session = self.store.fetch_session(session_id)
        if session is None or session.owner != owner:
            raise SessionNotFoundError("Session not found")
        if not session.is_active:
            return session

        with self._locks.hold(session_id):
            self.store.finish_session(session_id, owner, SessionStatus.CANCELLED, self._clock())
        self._locks.discard(session_id)
        LOGGER.info("Cancelled session %s for %s", session_id, owner)
        return self.store.fetch_session(session_id) or session

    # Fragments

    def handle_fragment(
        self, owner: str, session_id: str, fragment: Fragment
    ) -> Optional[FeedbackEntry]:
        """Process one fragment and return at most one feedback item."""

        if not session_id:
            raise InvalidRequestError("Session ID is required")
        if self.store.find_active_session(owner, session_id) is None:
            LOGGER.debug("No active session %s for %s; dropping fragment", session_id, owner)
            return None

        text = fragment.text
        if not text and fragment.audio:
            if self.transcription is None:
                LOGGER.warning("Audio fragment received but no transcription backend is configured")
                return None
            text = self.transcription.transcribe_chunk(fragment.audio, fragment.mime_type)
        text = (text or "").strip()
        if not text:
            return None

        def append(current: LiveSession) -> bool:
            if current.transcript_so_far:
                current.transcript_so_far = f"{current.transcript_so_far}\n{text}"
            else:
                current.transcript_so_far = text
            return True

        session = self._update_active(owner, session_id, append)
        if session is None:
            return None

        feedback = self._request_feedback(session, text, fragment)
        if feedback is not None:
            return self._record_feedback(owner, session_id, feedback, fragment.time_into_call)

        if fragment.notes_enabled:
            self._maybe_generate_note(session, text, fragment.time_into_call)
        return None

    def _update_active(
        self,
        owner: str,
        session_id: str,
        mutate: Callable[[LiveSession], bool],
    ) -> Optional[LiveSession]:
        """Apply ``mutate`` to the freshly loaded active session and persist it.

        Returns ``None`` if the session is no longer active or ``mutate``
        declined the change.
        """

        with self._locks.hold(session_id):
            for _ in range(self.max_write_attempts):
                current = self.store.find_active_session(owner, session_id)
                if current is None:
                    return None
                if not mutate(current):
                    return None
                if self.store.save_session_state(current):
                    return current
                LOGGER.debug("Session %s changed concurrently; retrying write", session_id)
        raise SessionConflictError(f"Could not update session {session_id}")

    def _request_feedback(
        self, session: LiveSession, text: str, fragment: Fragment
    ) -> Optional[LiveFeedback]:
        profile = self.store.fetch_profile(session.owner)
        try:
            return self.oracle.live_feedback(
                text,
                list(session.feedback_given),
                fragment.time_into_call,
                session.transcript_so_far,
                screenshot=fragment.screenshot,
                bad_habits=profile.bad_habits if profile else (),
            )
        except Exception:
            LOGGER.exception("Live feedback failed for session %s", session.id)
            return None

    def _record_feedback(
        self,
        owner: str,
        session_id: str,
        feedback: LiveFeedback,
        time_into_call: float,
    ) -> Optional[FeedbackEntry]:
        entry = FeedbackEntry(
            kind=feedback.kind,
            text=feedback.text,
            timestamp=time_into_call,
            created_at=self._clock(),
        )
        minimum = self.settings.min_feedback_interval_seconds

        def append(current: LiveSession) -> bool:
            last = current.last_feedback
            if last is not None and time_into_call - last.timestamp < minimum:
                LOGGER.info(
                    "Skipping feedback for session %s: only %.0fs since last (min %.0fs)",
                    session_id,
                    time_into_call - last.timestamp,
                    minimum,
                )
                return False
            current.feedback_given.append(entry)
            return True

        if self._update_active(owner, session_id, append) is None:
            return None
        return entry

    def _note_due(self, session: LiveSession, time_into_call: float) -> bool:
        if len(session.transcript_so_far.strip()) < self.settings.min_note_transcript_chars:
            return False
        last = session.last_note_timestamp
        if last is not None and time_into_call - last < self.settings.min_note_interval_seconds:
            return False
        return True

    def _maybe_generate_note(
        self, session: LiveSession, fragment_text: str, time_into_call: float
    ) -> Optional[Note]:
        if not self._note_due(session, time_into_call):
            return None

        context = session.transcript_so_far[-self.settings.note_context_chars :]
        try:
            content = self.oracle.generate_note(fragment_text, context)
        except Exception:
            LOGGER.exception("AI note generation failed for session %s", session.id)
            return None
        content = (content or "").strip()
        if len(content) < self.settings.min_note_chars:
            LOGGER.debug("Nothing notable for session %s; no note", session.id)
            return None

        def claim(current: LiveSession) -> bool:
            if not self._note_due(current, time_into_call):
                return False
            current.last_note_timestamp = time_into_call
            return True

        if self._update_active(session.owner, session.id, claim) is None:
            return None
        note = Note(
            id=uuid.uuid4().hex,
            session_id=session.id,
            owner=session.owner,
            content=content,
            type=NoteType.AI_GENERATED,
            timestamp=self._clock(),
        )
        self.store.save_note(note)
        LOGGER.info("AI note created for session %s", session.id)
        return note

    # Manual notes

    def add_note(
        self,
        owner: str,
        session_id: str,
        content: str,
        timestamp: Optional[float] = None,
    ) -> Note:
        if not content or not content.strip():
            raise InvalidRequestError("Note content is required")
        session = self.store.fetch_session(session_id) if session_id else None
        if session is None or session.owner != owner:
            raise SessionNotFoundError("Session not found")
        note = Note(
            id=uuid.uuid4().hex,
            session_id=session_id,
            owner=owner,
            content=content.strip(),
            type=NoteType.MANUAL,
            timestamp=self._clock() if timestamp is None else timestamp,
        )
        return self.store.save_note(note)

    def delete_note(self, owner: str, note_id: str) -> bool:
        deleted = self.store.delete_note(owner, note_id) if note_id else False
        if deleted:
            LOGGER.info("Deleted note %s for %s", note_id, owner)
        return deleted


__all__ = [
    "SessionConflictError",
    "SessionCoordinator",
    "SessionNotFoundError",
    "SessionSummary",
]
