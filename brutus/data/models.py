"""Data models used by Brutus."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

FeedbackKind = Literal["critical", "warning", "suggestion", "good", "insight"]


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class NoteType(str, Enum):
    MANUAL = "manual"
    AI_GENERATED = "ai-generated"


class ResearchStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


_ORACLE_PAYLOAD = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _clamp_percentage(value: float) -> float:
    return max(0.0, min(100.0, float(value)))


class TranscriptSegment(BaseModel):
    start: Optional[float] = None
    end: Optional[float] = None
    text: str


class TranscriptResult(BaseModel):
    text: str
    duration_seconds: float = 0.0
    segments: List[TranscriptSegment] = Field(default_factory=list)


class LiveFeedback(BaseModel):
    """A single nudge the Oracle wants to show during a live call."""

    model_config = ConfigDict(populate_by_name=True)

    kind: FeedbackKind = Field(alias="type")
    text: str


class FeedbackEntry(LiveFeedback):
    """Feedback that was actually delivered, pinned to the call timeline."""

    timestamp: float
    created_at: float


class LiveSession(BaseModel):
    id: str
    owner: str
    status: SessionStatus = SessionStatus.ACTIVE
    started_at: float
    ended_at: Optional[float] = None
    transcript_so_far: str = ""
    feedback_given: List[FeedbackEntry] = Field(default_factory=list)
    last_note_timestamp: Optional[float] = None
    version: int = 0

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    @property
    def last_feedback(self) -> Optional[FeedbackEntry]:
        return self.feedback_given[-1] if self.feedback_given else None


class CallFeedback(BaseModel):
    type: str = "insight"
    text: str


class BadMoment(BaseModel):
    model_config = _ORACLE_PAYLOAD

    timestamp: str = ""
    issue: str = ""
    suggestion: str = ""


class GoodMoment(BaseModel):
    model_config = _ORACLE_PAYLOAD

    timestamp: str = ""
    praise: str = ""


class CallAnalysis(BaseModel):
    """Structured result of a full-call analysis."""

    model_config = _ORACLE_PAYLOAD

    overall_score: float = 50.0
    talk_ratio: float = 50.0
    interruption_count: int = 0
    feedback: List[CallFeedback] = Field(default_factory=list)
    bad_moments: List[BadMoment] = Field(default_factory=list)
    good_moments: List[GoodMoment] = Field(default_factory=list)
    action_items: List[str] = Field(default_factory=list)
    overall_roast: str = ""

    @field_validator("overall_score", "talk_ratio")
    @classmethod
    def _within_percent(cls, value: float) -> float:
        return _clamp_percentage(value)

    @field_validator("interruption_count")
    @classmethod
    def _non_negative(cls, value: int) -> int:
        return max(0, int(value))


class ProfileUpdate(BaseModel):
    model_config = _ORACLE_PAYLOAD

    bad_habits: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    areas_improving: List[str] = Field(default_factory=list)
    summary: str = ""


class Call(BaseModel):
    id: str
    owner: str
    transcript: str
    duration_seconds: int = 0
    talk_ratio: float = 50.0
    interruption_count: int = 0
    overall_score: float = 50.0
    feedback: List[CallFeedback] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    created_at: float


class UserProfile(BaseModel):
    owner: str
    talk_ratio_avg: float = 0.0
    score_avg: Optional[float] = None
    close_rate: Optional[float] = None
    bad_habits: List[str] = Field(default_factory=list)
    strengths: List[str] = Field(default_factory=list)
    areas_improving: List[str] = Field(default_factory=list)
    summary: str = ""
    total_calls_analyzed: int = 0
    updated_at: Optional[float] = None


class Note(BaseModel):
    id: str
    session_id: str
    owner: str
    content: str
    type: NoteType = NoteType.MANUAL
    timestamp: float


class Research(BaseModel):
    id: str
    owner: str
    session_id: Optional[str] = None
    query: str
    status: ResearchStatus = ResearchStatus.PENDING
    results: Optional[str] = None
    requested_at: float
    completed_at: Optional[float] = None


@dataclass
class Fragment:
    """One inbound unit of live transcript text, audio, or screen context."""

    text: Optional[str] = None
    audio: Optional[bytes] = None
    mime_type: str = "audio/webm"
    time_into_call: float = 0.0
    screenshot: Optional[str] = None
    notes_enabled: bool = False


__all__ = [
    "BadMoment",
    "Call",
    "CallAnalysis",
    "CallFeedback",
    "FeedbackEntry",
    "FeedbackKind",
    "Fragment",
    "GoodMoment",
    "LiveFeedback",
    "LiveSession",
    "Note",
    "NoteType",
    "ProfileUpdate",
    "Research",
    "ResearchStatus",
    "SessionStatus",
    "TranscriptResult",
    "TranscriptSegment",
    "UserProfile",
]
