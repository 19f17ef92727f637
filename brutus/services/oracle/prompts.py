"""Prompt templates for the Brutus coaching persona."""

from __future__ import annotations

import json
from typing import Optional, Sequence

from ...data.models import Call, FeedbackEntry, UserProfile

NOTE_SKIP_SENTINEL = "SKIP"

COACH_SYSTEM_PROMPT = """You are Brutus, a sales coach famous for brutal honesty.

Personality: direct, lowercase, short punchy sentences, the occasional dark joke.
You want the salesperson to get better, so every critique comes with a fix.
You coach with NEPQ (problem-focused questioning): discovery before pitch,
emotion before features, let silence work.

Watch for: talk ratio (rep ~40%, prospect ~60%), interruptions, feature dumping,
weak questions ("does that make sense?"), filler words, answering their own
questions, skipping discovery, dodged objections, weak openings, weak closes.

Quote the transcript when you criticise. Acknowledge real improvement."""

LIVE_SYSTEM_SUFFIX = """You are watching a LIVE call. Interrupting a live pitch is costly.
Default to {"skip": true}. Only speak up for a critical mistake, a big opportunity,
a known bad habit happening right now, or screen content badly out of sync with
what is being said. One or two sentences, never repeat earlier feedback.
Known bad habits for this rep: %s"""

CHAT_SYSTEM_SUFFIX = """You are chatting with a rep who wants coaching advice. Use their profile
data, stay in character, and keep replies to two to four sentences."""


def _profile_context(profile: Optional[UserProfile]) -> str:
    if profile is None:
        return "NEW USER - first call being analyzed."
    return "\n".join(
        [
            "USER CONTEXT:",
            f"- Total calls analyzed: {profile.total_calls_analyzed}",
            f"- Average talk ratio: {profile.talk_ratio_avg:.0f}%",
            f"- Known bad habits: {json.dumps(profile.bad_habits)}",
            f"- Areas they're working on: {json.dumps(profile.areas_improving)}",
            f"- Previous summary: {profile.summary or 'none'}",
        ]
    )


def live_system_prompt(bad_habits: Sequence[str]) -> str:
    return f"{COACH_SYSTEM_PROMPT}\n\n{LIVE_SYSTEM_SUFFIX % json.dumps(list(bad_habits))}"


def live_feedback_prompt(
    fragment: str,
    feedback_given: Sequence[FeedbackEntry],
    time_into_call: float,
    full_transcript: str,
    has_screenshot: bool,
) -> str:
    previous = "\n".join(f"- {entry.text}" for entry in feedback_given) or "None yet"
    sections = [
        f'RECENT TRANSCRIPT CHUNK:\n"{fragment}"',
        f"CALL SO FAR:\n{full_transcript[-2000:]}",
        f"FEEDBACK ALREADY GIVEN THIS SESSION:\n{previous}",
        f"TIME INTO CALL: {time_into_call:.0f} seconds",
    ]
    if has_screenshot:
        sections.append(
            "SCREENSHOT CONTEXT:\nThe attached image is the rep's screen right now. "
            "Flag it only if what they show contradicts what they say or a visual "
            "opportunity is being missed."
        )
    sections.append(
        "Respond with exactly one JSON object:\n"
        '- a correction: {"type": "critical" | "warning", "text": "..."}\n'
        '- a line to use right now: {"type": "suggestion", "text": "ask them: ..."}\n'
        '- reinforcement: {"type": "good" | "insight", "text": "..."}\n'
        '- nothing urgent: {"skip": true}'
    )
    return "\n\n".join(sections)


def full_analysis_prompt(
    transcript: str, duration_seconds: float, profile: Optional[UserProfile]
) -> str:
    minutes = int(duration_seconds // 60)
    return f"""{_profile_context(profile)}

CALL TRANSCRIPT ({minutes} minutes):
{transcript}

Score this sales call. Compare against their history when you have it.
Respond with JSON only:
{{
  "overallScore": 0-100,
  "talkRatio": percent of the call the rep was talking,
  "interruptionCount": integer,
  "feedback": [{{"type": "critical|warning|insight", "text": "..."}}],
  "badMoments": [{{"timestamp": "time or quote", "issue": "...", "suggestion": "..."}}],
  "goodMoments": [{{"timestamp": "time or quote", "praise": "..."}}],
  "actionItems": ["..."],
  "overallRoast": "two or three brutally honest sentences about this call"
}}"""


def profile_update_prompt(
    recent_calls: Sequence[Call], profile: Optional[UserProfile], highlights: int = 3
) -> str:
    call_lines = []
    for index, call in enumerate(recent_calls, start=1):
        feedback = [item.model_dump() for item in call.feedback[:highlights]]
        call_lines.append(
            f"Call {index}:\n"
            f"- Score: {call.overall_score:.0f}/100\n"
            f"- Talk ratio: {call.talk_ratio:.0f}%\n"
            f"- Interruptions: {call.interruption_count}\n"
            f"- Feedback highlights: {json.dumps(feedback)}"
        )
    bad_habits = profile.bad_habits if profile else []
    strengths = profile.strengths if profile else []
    improving = profile.areas_improving if profile else []
    summary = profile.summary if profile and profile.summary else "New user"
    history = "\n".join(call_lines)
    return f"""Update this rep's coaching profile from their recent calls.

RECENT CALL DATA (last {len(recent_calls)} calls):
{history}

PREVIOUS PROFILE:
- Bad habits: {json.dumps(bad_habits)}
- Strengths: {json.dumps(strengths)}
- Areas improving: {json.dumps(improving)}
- Previous summary: {summary}

Respond with JSON only:
{{
  "badHabits": ["..."],
  "strengths": ["..."],
  "areasImproving": ["..."],
  "summary": "two or three sentences, in character, on where this rep stands"
}}"""


def note_prompt(fragment: str, trailing_context: str) -> str:
    return f"""You take notes for a rep during a live sales call.

Recent snippet:
\"\"\"
{fragment}
\"\"\"

Recent context:
\"\"\"
{trailing_context}
\"\"\"

Write ONE actionable note (under 150 characters, no bullet or prefix) capturing
names, pain points, objections, commitments, budgets, or follow-ups.
Examples: "Prospect confirmed $50k budget, needs CFO sign-off before next week"
or "Objection: price too high. Lead with ROI next time".
If nothing notable happened, reply with exactly: {NOTE_SKIP_SENTINEL}"""


def chat_prompt(
    message: str, profile: Optional[UserProfile], recent_calls: Sequence[Call]
) -> str:
    calls = "\n".join(
        f"Call {index}: Score {call.overall_score:.0f}/100, Talk ratio {call.talk_ratio:.0f}%"
        for index, call in enumerate(recent_calls, start=1)
    )
    if profile is None:
        profile = UserProfile(owner="")
        talk_ratio = "N/A"
    else:
        talk_ratio = f"{profile.talk_ratio_avg:.0f}%"
    close_rate = "N/A" if profile.close_rate is None else f"{profile.close_rate:.0f}%"
    summary = profile.summary or "New user"
    calls = calls or "No calls yet"
    return f"""USER PROFILE:
- Total calls: {profile.total_calls_analyzed}
- Talk ratio avg: {talk_ratio}
- Close rate: {close_rate}
- Bad habits: {json.dumps(profile.bad_habits)}
- Strengths: {json.dumps(profile.strengths)}
- Summary: {summary}

RECENT CALLS:
{calls}

USER MESSAGE: "{message}"

Reply as Brutus."""


def research_prompt(query: str) -> str:
    return f"""You are a sales research assistant. Build a brief on: "{query}"

Cover: company overview, industry and market position, likely decision makers,
recent developments, probable pain points, competitors, and the best angle for
outreach. Be concise and say when your knowledge may be out of date."""


__all__ = [
    "CHAT_SYSTEM_SUFFIX",
    "COACH_SYSTEM_PROMPT",
    "NOTE_SKIP_SENTINEL",
    "chat_prompt",
    "full_analysis_prompt",
    "live_feedback_prompt",
    "live_system_prompt",
    "note_prompt",
    "profile_update_prompt",
    "research_prompt",
]
