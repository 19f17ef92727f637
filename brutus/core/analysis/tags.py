"""Keyword-based call classification."""

from __future__ import annotations

from typing import FrozenSet, Mapping, Tuple

CALL_TAG_KEYWORDS: Mapping[str, Tuple[str, ...]] = {
    "discovery": ("tell me about", "what are you currently", "walk me through"),
    "cold-call": ("reaching out", "first time", "introduction"),
    "follow-up": ("following up", "last time we spoke", "checking in"),
    "pricing": ("price", "cost", "investment", "budget"),
    "objection-handling": ("too expensive", "think about it", "not sure", "competitor"),
    "closing": ("move forward", "next steps", "get started", "sign"),
}


def detect_call_tags(transcript: str) -> FrozenSet[str]:
    """Return every tag whose keyword list has a case-insensitive substring match."""

    lowered = (transcript or "").lower()
    return frozenset(
        tag
        for tag, keywords in CALL_TAG_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    )


__all__ = ["CALL_TAG_KEYWORDS", "detect_call_tags"]
