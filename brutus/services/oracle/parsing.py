"""Structured-response extraction for free-text model output.

Models are asked for JSON but routinely wrap it in prose or markdown fences.
``parse_structured_response`` tries, in order:

1. the whole reply as strict JSON,
2. each fenced code block (```json ... ``` or bare ```),
3. a bracket scan from the first ``{`` towards the last ``}``.

The first candidate that decodes to a JSON object wins. If none does,
:class:`OracleParseError` is raised so callers can tell a malformed reply
apart from a transport failure.
"""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Iterator, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .base import OracleParseError

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_RE = re.compile(r"```(?:[a-zA-Z]+)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _loads_object(candidate: str) -> Optional[Dict[str, Any]]:
    try:
        value = json.loads(candidate)
    except (json.JSONDecodeError, ValueError):
        return None
    return value if isinstance(value, dict) else None


def _strict(text: str) -> Iterator[str]:
    yield text


def _fenced(text: str) -> Iterator[str]:
    for match in _FENCE_RE.finditer(text):
        yield match.group(1).strip()


def _bracket_scan(text: str) -> Iterator[str]:
    start = text.find("{")
    while start != -1:
        end = text.rfind("}")
        while end > start:
            yield text[start : end + 1]
            end = text.rfind("}", start, end)
        start = text.find("{", start + 1)


_STRATEGIES: tuple[Callable[[str], Iterator[str]], ...] = (_strict, _fenced, _bracket_scan)


def parse_structured_response(text: Optional[str]) -> Dict[str, Any]:
    """Extract the first JSON object from ``text``."""

    if text is None or not text.strip():
        raise OracleParseError("Empty oracle response", raw=text)

    stripped = text.strip()
    for strategy in _STRATEGIES:
        for candidate in strategy(stripped):
            payload = _loads_object(candidate)
            if payload is not None:
                return payload
    raise OracleParseError("No JSON object found in oracle response", raw=text)


def parse_model(text: Optional[str], model: Type[ModelT]) -> ModelT:
    """Extract a JSON object from ``text`` and validate it against ``model``."""

    payload = parse_structured_response(text)
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise OracleParseError(
            f"Oracle response does not match {model.__name__}: {exc.error_count()} error(s)",
            raw=text,
        ) from exc


__all__ = ["parse_model", "parse_structured_response"]
