"""Recovery of a JSON candidate array from an unreliable model response.

Strategies run in order and each returns a candidate list or None:

1. strict parse of the fence-stripped text
2. the first ``[ ... ]`` span, parsed strictly
3. individual ``{ ... }`` spans carrying a ``"type"`` key, parsed one by one

If every strategy fails the response degrades to an empty list. A garbled
response means "no facts found", never an exception.
"""

import json
import logging
import re
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"```json\s*")
_FENCE_ANY = re.compile(r"```\s*")
_ARRAY_SPAN = re.compile(r"\[[\s\S]*\]")
# One level of nested object is allowed so ``"data": {...}`` stays inside the span.
_OBJECT_SPAN = re.compile(
    r'\{(?:[^{}]|\{[^{}]*\})*?"type"(?:[^{}]|\{[^{}]*\})*\}'
)

Strategy = Callable[[str], list[Any] | None]


def strip_code_fences(text: str) -> str:
    cleaned = text.strip()
    cleaned = _FENCE_OPEN.sub("", cleaned)
    return _FENCE_ANY.sub("", cleaned).strip()


def parse_strict(text: str) -> list[Any] | None:
    try:
        parsed = json.loads(strip_code_fences(text))
    except (json.JSONDecodeError, ValueError):
        return None
    if not isinstance(parsed, list):
        logger.warning("Model response is not an array, wrapping in array")
        return [parsed]
    return parsed


def salvage_array_span(text: str) -> list[Any] | None:
    match = _ARRAY_SPAN.search(text)
    if not match:
        return None
    parsed = parse_strict(match.group(0))
    if parsed is not None:
        logger.info("Recovered JSON array embedded in model response")
    return parsed


def salvage_object_spans(text: str) -> list[Any] | None:
    records = []
    for span in _OBJECT_SPAN.findall(text):
        try:
            records.append(json.loads(span))
        except (json.JSONDecodeError, ValueError):
            logger.warning("Failed to parse individual record: %s", span[:200])
    if not records:
        return None
    logger.info("Recovered %d record(s) by object matching", len(records))
    return records


STRATEGIES: tuple[Strategy, ...] = (
    parse_strict,
    salvage_array_span,
    salvage_object_spans,
)


def recover(raw_text: str) -> list[Any]:
    """Recover a list of untyped candidates from a raw model response."""
    if not raw_text or not raw_text.strip():
        return []
    for strategy in STRATEGIES:
        candidates = strategy(raw_text)
        if candidates is not None:
            return candidates
    logger.warning(
        "Could not parse model response (%d chars), returning empty list", len(raw_text)
    )
    return []
