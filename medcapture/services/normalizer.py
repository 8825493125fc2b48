import json
import logging
import math
from datetime import UTC, datetime
from typing import Any, Iterable

from medcapture.models.extraction import Category, ExtractedFact, FactFields

logger = logging.getLogger(__name__)

_CATEGORIES = {c.value for c in Category}

_FIELD_DEFAULTS = {
    "name": "Unknown",
    "value": "",
    "units": "",
    "status": "",
    "reference_range": "",
    "interpretation": "",
    "notes": "",
}

DEFAULT_CONFIDENCE = 0.5


def is_valid_candidate(candidate: Any) -> bool:
    """Structural prerequisites a candidate must meet before any defaulting.

    A candidate needs a non-empty string ``type``, an object ``data`` and a
    numeric ``confidence``. These are never defaulted.
    """
    if not isinstance(candidate, dict):
        return False
    kind = candidate.get("type")
    if not isinstance(kind, str) or not kind.strip():
        return False
    if not isinstance(candidate.get("data"), dict):
        return False
    confidence = candidate.get("confidence")
    return isinstance(confidence, int | float) and not isinstance(confidence, bool)


def _as_text(value: Any, default: str) -> str:
    if value is None or value == "" or value is False:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, list | dict):
        return json.dumps(value) if value else default
    return str(value)


def _clamp_confidence(value: float) -> float:
    if math.isnan(value):
        return DEFAULT_CONFIDENCE
    return max(0.0, min(1.0, float(value)))


def _today() -> str:
    return datetime.now(UTC).date().isoformat()


def normalize(candidate: Any) -> ExtractedFact | None:
    """Turn one raw model candidate into an ExtractedFact, or None to reject it."""
    if not is_valid_candidate(candidate):
        return None

    kind = candidate["type"].strip().lower()
    if kind not in _CATEGORIES:
        logger.debug("Rejecting candidate with unrecognized type %r", candidate["type"])
        return None

    data = candidate["data"]
    fields = {key: _as_text(data.get(key), default) for key, default in _FIELD_DEFAULTS.items()}
    fields["date"] = _as_text(data.get("date"), _today())

    return ExtractedFact(
        category=Category(kind),
        subcategory=_as_text(candidate.get("category"), "general"),
        fields=FactFields(**fields),
        confidence=_clamp_confidence(candidate["confidence"]),
        source_excerpt=_as_text(candidate.get("source_text"), ""),
    )


def normalize_candidates(candidates: Iterable[Any]) -> list[ExtractedFact]:
    """Filter structurally invalid candidates, then normalize the survivors."""
    facts: list[ExtractedFact] = []
    rejected = 0
    for candidate in candidates:
        fact = normalize(candidate)
        if fact is None:
            rejected += 1
            continue
        facts.append(fact)
    if rejected:
        logger.info("Dropped %d invalid candidate(s) from model response", rejected)
    return facts
