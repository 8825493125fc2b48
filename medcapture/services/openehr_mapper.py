"""Deterministic mapping of extracted facts into OpenEHR compositions.

One builder per record category, selected by ``map_one``. Anything the
dispatch does not recognize gets the generic story observation. Builders are
pure apart from the generated composition uid and the "now" timestamp used
when a fact carries no date.
"""

import re
import uuid
from datetime import UTC, datetime
from typing import Any

from medcapture.models.extraction import Category, ExtractedFact
from medcapture.services.value_coercion import coerce_value

UID_AUTHORITY = "medcapture"
SNOMED_CT = "SNOMED-CT"

_YEAR = re.compile(r"\d{4}")
_YEAR_MONTH = re.compile(r"\d{4}-\d{2}")

# Clinical status vocabulary for problem/diagnosis entries.
DIAGNOSIS_STATUS = {
    "active": ("Active", "55561003"),
    "resolved": ("Resolved", "413322009"),
    "inactive": ("Inactive", "73425007"),
}


def map_diagnosis_status(status: str) -> tuple[str, str]:
    """Return (display text, code) for a status; unknown statuses pass through as local."""
    return DIAGNOSIS_STATUS.get(status.strip().lower(), (status, "local"))


def _format_timestamp(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(raw: str) -> str:
    """Parse a fact date (date or date-time) into an ISO-8601 UTC timestamp.

    Empty input means "now". Reduced-precision dates (``YYYY``, ``YYYY-MM``)
    expand to the first day of the year or month. Naive values are read as
    UTC. Raises ValueError on text that is not an ISO date.
    """
    if not raw or not raw.strip():
        return _format_timestamp(datetime.now(UTC))
    text = raw.strip()
    if _YEAR.fullmatch(text):
        text = f"{text}-01-01"
    elif _YEAR_MONTH.fullmatch(text):
        text = f"{text}-01"
    if text.endswith(("z", "Z")):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return _format_timestamp(moment)


def _new_uid() -> str:
    return f"{uuid.uuid4()}::{UID_AUTHORITY}::1"


def _text(value: str) -> dict:
    return {"_type": "DV_TEXT", "value": value}


def _element(node_id: str, name: str, value: dict) -> dict:
    return {
        "_type": "ELEMENT",
        "archetype_node_id": node_id,
        "name": {"value": name},
        "value": value,
    }


def _composition(archetype: str, name: str, timestamp: str, content: dict) -> dict:
    return {
        "_type": "COMPOSITION",
        "archetype_node_id": archetype,
        "name": {"value": name},
        "uid": _new_uid(),
        "context": {
            "_type": "EVENT_CONTEXT",
            "start_time": {"_type": "DV_DATE_TIME", "value": timestamp},
        },
        "content": [content],
    }


def _history(timestamp: str, items: list[dict]) -> dict:
    """Observation data with a single point event."""
    return {
        "_type": "HISTORY",
        "archetype_node_id": "at0001",
        "events": [{
            "_type": "POINT_EVENT",
            "archetype_node_id": "at0002",
            "time": {"_type": "DV_DATE_TIME", "value": timestamp},
            "data": {
                "_type": "ITEM_TREE",
                "archetype_node_id": "at0003",
                "items": items,
            },
        }],
    }


def map_lab_result(fact: ExtractedFact) -> dict:
    f = fact.fields
    timestamp = parse_timestamp(f.date)

    result_items = [_element("at0001", "Value", coerce_value(f.value, f.units).to_openehr())]
    if f.reference_range:
        result_items.append(_element("at0004", "Reference range", _text(f.reference_range)))
    if f.interpretation:
        result_items.append(_element("at0030", "Interpretation", _text(f.interpretation)))

    observation: dict[str, Any] = {
        "_type": "OBSERVATION",
        "archetype_node_id": "openEHR-EHR-OBSERVATION.lab_test_result.v1",
        "name": {"value": f.name or "Laboratory Test"},
        "data": _history(timestamp, [{
            "_type": "CLUSTER",
            "archetype_node_id": "at0005",
            "name": {"value": f.name or "Test Result"},
            "items": result_items,
        }]),
    }
    if f.notes:
        observation["protocol"] = {
            "_type": "ITEM_TREE",
            "archetype_node_id": "at0004",
            "items": [_element("at0075", "Overall comment", _text(f.notes))],
        }

    return _composition(
        "openEHR-EHR-COMPOSITION.report.v1", "Laboratory Test Report", timestamp, observation
    )


def map_diagnosis(fact: ExtractedFact) -> dict:
    f = fact.fields
    timestamp = parse_timestamp(f.date)

    items = [_element("at0002", "Problem/Diagnosis name", _text(f.name or "Unknown diagnosis"))]
    if f.date:
        items.append(_element("at0005", "Date of onset", {"_type": "DV_DATE", "value": f.date}))
    if f.status:
        display, code = map_diagnosis_status(f.status)
        items.append(_element("at0077", "Clinical status", {
            "_type": "DV_CODED_TEXT",
            "value": display,
            "defining_code": {
                "code_string": code,
                "terminology_id": {"value": SNOMED_CT},
            },
        }))

    evaluation = {
        "_type": "EVALUATION",
        "archetype_node_id": "openEHR-EHR-EVALUATION.problem_diagnosis.v1",
        "name": {"value": "Problem/Diagnosis"},
        "data": {"_type": "ITEM_TREE", "archetype_node_id": "at0001", "items": items},
    }
    return _composition(
        "openEHR-EHR-COMPOSITION.problem_list.v1", "Problem List", timestamp, evaluation
    )


def map_medication(fact: ExtractedFact) -> dict:
    f = fact.fields
    timestamp = parse_timestamp(f.date)

    items = [_element(
        "openEHR-EHR-CLUSTER.medication.v1.at0001",
        "Medication",
        _text(f.name or "Unknown medication"),
    )]
    if f.value:
        items.append(_element("at0011", "Dosage", _text(f.value)))
    if f.notes:
        items.append(_element("at0013", "Administration instructions", _text(f.notes)))

    instruction = {
        "_type": "INSTRUCTION",
        "archetype_node_id": "openEHR-EHR-INSTRUCTION.medication_order.v2",
        "name": {"value": "Medication order"},
        "narrative": {"value": f"{f.name} - {f.value}"},
        "activities": [{
            "_type": "ACTIVITY",
            "archetype_node_id": "at0001",
            "description": {
                "_type": "ITEM_TREE",
                "archetype_node_id": "at0002",
                "items": items,
            },
        }],
    }
    return _composition(
        "openEHR-EHR-COMPOSITION.medication_list.v1", "Medication List", timestamp, instruction
    )


def map_vital_signs(fact: ExtractedFact) -> dict:
    f = fact.fields
    timestamp = parse_timestamp(f.date)

    observation = {
        "_type": "OBSERVATION",
        "archetype_node_id": "openEHR-EHR-OBSERVATION.vital_signs.v1",
        "name": {"value": f.name or "Vital Signs"},
        "data": _history(timestamp, [
            _element("at0004", f.name or "Measurement", coerce_value(f.value, f.units).to_openehr()),
        ]),
    }
    return _composition(
        "openEHR-EHR-COMPOSITION.encounter.v1", "Vital Signs", timestamp, observation
    )


def map_clinical_note(fact: ExtractedFact) -> dict:
    f = fact.fields
    timestamp = parse_timestamp(f.date)

    evaluation = {
        "_type": "EVALUATION",
        "archetype_node_id": "openEHR-EHR-EVALUATION.clinical_synopsis.v1",
        "name": {"value": f.name or "Clinical Note"},
        "data": {
            "_type": "ITEM_TREE",
            "archetype_node_id": "at0001",
            "items": [_element("at0002", "Synopsis", _text(f.value or f.notes or "Clinical observation"))],
        },
    }
    return _composition(
        "openEHR-EHR-COMPOSITION.encounter.v1", "Clinical Note", timestamp, evaluation
    )


def map_generic(fact: ExtractedFact) -> dict:
    """Fallback story observation. Tolerates an unparseable date by using now."""
    f = fact.fields
    try:
        timestamp = parse_timestamp(f.date)
    except ValueError:
        timestamp = parse_timestamp("")

    observation = {
        "_type": "OBSERVATION",
        "archetype_node_id": "openEHR-EHR-OBSERVATION.story.v1",
        "name": {"value": fact.subcategory or "Medical Information"},
        "data": _history(timestamp, [
            _element(
                "at0004",
                f.name or "Information",
                _text(f.value or f.notes or "Medical information extracted"),
            ),
        ]),
    }
    return _composition(
        "openEHR-EHR-COMPOSITION.encounter.v1", "Medical Record", timestamp, observation
    )


def map_one(fact: ExtractedFact) -> dict:
    """Map a fact with the builder for its category."""
    match fact.category:
        case Category.LAB_RESULT:
            return map_lab_result(fact)
        case Category.DIAGNOSIS:
            return map_diagnosis(fact)
        case Category.MEDICATION:
            return map_medication(fact)
        case Category.VITAL_SIGNS:
            return map_vital_signs(fact)
        case Category.CLINICAL_NOTE:
            return map_clinical_note(fact)
        case _:
            return map_generic(fact)
