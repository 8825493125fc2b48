import json
import logging
from datetime import UTC, datetime
from typing import Any

from medcapture.models.extraction import Category
from medcapture.models.record import HealthRecordsResponse, StoredRecordDetail, StoredRecordItem
from medcapture.services.record_store import RecordStore

logger = logging.getLogger(__name__)

# Entry class of the first content node -> record type, checked in order.
_ARCHETYPE_TYPES = (
    ("OBSERVATION", Category.LAB_RESULT.value),
    ("EVALUATION", Category.DIAGNOSIS.value),
    ("INSTRUCTION", Category.MEDICATION.value),
)


def _first_content(composition: dict) -> dict:
    content = composition.get("content")
    if isinstance(content, list) and content and isinstance(content[0], dict):
        return content[0]
    return {}


def determine_record_type(filename: str, composition: dict) -> str:
    for category in Category:
        if filename.startswith(f"{category.value}_"):
            return category.value

    archetype = _first_content(composition).get("archetype_node_id")
    if isinstance(archetype, str):
        for entry_class, record_type in _ARCHETYPE_TYPES:
            if entry_class in archetype:
                return record_type
    return "unknown"


def extract_date(composition: dict) -> str:
    start_time = (composition.get("context") or {}).get("start_time")
    if isinstance(start_time, dict) and isinstance(start_time.get("value"), str):
        return start_time["value"]

    data = _first_content(composition).get("data")
    events = data.get("events") if isinstance(data, dict) else None
    if isinstance(events, list) and events and isinstance(events[0], dict):
        time = events[0].get("time")
        if isinstance(time, dict) and isinstance(time.get("value"), str):
            return time["value"]

    return datetime.now(UTC).isoformat()


def _dict(node: Any) -> dict:
    return node if isinstance(node, dict) else {}


def _list(node: Any) -> list[dict]:
    return [item for item in node if isinstance(item, dict)] if isinstance(node, list) else []


def _element_value(value: dict) -> Any:
    if value.get("magnitude") is not None and value.get("units"):
        return f"{value['magnitude']} {value['units']}"
    return value.get("value")


def extract_detailed_info(composition: dict) -> dict[str, Any]:
    """Flatten the readable parts of a composition into display keys.

    Content items, events and event items are numbered from 1, so the first
    element of the first event reads ``content_1_event_1_item_1_value``.
    Empty values are left out.
    """
    details: dict[str, Any] = {}

    def put(key: str, value: Any) -> None:
        if value:
            details[key] = value

    put("composition_name", _dict(composition.get("name")).get("value"))
    put("language", _dict(composition.get("language")).get("code_string"))
    put("territory", _dict(composition.get("territory")).get("code_string"))

    context = _dict(composition.get("context"))
    put("start_time", _dict(context.get("start_time")).get("value"))
    put("setting", _dict(context.get("setting")).get("value"))

    for i, item in enumerate(_list(composition.get("content")), start=1):
        prefix = f"content_{i}"
        put(f"{prefix}_name", _dict(item.get("name")).get("value"))
        put(f"{prefix}_archetype", item.get("archetype_node_id"))

        for j, event in enumerate(_list(_dict(item.get("data")).get("events")), start=1):
            event_prefix = f"{prefix}_event_{j}"
            put(f"{event_prefix}_time", _dict(event.get("time")).get("value"))

            for k, element in enumerate(_list(_dict(event.get("data")).get("items")), start=1):
                item_prefix = f"{event_prefix}_item_{k}"
                put(f"{item_prefix}_name", _dict(element.get("name")).get("value"))
                put(f"{item_prefix}_value", _element_value(_dict(element.get("value"))))

    composer = _dict(composition.get("composer"))
    put("composer", composer.get("name"))
    put("composer_id", _dict(composer.get("external_ref")).get("id"))
    return details


def _composition_of(document: dict) -> dict:
    return _dict(document.get("openehr_record", document))


def to_record_item(path: str, document: dict) -> StoredRecordItem:
    """Summarize one stored document for listing."""
    filename = path.rsplit("/", 1)[-1]
    stem = filename.removesuffix(".json")
    composition = _composition_of(document)
    name = composition.get("name")
    title = (name.get("value") if isinstance(name, dict) else None) or stem
    return StoredRecordItem(
        id=composition.get("uid") or stem,
        type=determine_record_type(filename, composition),
        title=title,
        date=extract_date(composition),
        data=document,
    )


async def list_health_records(store: RecordStore, subject_id: str) -> HealthRecordsResponse:
    """All stored records under a subject's directory, plus the latest revision."""
    records: list[StoredRecordItem] = []
    for path in await store.list_directory(subject_id):
        if not path.endswith(".json"):
            continue
        stored = await store.get(path)
        if stored is None:
            continue
        try:
            document = json.loads(stored.content)
        except json.JSONDecodeError:
            logger.warning("Skipping unparseable record %s", path)
            continue
        if isinstance(document, dict):
            records.append(to_record_item(path, document))

    logger.info("Loaded %d health record(s) for subject %s", len(records), subject_id)
    return HealthRecordsResponse(records=records, revision=await store.latest_revision())


async def get_health_record(store: RecordStore, subject_id: str, record_id: str) -> StoredRecordDetail | None:
    """One record by id, with flattened composition details and the raw document."""
    listing = await list_health_records(store, subject_id)
    for record in listing.records:
        if record.id == record_id:
            return StoredRecordDetail(
                **record.model_dump(),
                details=extract_detailed_info(_composition_of(record.data)),
                raw_data=record.data,
            )
    return None
