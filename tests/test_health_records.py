"""Tests for stored record listing (medcapture/services/health_records.py)."""

import json

from medcapture.models.extraction import Category, ExtractedFact, FactFields
from medcapture.services.commit import CommitCoordinator
from medcapture.services.health_records import (
    determine_record_type,
    extract_date,
    extract_detailed_info,
    get_health_record,
    list_health_records,
)
from medcapture.services.record_store import InMemoryRecordStore


class TestDetermineRecordType:
    def test_from_filename_prefix(self):
        assert determine_record_type("vital_signs_2024-01-15_08-00-00_0.json", {}) == "vital_signs"

    def test_from_archetype(self):
        def composition(archetype):
            return {"content": [{"archetype_node_id": archetype}]}

        assert determine_record_type("a.json", composition("openEHR-EHR-OBSERVATION.story.v1")) == "lab_result"
        assert determine_record_type("b.json", composition("openEHR-EHR-EVALUATION.problem_diagnosis.v1")) == "diagnosis"
        assert determine_record_type("c.json", composition("openEHR-EHR-INSTRUCTION.medication_order.v2")) == "medication"

    def test_unknown(self):
        assert determine_record_type("a.json", {"content": []}) == "unknown"


class TestExtractDate:
    def test_context_start_time(self):
        composition = {"context": {"start_time": {"value": "2024-01-15T00:00:00.000Z"}}}
        assert extract_date(composition) == "2024-01-15T00:00:00.000Z"

    def test_first_event_time(self):
        composition = {"content": [{"data": {"events": [{"time": {"value": "2023-12-01T10:00:00Z"}}]}}]}
        assert extract_date(composition) == "2023-12-01T10:00:00Z"

    def test_defaults_to_now(self):
        assert extract_date({})


class TestListHealthRecords:
    async def test_lists_committed_records(self):
        store = InMemoryRecordStore()
        fact = ExtractedFact(
            category=Category.DIAGNOSIS,
            subcategory="endocrine",
            fields=FactFields(name="Type 2 diabetes", date="2024-01-15", status="active"),
            confidence=0.85,
        )
        await CommitCoordinator(store).commit([fact], "subject-1")
        await store.put("subject-1/notes.txt", "ignored", "add notes")
        await store.put("subject-2/other.json", json.dumps({"name": {"value": "x"}}), "other subject")

        listing = await list_health_records(store, "subject-1")

        assert len(listing.records) == 1
        record = listing.records[0]
        assert record.type == "diagnosis"
        assert record.title == "Problem List"
        assert record.date == "2024-01-15T00:00:00.000Z"
        assert record.id.endswith("::medcapture::1")
        assert record.data["metadata"]["subject_id"] == "subject-1"
        assert listing.revision.message == "other subject"

    async def test_plain_composition_document(self):
        store = InMemoryRecordStore()
        composition = {
            "uid": "bloodcount-1",
            "name": {"value": "Blood count"},
            "content": [{"archetype_node_id": "openEHR-EHR-OBSERVATION.lab_test_result.v1"}],
        }
        await store.put("subject-1/bloodcount.json", json.dumps(composition), "import")

        record = (await list_health_records(store, "subject-1")).records[0]
        assert record.id == "bloodcount-1"
        assert record.type == "lab_result"
        assert record.title == "Blood count"

    async def test_unparseable_files_skipped(self):
        store = InMemoryRecordStore()
        await store.put("subject-1/broken.json", "{not json", "broken")
        assert (await list_health_records(store, "subject-1")).records == []

    async def test_empty_subject(self):
        listing = await list_health_records(InMemoryRecordStore(), "nobody")
        assert listing.records == []
        assert listing.revision is None

    async def test_get_single_record(self):
        store = InMemoryRecordStore()
        composition = {"uid": "rec-1", "name": {"value": "Note"}}
        await store.put("subject-1/note.json", json.dumps(composition), "import")

        assert (await get_health_record(store, "subject-1", "rec-1")).title == "Note"
        assert await get_health_record(store, "subject-1", "missing") is None

    async def test_single_record_has_details_and_raw_data(self):
        store = InMemoryRecordStore()
        fact = ExtractedFact(
            category=Category.LAB_RESULT,
            fields=FactFields(name="Glucose", value="95", units="mg/dL", date="2024-01-15"),
            confidence=0.9,
        )
        await CommitCoordinator(store).commit([fact], "subject-1")
        record_id = (await list_health_records(store, "subject-1")).records[0].id

        record = await get_health_record(store, "subject-1", record_id)

        assert record.details["composition_name"] == "Laboratory Test Report"
        assert record.details["content_1_event_1_item_1_name"] == "Glucose"
        assert record.raw_data == record.data
        assert record.raw_data["openehr_record"]["uid"] == record_id


class TestExtractDetailedInfo:
    def test_full_composition(self):
        composition = {
            "name": {"value": "Vital Signs"},
            "language": {"code_string": "en"},
            "territory": {"code_string": "US"},
            "context": {
                "start_time": {"value": "2024-01-15T08:00:00.000Z"},
                "setting": {"value": "home"},
            },
            "content": [{
                "name": {"value": "Blood pressure"},
                "archetype_node_id": "openEHR-EHR-OBSERVATION.vital_signs.v1",
                "data": {"events": [{
                    "time": {"value": "2024-01-15T08:00:00.000Z"},
                    "data": {"items": [
                        {"name": {"value": "Systolic"}, "value": {"magnitude": 140, "units": "mmHg"}},
                        {"name": {"value": "Position"}, "value": {"value": "sitting"}},
                    ]},
                }]},
            }],
            "composer": {"name": "Dr. Lee", "external_ref": {"id": "clin-7"}},
        }

        assert extract_detailed_info(composition) == {
            "composition_name": "Vital Signs",
            "language": "en",
            "territory": "US",
            "start_time": "2024-01-15T08:00:00.000Z",
            "setting": "home",
            "content_1_name": "Blood pressure",
            "content_1_archetype": "openEHR-EHR-OBSERVATION.vital_signs.v1",
            "content_1_event_1_time": "2024-01-15T08:00:00.000Z",
            "content_1_event_1_item_1_name": "Systolic",
            "content_1_event_1_item_1_value": "140 mmHg",
            "content_1_event_1_item_2_name": "Position",
            "content_1_event_1_item_2_value": "sitting",
            "composer": "Dr. Lee",
            "composer_id": "clin-7",
        }

    def test_magnitude_without_units_uses_value(self):
        composition = {"content": [{"data": {"events": [{"data": {"items": [
            {"value": {"magnitude": 72, "value": "72 beats"}},
        ]}}]}}]}
        assert extract_detailed_info(composition) == {"content_1_event_1_item_1_value": "72 beats"}

    def test_malformed_nodes_ignored(self):
        composition = {"name": "plain", "context": [], "content": ["text", {"data": {"events": "none"}}]}
        assert extract_detailed_info(composition) == {}
