"""Tests for Pydantic models - facts, typed values and commit results."""

import pytest
from pydantic import TypeAdapter, ValidationError

from medcapture.models.extraction import Category, ExtractedFact, FactFields
from medcapture.models.record import BatchSummary, CommitResult, MappedRecord
from medcapture.models.values import Count, Quantity, Text, TypedValue


class TestExtractedFact:
    def test_defaults(self):
        fact = ExtractedFact(category=Category.DIAGNOSIS)
        assert fact.subcategory == "general"
        assert fact.fields == FactFields()
        assert fact.fields.name == "Unknown"
        assert fact.confidence == 0.5
        assert fact.source_excerpt == ""

    def test_category_from_string(self):
        assert ExtractedFact(category="vital_signs").category is Category.VITAL_SIGNS

    def test_unknown_category_rejected(self):
        with pytest.raises(ValidationError):
            ExtractedFact(category="allergy")

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            ExtractedFact(category="diagnosis", confidence=1.5)

    def test_frozen(self):
        fact = ExtractedFact(category="diagnosis")
        with pytest.raises(ValidationError):
            fact.confidence = 0.9

    def test_serialization_roundtrip(self):
        fact = ExtractedFact(
            category="medication",
            fields=FactFields(name="Metformin", value="500mg"),
            confidence=0.8,
        )
        restored = ExtractedFact.model_validate_json(fact.model_dump_json())
        assert restored == fact


class TestTypedValue:
    def test_discriminated_union(self):
        adapter = TypeAdapter(TypedValue)
        assert adapter.validate_python({"kind": "quantity", "magnitude": 1.5, "units": "mg"}) == Quantity(
            magnitude=1.5, units="mg"
        )
        assert adapter.validate_python({"kind": "count", "magnitude": 3}) == Count(magnitude=3)
        assert adapter.validate_python({"kind": "text", "value": "n/a"}) == Text(value="n/a")


class TestCommitResult:
    def test_defaults(self):
        result = CommitResult(records_processed=0, records_mapped=0, files_created=0, repository="memory")
        assert result.files == []
        assert result.dropped == []
        assert result.summary == BatchSummary()

    def test_mapped_record_error_optional(self):
        record = MappedRecord(category="diagnosis", subcategory="general", confidence=0.9, composition={})
        assert record.mapping_error is None
        assert record.extracted_fields == {}
