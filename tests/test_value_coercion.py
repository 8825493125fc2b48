"""Tests for raw value classification (medcapture/services/value_coercion.py)."""

from medcapture.models.values import Count, Quantity, Text
from medcapture.services.value_coercion import coerce_value, parse_numeric


class TestParseNumeric:
    def test_plain_integer(self):
        assert parse_numeric("140") == 140.0

    def test_value_with_units_text(self):
        assert parse_numeric("12.5 g/dL") == 12.5

    def test_negative(self):
        assert parse_numeric("-3.2") == -3.2

    def test_leading_prefix_only(self):
        assert parse_numeric("1.2.3") == 1.2

    def test_no_digits(self):
        assert parse_numeric("elevated") is None

    def test_empty(self):
        assert parse_numeric("") is None

    def test_bool_is_not_a_number(self):
        assert parse_numeric(True) is None

    def test_real_number_passes_through(self):
        assert parse_numeric(7) == 7.0


class TestCoerceValue:
    def test_number_with_units_is_quantity(self):
        value = coerce_value("140", "mmHg")
        assert value == Quantity(magnitude=140, units="mmHg")
        assert value.to_openehr() == {"_type": "DV_QUANTITY", "magnitude": 140.0, "units": "mmHg"}

    def test_number_without_units_is_count(self):
        value = coerce_value("5")
        assert value == Count(magnitude=5)
        assert value.to_openehr() == {"_type": "DV_COUNT", "magnitude": 5}

    def test_empty_units_is_count(self):
        assert isinstance(coerce_value("72", ""), Count)

    def test_count_rounds_half_up(self):
        assert coerce_value("2.5").magnitude == 3
        assert coerce_value("3.4").magnitude == 3

    def test_non_numeric_is_text(self):
        value = coerce_value("elevated")
        assert value == Text(value="elevated")
        assert value.to_openehr() == {"_type": "DV_TEXT", "value": "elevated"}

    def test_non_numeric_with_units_is_still_text(self):
        assert coerce_value("elevated", "mg/dL") == Text(value="elevated")

    def test_empty_is_no_value(self):
        assert coerce_value("") == Text(value="No value")

    def test_units_decide_quantity_over_magnitude(self):
        assert isinstance(coerce_value("0.5", "mg"), Quantity)
        assert isinstance(coerce_value("1000"), Count)

    def test_serialized_object_is_text(self):
        raw = '{"systolic": 140, "diastolic": 90}'
        assert coerce_value(raw, "mmHg") == Text(value=raw)
