"""Tests for the orjson helpers used for JSON columns and result envelopes."""

import datetime
import decimal
import uuid

import pytest

from db_record_factory.utils.serialization import (
    convert_row_to_json_safe,
    convert_rows_to_json_safe,
    convert_value_to_json_safe,
    dumps,
    loads,
)


class TestDumpsLoads:
    """Test the engine-level JSON serializer and deserializer."""

    def test_compact_output(self):
        """orjson output has no whitespace, which JSON column comparisons rely on."""
        assert dumps({"a": [1, 2], "b": None}) == '{"a":[1,2],"b":null}'

    def test_native_types(self):
        """Test that datetime and UUID serialize natively."""
        data = {
            "at": datetime.datetime(2024, 1, 15, 10, 30, 0),
            "day": datetime.date(2024, 1, 15),
            "uid": uuid.UUID("12345678-1234-5678-1234-567812345678"),
        }

        assert loads(dumps(data)) == {
            "at": "2024-01-15T10:30:00",
            "day": "2024-01-15",
            "uid": "12345678-1234-5678-1234-567812345678",
        }

    def test_loads_accepts_bytes(self):
        assert loads(b'{"k": [true]}') == {"k": [True]}

    def test_unsupported_type_raises(self):
        with pytest.raises(TypeError):
            dumps({"obj": object()})


class TestDefaultHandler:
    """Test types orjson delegates to the default handler."""

    def test_decimal_keeps_precision(self):
        assert loads(dumps(decimal.Decimal("123.456789"))) == "123.456789"

    def test_timedelta_as_seconds(self):
        assert loads(dumps(datetime.timedelta(minutes=2))) == 120.0

    def test_bytes(self):
        assert loads(dumps(b"hello")) == "hello"
        # Not valid UTF-8, falls back to base64
        assert loads(dumps(b"\xff\xfe")) == "//4="

    def test_sets_become_lists(self):
        assert sorted(loads(dumps({3, 1, 2}))) == [1, 2, 3]


class TestJsonSafeConversion:
    """Test conversion of store rows before they leave the accessor layer."""

    def test_row_conversion(self):
        row = {
            "id": 42,
            "name": "Alice",
            "balance": decimal.Decimal("19.99"),
            "meta": {"tags": ["a", "b"]},
            "created_at": 1_700_000_000_000,
        }

        assert convert_row_to_json_safe(row) == {
            "id": 42,
            "name": "Alice",
            "balance": "19.99",
            "meta": {"tags": ["a", "b"]},
            "created_at": 1_700_000_000_000,
        }

    def test_unserializable_value_falls_back_to_str(self):
        class Opaque:
            def __str__(self):
                return "opaque"

        assert convert_value_to_json_safe(Opaque()) == "opaque"

    def test_rows_conversion(self):
        rows = [{"id": 1, "ratio": decimal.Decimal("0.5")}, {"id": 2, "ratio": None}]

        assert convert_rows_to_json_safe(rows) == [
            {"id": 1, "ratio": "0.5"},
            {"id": 2, "ratio": None},
        ]
