"""
Unit tests for the document value codec.
"""

import math
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from service_identity.app.store.codec import (
    decode_fields,
    decode_value,
    encode_fields,
    encode_value,
    parse_timestamp,
)


@pytest.mark.parametrize(
    "value",
    [
        None,
        "hello",
        42,
        3.14,
        True,
        datetime(1970, 1, 1, tzinfo=timezone.utc),
        [1, "a", None],
        {"a": 1, "b": {"c": 2}},
    ],
)
def test_values_survive_encoding(value):
    assert decode_value(encode_value(value)) == value


def test_integers_and_doubles_keep_their_type():
    assert encode_value(7) == {"integerValue": "7"}
    assert encode_value(7.5) == {"doubleValue": 7.5}

    seven = decode_value(encode_value(7))
    seven_and_a_half = decode_value(encode_value(7.5))

    assert seven == 7 and isinstance(seven, int)
    assert seven_and_a_half == 7.5 and isinstance(seven_and_a_half, float)


def test_large_integers_are_exact():
    big = 2 ** 62 + 1

    assert encode_value(big) == {"integerValue": str(big)}
    assert decode_value(encode_value(big)) == big


def test_booleans_are_not_integers():
    assert encode_value(True) == {"booleanValue": True}
    assert encode_value(False) == {"booleanValue": False}


def test_wire_shapes():
    assert encode_value(None) == {"nullValue": None}
    assert encode_value("x") == {"stringValue": "x"}
    assert encode_value([1]) == {"arrayValue": {"values": [{"integerValue": "1"}]}}
    assert encode_value({"k": "v"}) == {"mapValue": {"fields": {"k": {"stringValue": "v"}}}}


def test_tuples_encode_as_arrays():
    assert decode_value(encode_value(("a", 1))) == ["a", 1]


def test_timestamp_encoding():
    moment = datetime(2024, 1, 1, 12, 30, 0, 250000, tzinfo=timezone.utc)

    assert encode_value(moment) == {"timestampValue": "2024-01-01T12:30:00.250000Z"}


def test_naive_datetime_decodes_as_aware_utc():
    naive = datetime(2024, 1, 1)

    decoded = decode_value(encode_value(naive))

    assert decoded.utcoffset() == timedelta(0)
    assert decoded == naive.replace(tzinfo=timezone.utc)
    assert decoded.replace(tzinfo=None) == naive


def test_date_encodes_as_midnight_utc():
    assert encode_value(date(2024, 3, 15)) == {"timestampValue": "2024-03-15T00:00:00.000000Z"}
    assert decode_value(encode_value(date(2024, 3, 15))) == datetime(2024, 3, 15, tzinfo=timezone.utc)


def test_offset_datetime_normalised_to_utc():
    plus_two = datetime(2024, 1, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

    assert encode_value(plus_two) == {"timestampValue": "2024-01-01T12:00:00.000000Z"}


def test_nanosecond_timestamps_truncate_to_microseconds():
    parsed = parse_timestamp("2024-01-01T00:00:00.123456789Z")

    assert parsed == datetime(2024, 1, 1, 0, 0, 0, 123456, tzinfo=timezone.utc)


def test_timestamp_without_fraction():
    assert parse_timestamp("2024-06-30T23:59:59Z") == datetime(2024, 6, 30, 23, 59, 59, tzinfo=timezone.utc)


def test_invalid_timestamp():
    with pytest.raises(ValueError):
        parse_timestamp("yesterday")


def test_non_finite_doubles():
    assert encode_value(float("nan")) == {"doubleValue": "NaN"}
    assert encode_value(float("-inf")) == {"doubleValue": "-Infinity"}
    assert math.isnan(decode_value({"doubleValue": "NaN"}))
    assert decode_value({"doubleValue": "Infinity"}) == math.inf


def test_integral_double_from_wire():
    assert decode_value({"doubleValue": 700}) == 700.0


def test_unsupported_types_fall_back_to_strings():
    assert encode_value(Decimal("1.50")) == {"stringValue": "1.50"}


@pytest.mark.parametrize("wire", [{}, {"referenceValue": "projects/p/x"}, {"geoPointValue": {}}, None])
def test_unknown_tags_decode_to_none(wire):
    assert decode_value(wire) is None


def test_empty_containers():
    assert decode_value({"arrayValue": {}}) == []
    assert decode_value({"mapValue": {}}) == {}


def test_field_maps():
    data = {"score": 700, "bureau": "experian", "tags": ["a"]}

    assert decode_fields(encode_fields(data)) == data
    assert decode_fields(None) == {}
