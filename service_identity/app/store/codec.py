"""
Conversion between native Python values and the document store's typed
wire values (``{"stringValue": ...}``, ``{"integerValue": "42"}``, ...).
"""

import math
import re
from collections.abc import Mapping
from datetime import date, datetime, time, timezone
from typing import Any, Dict

WireValue = Dict[str, Any]

_NON_FINITE = {"NaN": math.nan, "Infinity": math.inf, "-Infinity": -math.inf}

# RFC 3339 with optional fraction of any precision; the store emits nanoseconds.
_TIMESTAMP = re.compile(
    r"^(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})$"
)


def encode_value(value: Any) -> WireValue:
    """Encode a native value as a single-tag wire value.

    Timestamps always decode as aware UTC datetimes, so only aware datetimes
    round-trip unchanged. Naive datetimes are taken as UTC, and a plain
    ``date`` is stored as midnight UTC of that day.
    """
    if value is None:
        return {"nullValue": None}
    # bool before int: True is an int.
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        if math.isnan(value):
            return {"doubleValue": "NaN"}
        if math.isinf(value):
            return {"doubleValue": "Infinity" if value > 0 else "-Infinity"}
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": format_timestamp(value)}
    if isinstance(value, date):
        return {"timestampValue": format_timestamp(datetime.combine(value, time.min, tzinfo=timezone.utc))}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(item) for item in value]}}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    return {"stringValue": str(value)}


def decode_value(wire: WireValue) -> Any:
    """Decode a wire value; unknown or missing tags decode to None."""
    if not isinstance(wire, Mapping):
        return None
    if "stringValue" in wire:
        return wire["stringValue"]
    if "integerValue" in wire:
        return int(wire["integerValue"])
    if "doubleValue" in wire:
        raw = wire["doubleValue"]
        if isinstance(raw, str):
            return _NON_FINITE[raw] if raw in _NON_FINITE else float(raw)
        return float(raw)
    if "booleanValue" in wire:
        return bool(wire["booleanValue"])
    if "timestampValue" in wire:
        return parse_timestamp(wire["timestampValue"])
    if "nullValue" in wire:
        return None
    if "arrayValue" in wire:
        values = (wire["arrayValue"] or {}).get("values") or []
        return [decode_value(item) for item in values]
    if "mapValue" in wire:
        return decode_fields((wire["mapValue"] or {}).get("fields") or {})
    return None


def encode_fields(data: Mapping) -> Dict[str, WireValue]:
    """Encode every entry of a field map."""
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_fields(fields: Mapping) -> Dict[str, Any]:
    """Decode every entry of a wire field map."""
    return {key: decode_value(value) for key, value in (fields or {}).items()}


def format_timestamp(value: datetime) -> str:
    """Render a datetime as an RFC 3339 UTC timestamp; naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.replace(tzinfo=None).isoformat(timespec="microseconds") + "Z"


def parse_timestamp(text: str) -> datetime:
    """Parse an RFC 3339 timestamp into an aware UTC datetime.

    Fractions finer than a microsecond are truncated.
    """
    match = _TIMESTAMP.match(text)
    if not match:
        raise ValueError(f"Invalid timestamp: {text!r}")

    fraction = (match.group("fraction") or "")[:6].ljust(6, "0")
    offset = match.group("offset")
    offset = "+00:00" if offset == "Z" else offset
    parsed = datetime.fromisoformat(f"{match.group('base')}.{fraction}{offset}")
    return parsed.astimezone(timezone.utc)
