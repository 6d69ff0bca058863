"""Control type table and per-kind value coercion.

Maps a control's declared ``meta/type`` name to a :class:`ValueKind`
and default display units, and converts payloads to and from the
wire representation of each kind.

Wire conventions per kind::

    string      identity stringification
    boolean     "1" → True, anything else → False; True → "1", False → "0"
    number      float(payload), unparsable → nan; 21.0 → "21", nan → "NaN"
    pushbutton  never decoded (value stays None); always encodes as "1"
    rgb         first "<r>;<g>;<b>" in the payload, out-of-range → 0

Decoding is permissive by contract: a payload that fails to parse is
stored as ``nan`` (number) or ``Rgb(0, 0, 0)`` (rgb) instead of
raising.
"""

from __future__ import annotations

import enum
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import NamedTuple, assert_never

# ---------------------------------------------------------------------------
# Kinds and value objects
# ---------------------------------------------------------------------------


class ValueKind(enum.StrEnum):
    """Closed set of value representations a cell can hold."""

    STRING = "string"
    BOOLEAN = "boolean"
    NUMBER = "number"
    PUSHBUTTON = "pushbutton"
    RGB = "rgb"


class Rgb(NamedTuple):
    """An RGB colour, each channel an integer in ``0..255``."""

    r: int
    g: int
    b: int


CellValue = str | bool | float | Rgb | None
"""Union of every value a cell can store."""


@dataclass(frozen=True, slots=True)
class ControlType:
    """Entry of the control type table."""

    kind: ValueKind
    units: str = ""


PUSHBUTTON_PAYLOAD = "1"
"""Fixed trigger payload published for every pushbutton write."""

CONTROL_TYPES: Mapping[str, ControlType] = {
    "text": ControlType(ValueKind.STRING),
    "switch": ControlType(ValueKind.BOOLEAN),
    "wo-switch": ControlType(ValueKind.BOOLEAN),
    "alarm": ControlType(ValueKind.BOOLEAN),
    "pushbutton": ControlType(ValueKind.PUSHBUTTON),
    "temperature": ControlType(ValueKind.NUMBER, "°C"),
    "rel_humidity": ControlType(ValueKind.NUMBER, "%, RH"),
    "atmospheric_pressure": ControlType(ValueKind.NUMBER, "millibar (100 Pa)"),
    "rainfall": ControlType(ValueKind.NUMBER, "mm/h"),
    "wind_speed": ControlType(ValueKind.NUMBER, "m/s"),
    "power": ControlType(ValueKind.NUMBER, "W"),
    "power_consumption": ControlType(ValueKind.NUMBER, "kWh"),
    "voltage": ControlType(ValueKind.NUMBER, "V"),
    "water_flow": ControlType(ValueKind.NUMBER, "m³/h"),
    "water_consumption": ControlType(ValueKind.NUMBER, "m³"),
    "resistance": ControlType(ValueKind.NUMBER, "Ohm"),
    "concentration": ControlType(ValueKind.NUMBER, "ppm"),
    "pressure": ControlType(ValueKind.NUMBER, "bar"),
    "range": ControlType(ValueKind.NUMBER),
    "value": ControlType(ValueKind.NUMBER),
    "rgb": ControlType(ValueKind.RGB),
}

_UNKNOWN_TYPE = ControlType(ValueKind.STRING)

_RGB_RE = re.compile(r"(-?\d+);(-?\d+);(-?\d+)")

# Plain decimal or exponent notation, plus the spelled-out infinities
# that format_number writes.  Python-only forms ("1_000", "inf") are
# rejected.
_NUMBER_RE = re.compile(
    r"\s*(?:[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?|[+-]?Infinity)\s*"
)


def control_type(type_name: str) -> ControlType:
    """Look up *type_name*; unknown names map to a unitless string kind."""
    return CONTROL_TYPES.get(type_name, _UNKNOWN_TYPE)


def is_declared(type_name: str) -> bool:
    """Whether *type_name* has an entry in :data:`CONTROL_TYPES`."""
    return type_name in CONTROL_TYPES


# ---------------------------------------------------------------------------
# Number helpers
# ---------------------------------------------------------------------------


def parse_number(raw: object) -> float:
    """Parse *raw* as a float, yielding ``nan`` when it is not numeric."""
    if isinstance(raw, (bool, int, float)):
        return float(raw)
    if not isinstance(raw, str) or not _NUMBER_RE.fullmatch(raw):
        return math.nan
    return float(raw.strip().replace("Infinity", "inf"))


def format_number(value: float) -> str:
    """Format *value* the way the control bus writes numbers."""
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "Infinity" if value > 0 else "-Infinity"
    if value.is_integer():
        return str(int(value))
    return str(value)


# ---------------------------------------------------------------------------
# RGB helpers
# ---------------------------------------------------------------------------


def _channel(raw: object) -> int:
    value = parse_number(raw)
    if not 0 <= value <= 255:
        return 0
    return int(value)


def parse_rgb(raw: object) -> Rgb:
    """Decode the first ``<r>;<g>;<b>`` triplet found in *raw*."""
    if isinstance(raw, Rgb):
        return raw
    if isinstance(raw, Mapping) and all(c in raw for c in ("r", "g", "b")):
        return Rgb(raw["r"], raw["g"], raw["b"])
    match = _RGB_RE.search(str(raw))
    if match is None:
        return Rgb(0, 0, 0)
    return Rgb(*(_channel(group) for group in match.groups()))


def format_rgb(value: Rgb) -> str:
    """Encode *value* as ``"r;g;b"``."""
    return ";".join(str(channel) for channel in value)


# ---------------------------------------------------------------------------
# Coercion
# ---------------------------------------------------------------------------


def decode_value(kind: ValueKind, raw: object, current: CellValue = None) -> CellValue:
    """Coerce *raw* into the representation of *kind*.

    For :attr:`ValueKind.PUSHBUTTON` the value is never changed, so
    *current* is returned as-is.
    """
    match kind:
        case ValueKind.STRING:
            if isinstance(raw, Rgb):
                return format_rgb(raw)
            if isinstance(raw, bool):
                return "1" if raw else "0"
            if isinstance(raw, float):
                return format_number(raw)
            return str(raw)
        case ValueKind.BOOLEAN:
            if isinstance(raw, bool):
                return raw
            return raw == "1" or raw == 1
        case ValueKind.NUMBER:
            return parse_number(raw)
        case ValueKind.PUSHBUTTON:
            return current
        case ValueKind.RGB:
            return parse_rgb(raw)
        case _:
            assert_never(kind)


def encode_value(kind: ValueKind, value: CellValue) -> str | None:
    """Encode a stored *value* of *kind* into its wire payload.

    Returns ``None`` for pushbuttons, which carry no value of their
    own (the write path publishes :data:`PUSHBUTTON_PAYLOAD` instead),
    and ``""`` for any other kind without a value.
    """
    if value is None and kind is not ValueKind.PUSHBUTTON:
        return ""
    match kind:
        case ValueKind.BOOLEAN:
            return "1" if value else "0"
        case ValueKind.PUSHBUTTON:
            return None
        case ValueKind.RGB:
            return format_rgb(value) if isinstance(value, Rgb) else ""
        case ValueKind.NUMBER:
            if isinstance(value, float) and not isinstance(value, bool):
                return format_number(value)
            return str(value)
        case ValueKind.STRING:
            return str(value)
        case _:
            assert_never(kind)
