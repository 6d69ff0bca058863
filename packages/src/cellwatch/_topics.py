"""Topic grammar for the ``/devices`` control bus.

Parses inbound topics into structured addresses and builds the
outbound command topic.  Everything here is a pure function.

Topic layout::

    /devices/{dev}/meta/name                        → device display name
    /devices/{dev}/controls/{ctrl}                  → cell value
    /devices/{dev}/controls/{ctrl}/meta/{field}     → cell metadata
    /devices/{dev}/controls/{ctrl}/on               → command (published)

Segments are produced by stripping the leading separator and
splitting on ``/``; index 1 is the device id and index 3 the control
id.  Ensuring that a device record exists for a parsed cell topic is
the registry's job, not the parser's.
"""

from __future__ import annotations

from dataclasses import dataclass

from cellwatch._errors import MalformedTopicError

# ---------------------------------------------------------------------------
# Subscription patterns
# ---------------------------------------------------------------------------

DEVICE_NAME_PATTERN = "/devices/+/meta/name"
"""Sticky subscription pattern for explicit device names."""

CELL_PATTERN = "/devices/+/controls/+"
"""Sticky subscription pattern for cell values (metadata appends a suffix)."""

VALUE_SUFFIX: str | None = None
TYPE_SUFFIX = "meta/type"
NAME_SUFFIX = "meta/name"
UNITS_SUFFIX = "meta/units"
READONLY_SUFFIX = "meta/readonly"
ERROR_SUFFIX = "meta/error"
MIN_SUFFIX = "meta/min"
MAX_SUFFIX = "meta/max"
STEP_SUFFIX = "meta/step"

CELL_SUFFIXES: tuple[str | None, ...] = (
    VALUE_SUFFIX,
    TYPE_SUFFIX,
    NAME_SUFFIX,
    UNITS_SUFFIX,
    READONLY_SUFFIX,
    ERROR_SUFFIX,
    MIN_SUFFIX,
    MAX_SUFFIX,
    STEP_SUFFIX,
)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CellAddress:
    """Structured address of a cell topic."""

    device_id: str
    control_id: str
    suffix: str | None = None

    @property
    def cell_id(self) -> str:
        """The ``"<device>/<control>"`` identity of the addressed cell."""
        return f"{self.device_id}/{self.control_id}"


def split_topic(topic: str) -> list[str]:
    """Strip the leading separator and split *topic* on ``/``."""
    return topic[1:].split("/")


def parse_cell_topic(topic: str) -> CellAddress:
    """Parse ``/devices/<dev>/controls/<ctrl>[/<suffix>]``.

    Raises:
        MalformedTopicError: If *topic* has fewer than four segments.
    """
    parts = split_topic(topic)
    if len(parts) < 4:
        raise MalformedTopicError(topic)
    suffix = "/".join(parts[4:]) or None
    return CellAddress(device_id=parts[1], control_id=parts[3], suffix=suffix)


def device_id_from_topic(topic: str) -> str:
    """Extract the device id from a ``/devices/<dev>/...`` topic.

    Raises:
        MalformedTopicError: If *topic* has no device segment.
    """
    parts = split_topic(topic)
    if len(parts) < 2:
        raise MalformedTopicError(topic)
    return parts[1]


def command_topic(device_id: str, control_id: str) -> str:
    """Return the outbound write topic for a cell."""
    return "/".join(["", "devices", device_id, "controls", control_id, "on"])


def cell_pattern(suffix: str | None) -> str:
    """Return the sticky subscription pattern for a cell topic *suffix*."""
    return CELL_PATTERN if suffix is None else f"{CELL_PATTERN}/{suffix}"


def topic_matches(pattern: str, topic: str) -> bool:
    """Whether *topic* matches an MQTT subscription *pattern*.

    Supports ``+`` (exactly one segment) and a trailing ``#`` (any
    remainder, including none).
    """
    pattern_parts = pattern.split("/")
    topic_parts = topic.split("/")
    for index, part in enumerate(pattern_parts):
        if part == "#":
            return True
        if index >= len(topic_parts):
            return False
        if part != "+" and part != topic_parts[index]:
            return False
    return len(pattern_parts) == len(topic_parts)
