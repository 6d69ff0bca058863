"""Per-control state machine.

A :class:`Cell` holds the live state of one control,
``"<device>/<control>"``: its declared type, current value and
metadata.  States::

    Incomplete ──(type known and value present, or pushbutton)──▶ Complete
    Complete   ──(type cleared or value removed)────────────────▶ Incomplete
    Incomplete ──(type == "incomplete" and value is None)───────▶ Erased

Cells never touch the registries directly.  Completeness changes and
outbound writes are reported to a :class:`CellOwner`, which keeps the
device index sorted and publishes to the bus.

The value is exposed as a read-only property.  Local writes go through
:meth:`Cell.send_value`, which stores the coerced value (optimistic
echo) and then publishes it to the command topic.
"""

from __future__ import annotations

import logging
from typing import Protocol

from cellwatch._errors import InvalidCellIdError
from cellwatch._topics import command_topic
from cellwatch._types import (
    PUSHBUTTON_PAYLOAD,
    CellValue,
    ValueKind,
    control_type,
    decode_value,
    encode_value,
    is_declared,
    parse_number,
)

logger = logging.getLogger(__name__)

INCOMPLETE = "incomplete"
"""Sentinel type of a cell whose ``meta/type`` is unknown or was cleared."""


class CellOwner(Protocol):
    """Callbacks a cell uses to report lifecycle changes and writes."""

    def cell_completed(self, cell: Cell) -> None: ...

    def cell_degraded(self, cell: Cell) -> None: ...

    def send(self, topic: str, payload: str) -> None: ...


def split_cell_id(cell_id: str) -> tuple[str, str]:
    """Split a cell id into ``(device_id, control_id)``.

    Raises:
        InvalidCellIdError: Unless *cell_id* has exactly two non-empty
            slash-separated segments.
    """
    parts = cell_id.split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidCellIdError(cell_id)
    return parts[0], parts[1]


class Cell:
    """Live state of a single control.

    Args:
        cell_id: ``"<device>/<control>"`` identity, immutable.
        owner: Receiver of completeness changes and outbound writes.

    Raises:
        InvalidCellIdError: If *cell_id* is not two segments.
    """

    def __init__(self, cell_id: str, owner: CellOwner) -> None:
        self.device_id, self.control_id = split_cell_id(cell_id)
        self.id = cell_id
        self.name = self.control_id
        self.type = INCOMPLETE
        self.units = ""
        self.read_only = False
        self.error = False
        self.min: float | None = None
        self.max: float | None = None
        self.step: float | None = None
        self._value: CellValue = None
        self._owner = owner

    def __repr__(self) -> str:
        return f"Cell({self.id!r}, type={self.type!r}, value={self._value!r})"

    # -- Reads ---------------------------------------------------------------

    @property
    def value(self) -> CellValue:
        """Current value, typed per :attr:`value_kind`."""
        return self._value

    @property
    def value_kind(self) -> ValueKind:
        """Value kind derived from :attr:`type`."""
        return control_type(self.type).kind

    def string_value(self) -> str | None:
        """Current value encoded for the wire."""
        return encode_value(self.value_kind, self._value)

    def is_complete(self) -> bool:
        """Whether both the type and the value are usable."""
        return self.type != INCOMPLETE and (
            self._is_button() or self._value is not None
        )

    def is_erasable(self) -> bool:
        """Whether neither type nor value is left, so the cell can go."""
        return self.type == INCOMPLETE and self._value is None

    def _is_button(self) -> bool:
        return self.value_kind is ValueKind.PUSHBUTTON

    def _is_text(self) -> bool:
        # Declared string types only; "incomplete" and unknown names
        # clear to None so the cell can be erased.
        return is_declared(self.type) and self.value_kind is ValueKind.STRING

    def _store(self, raw: object) -> None:
        self._value = decode_value(self.value_kind, raw, self._value)

    # -- Inbound -------------------------------------------------------------

    def set_type(self, type_name: str | None) -> None:
        """Apply a ``meta/type`` message and re-coerce the stored value."""
        self.type = type_name or INCOMPLETE
        self._fill_default_units()
        if self._value is not None:
            self._store(self._value)
        elif self._is_text():
            self._store("")
        self._update_completeness()

    def receive_value(self, payload: str | None) -> None:
        """Apply a message from the value topic.

        An empty payload means the remote side removed the value.
        """
        if not payload:
            self._value = "" if self._is_text() else None
        else:
            self._store(payload)
        self._update_completeness()

    def set_name(self, name: str) -> None:
        self.name = name

    def set_units(self, units: str) -> None:
        self.units = units
        self._fill_default_units()

    def set_read_only(self, read_only: bool) -> None:
        self.read_only = bool(read_only)

    def set_error(self, error: bool) -> None:
        self.error = bool(error)

    def set_min(self, payload: str) -> None:
        self.min = _optional_number(payload)

    def set_max(self, payload: str) -> None:
        self.max = _optional_number(payload)

    def set_step(self, payload: str) -> None:
        self.step = _optional_number(payload)

    # -- Outbound ------------------------------------------------------------

    def send_value(self, new_value: object) -> None:
        """Store *new_value* locally and publish it to the command topic.

        A no-op for incomplete or read-only cells.  An empty string on a
        non-text cell republishes the current value.  Pushbuttons always
        publish the fixed trigger payload.
        """
        if not self.is_complete() or self.read_only:
            logger.debug(
                "Ignoring write to %s (complete=%s, read_only=%s)",
                self.id,
                self.is_complete(),
                self.read_only,
            )
            return
        if new_value == "" and not self._is_text():
            new_value = self._value
        self._store(new_value)
        payload = PUSHBUTTON_PAYLOAD if self._is_button() else self.string_value()
        self._owner.send(
            command_topic(self.device_id, self.control_id),
            "" if payload is None else payload,
        )

    # -- Internal ------------------------------------------------------------

    def _fill_default_units(self) -> None:
        if not self.units and is_declared(self.type):
            self.units = control_type(self.type).units

    def _update_completeness(self) -> None:
        if self.is_complete():
            self._owner.cell_completed(self)
        else:
            self._owner.cell_degraded(self)


def _optional_number(payload: str) -> float | None:
    if not payload:
        return None
    return parse_number(payload)
