"""Cell registry and message dispatch.

:class:`CellRegistry` owns every :class:`~cellwatch._cell.Cell` and the
:class:`~cellwatch._devices.DeviceRegistry`.  Inbound bus messages are
parsed, the addressed cell is interned, and the payload is routed to
the cell method matching the topic suffix::

    /devices/{dev}/meta/name                     → device name
    /devices/{dev}/controls/{ctrl}               → Cell.receive_value
    /devices/{dev}/controls/{ctrl}/meta/type     → Cell.set_type
    /devices/{dev}/controls/{ctrl}/meta/name     → Cell.set_name
    /devices/{dev}/controls/{ctrl}/meta/units    → Cell.set_units
    /devices/{dev}/controls/{ctrl}/meta/readonly → Cell.set_read_only
    /devices/{dev}/controls/{ctrl}/meta/error    → Cell.set_error
    /devices/{dev}/controls/{ctrl}/meta/min      → Cell.set_min
    /devices/{dev}/controls/{ctrl}/meta/max      → Cell.set_max
    /devices/{dev}/controls/{ctrl}/meta/step     → Cell.set_step

Dispatch is synchronous and the model is a projection of the message
stream: redelivering a retained ``(topic, payload)`` reproduces the
same state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from types import MappingProxyType

from cellwatch._bus import BusPort, Message, NullBus, ReconnectingBus
from cellwatch._cell import Cell
from cellwatch._devices import DeviceRegistry
from cellwatch._errors import (
    CellNotFoundError,
    InvalidCellIdError,
    MalformedTopicError,
)
from cellwatch._proxy import CellProxy
from cellwatch._topics import (
    CELL_SUFFIXES,
    DEVICE_NAME_PATTERN,
    ERROR_SUFFIX,
    MAX_SUFFIX,
    MIN_SUFFIX,
    NAME_SUFFIX,
    READONLY_SUFFIX,
    STEP_SUFFIX,
    TYPE_SUFFIX,
    UNITS_SUFFIX,
    VALUE_SUFFIX,
    cell_pattern,
    device_id_from_topic,
    parse_cell_topic,
)

logger = logging.getLogger(__name__)

CellHandler = Callable[[Cell, str], None]

_CELL_HANDLERS: Mapping[str | None, CellHandler] = {
    VALUE_SUFFIX: lambda cell, payload: cell.receive_value(payload),
    TYPE_SUFFIX: lambda cell, payload: cell.set_type(payload),
    NAME_SUFFIX: lambda cell, payload: cell.set_name(payload),
    UNITS_SUFFIX: lambda cell, payload: cell.set_units(payload),
    READONLY_SUFFIX: lambda cell, payload: cell.set_read_only(payload == "1"),
    ERROR_SUFFIX: lambda cell, payload: cell.set_error(bool(payload)),
    MIN_SUFFIX: lambda cell, payload: cell.set_min(payload),
    MAX_SUFFIX: lambda cell, payload: cell.set_max(payload),
    STEP_SUFFIX: lambda cell, payload: cell.set_step(payload),
}


class CellRegistry:
    """Live model of every device and cell seen on the bus.

    Args:
        bus: Outbound sender for cell writes.  Replaced by
            :meth:`subscribe`; defaults to a :class:`NullBus`.
    """

    def __init__(self, bus: BusPort | None = None) -> None:
        self.devices = DeviceRegistry()
        self._cells: dict[str, Cell] = {}
        self._bus: BusPort = bus if bus is not None else NullBus()

    # -- Mapping views -------------------------------------------------------

    def __contains__(self, cell_id: object) -> bool:
        return cell_id in self._cells

    def __iter__(self) -> Iterator[str]:
        return iter(self._cells)

    def __len__(self) -> int:
        return len(self._cells)

    @property
    def cells(self) -> Mapping[str, Cell]:
        """Read-only view of all live cells, complete or not."""
        return MappingProxyType(self._cells)

    # -- Wiring --------------------------------------------------------------

    def subscribe(self, bus: BusPort) -> None:
        """Register the sticky subscriptions and send writes through *bus*.

        Buses that announce reconnections get :meth:`clear` as a connect
        callback, so the model is rebuilt from the replayed state.
        """
        self._bus = bus
        if isinstance(bus, ReconnectingBus):
            bus.on_connect(self.clear)
        bus.add_sticky_subscription(DEVICE_NAME_PATTERN, self._on_device_name)
        for suffix in CELL_SUFFIXES:
            bus.add_sticky_subscription(cell_pattern(suffix), self._on_cell_message)

    def _on_device_name(self, message: Message) -> None:
        self.dispatch_device_name(message.topic, message.payload)

    def _on_cell_message(self, message: Message) -> None:
        self.dispatch(message.topic, message.payload)

    # -- Dispatch ------------------------------------------------------------

    def dispatch(self, topic: str, payload: str) -> None:
        """Apply one cell message to the model.

        Malformed topics and cell ids are logged and dropped.
        """
        try:
            address = parse_cell_topic(topic)
        except MalformedTopicError:
            logger.warning(
                "Dropping message on malformed topic %s",
                topic,
                extra={"topic": topic},
            )
            return

        self.devices.ensure(address.device_id)
        try:
            handler = _CELL_HANDLERS.get(address.suffix)
            if handler is None:
                logger.debug(
                    "Ignoring unknown cell topic suffix %r on %s",
                    address.suffix,
                    topic,
                    extra={"topic": topic},
                )
                return
            try:
                cell = self.get_or_create(address.cell_id)
            except InvalidCellIdError:
                logger.warning(
                    "Dropping message for invalid cell id %s",
                    address.cell_id,
                    extra={"topic": topic},
                )
                return
            handler(cell, payload)
        finally:
            self.devices.collect(address.device_id)

    def dispatch_device_name(self, topic: str, payload: str) -> None:
        """Apply a ``/devices/<dev>/meta/name`` message."""
        try:
            device_id = device_id_from_topic(topic)
        except MalformedTopicError:
            logger.warning(
                "Dropping message on malformed topic %s",
                topic,
                extra={"topic": topic},
            )
            return
        if payload == "":
            self.devices.clear_explicit_name(device_id)
        else:
            self.devices.set_explicit_name(device_id, payload)

    # -- Cells ---------------------------------------------------------------

    def get_or_create(self, cell_id: str) -> Cell:
        """Return the cell for *cell_id*, creating an incomplete one.

        Raises:
            InvalidCellIdError: If *cell_id* is not ``"<device>/<control>"``.
        """
        cell = self._cells.get(cell_id)
        if cell is None:
            cell = Cell(cell_id, self)
            self._cells[cell_id] = cell
            logger.debug("Cell %s created", cell_id, extra={"cell": cell_id})
        return cell

    def lookup(self, cell_id: str) -> Cell:
        """Return the cell for *cell_id*.

        Raises:
            CellNotFoundError: If no such cell exists.
        """
        try:
            return self._cells[cell_id]
        except KeyError:
            raise CellNotFoundError(cell_id) from None

    def find(self, cell_id: str) -> Cell | None:
        """Return the cell for *cell_id*, or ``None``."""
        return self._cells.get(cell_id)

    def proxy(self, cell_id: str) -> CellProxy:
        """Return a never-failing view of *cell_id*."""
        return CellProxy(cell_id, self)

    def list_complete_ids(
        self,
        predicate: Callable[[Cell], bool] | None = None,
    ) -> list[str]:
        """Sorted ids of complete cells, optionally filtered by *predicate*."""
        return sorted(
            cell_id
            for cell_id, cell in self._cells.items()
            if cell.is_complete() and (predicate is None or predicate(cell))
        )

    def list_complete_ids_by_type(self, type_name: str) -> list[str]:
        """Sorted ids of complete cells whose declared type is *type_name*."""
        return self.list_complete_ids(lambda cell: cell.type == type_name)

    def clear(self) -> None:
        """Forget every cell and device."""
        self._cells.clear()
        self.devices.clear()
        logger.info("Cell registry cleared")

    # -- CellOwner -----------------------------------------------------------

    def cell_completed(self, cell: Cell) -> None:
        if self._cells.get(cell.id) is cell:
            self.devices.attach_cell(cell.device_id, cell.id)

    def cell_degraded(self, cell: Cell) -> None:
        if self._cells.get(cell.id) is not cell:
            return
        self.devices.detach_cell(cell.device_id, cell.id)
        self.devices.collect(cell.device_id)
        if cell.is_erasable():
            del self._cells[cell.id]
            logger.info(
                "Cell %s erased",
                cell.id,
                extra={"cell": cell.id, "device": cell.device_id},
            )

    def send(self, topic: str, payload: str) -> None:
        self._bus.send(topic, payload, False)
