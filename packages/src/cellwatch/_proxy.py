"""Safe indirect references to cells.

A :class:`CellProxy` names a cell by id and resolves it on every
access.  Consumers such as dashboards can hold proxies for cells that
do not exist yet, or no longer exist, without special-casing: reads
fall back to the shared :data:`PLACEHOLDER` and writes are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from cellwatch._cell import INCOMPLETE
from cellwatch._types import CellValue, Rgb, ValueKind

if TYPE_CHECKING:
    from cellwatch._cell import Cell
    from cellwatch._registry import CellRegistry


@dataclass(frozen=True, slots=True)
class PlaceholderCell:
    """Immutable stand-in for a cell that is not in the registry."""

    id: str = "nosuchdev/nosuchcell"
    device_id: str = "nosuchdev"
    control_id: str = "nosuchcell"
    name: str = "nosuchcell"
    type: str = INCOMPLETE
    units: str = ""
    value: CellValue = None
    read_only: bool = False
    error: bool = False
    min: float | None = None
    max: float | None = None
    step: float | None = None

    @property
    def value_kind(self) -> ValueKind:
        return ValueKind.STRING

    def is_complete(self) -> bool:
        return False

    def string_value(self) -> str:
        return ""


PLACEHOLDER = PlaceholderCell()
"""The single placeholder shared by every unresolved proxy."""


class CellProxy:
    """Lookup-only view of the cell named *cell_id* in *registry*."""

    __slots__ = ("_registry", "id")

    def __init__(self, cell_id: str, registry: CellRegistry) -> None:
        self.id = cell_id
        self._registry = registry

    def __repr__(self) -> str:
        return f"CellProxy({self.id!r}, resolved={self.resolve() is not None})"

    def resolve(self) -> Cell | None:
        """Return the live cell, or ``None`` when the id is unknown."""
        return self._registry.find(self.id)

    @property
    def cell(self) -> Cell | PlaceholderCell:
        """The live cell, or :data:`PLACEHOLDER`."""
        cell = self.resolve()
        return PLACEHOLDER if cell is None else cell

    def is_complete(self) -> bool:
        cell = self.resolve()
        return cell is not None and cell.is_complete()

    def send_value(self, new_value: str | bool | float | Rgb | None) -> None:
        """Forward a write to the live cell.

        ``None`` marks a value that failed validation upstream and is
        dropped, as is any write while the id is unresolved.
        """
        if new_value is None:
            return
        cell = self.resolve()
        if cell is not None:
            cell.send_value(new_value)

    # -- Delegated reads -----------------------------------------------------

    @property
    def value(self) -> CellValue:
        return self.cell.value

    @property
    def value_kind(self) -> ValueKind:
        return self.cell.value_kind

    def string_value(self) -> str | None:
        return self.cell.string_value()

    @property
    def type(self) -> str:
        return self.cell.type

    @property
    def name(self) -> str:
        return self.cell.name

    @property
    def units(self) -> str:
        return self.cell.units

    @property
    def read_only(self) -> bool:
        return self.cell.read_only

    @property
    def error(self) -> bool:
        return self.cell.error

    @property
    def min(self) -> float | None:
        return self.cell.min

    @property
    def max(self) -> float | None:
        return self.cell.max

    @property
    def step(self) -> float | None:
        return self.cell.step
