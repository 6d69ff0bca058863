"""Exception hierarchy for the cell model.

All exceptions raised by cellwatch derive from :class:`CellwatchError`
so callers can catch the whole family in one clause.  Each concrete
class also inherits the builtin it specialises (``ValueError`` or
``KeyError``), which keeps ``except ValueError`` call sites working.

Failure policy:

- **MalformedTopicError**: raised by the topic parser.  The registry
  catches it inside ``dispatch()``, logs a WARNING and drops the
  message; registry state is left unchanged.
- **InvalidCellIdError**: raised when a cell id is not exactly
  ``"<device>/<control>"``.  Fatal to that construction attempt only.
- **CellNotFoundError**: raised by strict ``CellRegistry.lookup()``.
  Proxy-based access never raises; it degrades to placeholder reads.

Writes to incomplete or read-only cells are *not* errors.  They are
defined no-ops and produce no signal.
"""

from __future__ import annotations


class CellwatchError(Exception):
    """Base class for all cellwatch errors."""


class MalformedTopicError(CellwatchError, ValueError):
    """A topic does not have the ``/devices/<dev>/controls/<ctrl>`` shape."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"malformed topic: {topic!r}")
        self.topic = topic


class InvalidCellIdError(CellwatchError, ValueError):
    """A cell id is not made of exactly two slash-separated segments."""

    def __init__(self, cell_id: str) -> None:
        super().__init__(f"invalid cell id: {cell_id!r}")
        self.cell_id = cell_id


class CellNotFoundError(CellwatchError, KeyError):
    """Strict lookup of a cell id that is not in the registry."""

    def __init__(self, cell_id: str) -> None:
        super().__init__(cell_id)
        self.cell_id = cell_id

    def __str__(self) -> str:
        return f"cell not found: {self.cell_id}"
