"""Device records and their lifecycle.

A device is a named group of cells.  Records are created implicitly
the first time a cell topic mentions the device, or explicitly by a
non-empty ``/devices/<dev>/meta/name`` message.

Invariant::

    id in registry  ⇔  device.explicit or device.cell_names

:meth:`DeviceRegistry.collect` enforces it and is called after every
operation that can break it.  The registry references cells by id
only; cell objects are owned by :class:`~cellwatch._registry.CellRegistry`.
"""

from __future__ import annotations

import bisect
import logging
from collections.abc import Iterator
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass
class Device:
    """A device record.

    Attributes:
        name: Display name, the device id until explicitly named.
        explicit: Whether a non-empty ``meta/name`` message was received.
        cell_names: Ids of the device's complete cells, strictly sorted.
    """

    name: str
    explicit: bool = False
    cell_names: list[str] = field(default_factory=list)


class DeviceRegistry:
    """Mapping from device id to :class:`Device`."""

    def __init__(self) -> None:
        self._devices: dict[str, Device] = {}

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    def __iter__(self) -> Iterator[str]:
        return iter(self._devices)

    def __len__(self) -> int:
        return len(self._devices)

    def get(self, device_id: str) -> Device | None:
        """Return the record for *device_id*, or ``None``."""
        return self._devices.get(device_id)

    def ensure(self, device_id: str) -> Device:
        """Get or create the record for *device_id*."""
        device = self._devices.get(device_id)
        if device is None:
            device = Device(name=device_id)
            self._devices[device_id] = device
            logger.debug("Device %s created", device_id)
        return device

    def set_explicit_name(self, device_id: str, name: str) -> Device:
        """Name *device_id* explicitly, creating it if needed."""
        device = self.ensure(device_id)
        device.name = name
        device.explicit = True
        return device

    def clear_explicit_name(self, device_id: str) -> None:
        """Revert *device_id* to its implicit name and collect it if unused."""
        device = self._devices.get(device_id)
        if device is None:
            return
        device.name = device_id
        device.explicit = False
        self.collect(device_id)

    def attach_cell(self, device_id: str, cell_id: str) -> None:
        """Insert *cell_id* into the device's sorted ``cell_names``."""
        names = self.ensure(device_id).cell_names
        index = bisect.bisect_left(names, cell_id)
        if index == len(names) or names[index] != cell_id:
            names.insert(index, cell_id)

    def detach_cell(self, device_id: str, cell_id: str) -> None:
        """Remove *cell_id* from the device's ``cell_names`` if present."""
        device = self._devices.get(device_id)
        if device is None:
            return
        names = device.cell_names
        index = bisect.bisect_left(names, cell_id)
        if index < len(names) and names[index] == cell_id:
            del names[index]

    def collect(self, device_id: str) -> bool:
        """Drop *device_id* when it is neither explicit nor has cells.

        Returns:
            True if the record was removed.
        """
        device = self._devices.get(device_id)
        if device is None or device.explicit or device.cell_names:
            return False
        del self._devices[device_id]
        logger.debug("Device %s removed", device_id)
        return True

    def clear(self) -> None:
        """Forget every device."""
        self._devices.clear()
