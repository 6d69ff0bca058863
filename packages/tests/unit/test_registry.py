"""Tests for cellwatch._registry: dispatch, lookups and device GC.

Test Techniques Used:
    - Behavioural Testing: dispatch routes each suffix to the right setter
    - State-based Testing: device invariant after every message
    - Log Assertion: malformed topics dropped with a WARNING via caplog
    - Idempotence: redelivery of identical messages
"""

from __future__ import annotations

import logging

import pytest

from cellwatch._bus import MockBus, NullBus
from cellwatch._cell import INCOMPLETE
from cellwatch._errors import CellNotFoundError, InvalidCellIdError
from cellwatch._registry import CellRegistry

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _meta(device: str, control: str, field: str) -> str:
    return f"/devices/{device}/controls/{control}/meta/{field}"


def _value(device: str, control: str) -> str:
    return f"/devices/{device}/controls/{control}"


def _assert_device_invariant(registry: CellRegistry) -> None:
    for device_id in registry.devices:
        device = registry.devices.get(device_id)
        assert device is not None
        assert device.explicit or device.cell_names
        assert device.cell_names == sorted(set(device.cell_names))


def _snapshot(registry: CellRegistry) -> tuple[object, ...]:
    cells = {
        cell_id: (
            cell.type,
            cell.value,
            cell.units,
            cell.name,
            cell.read_only,
            cell.error,
            cell.min,
            cell.max,
            cell.step,
        )
        for cell_id, cell in registry.cells.items()
    }
    devices = {
        device_id: registry.devices.get(device_id) for device_id in registry.devices
    }
    return (cells, repr(devices))


@pytest.fixture
def cells() -> CellRegistry:
    """Registry fed by direct dispatch calls only."""
    return CellRegistry()


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


class TestDispatch:
    """Suffix routing.

    Technique: Behavioural Testing.
    """

    def test_routes_metadata(self, cells: CellRegistry) -> None:
        cells.dispatch(_meta("kitchen", "temp1", "name"), "Temperature")
        cells.dispatch(_meta("kitchen", "temp1", "units"), "K")
        cells.dispatch(_meta("kitchen", "temp1", "readonly"), "1")
        cells.dispatch(_meta("kitchen", "temp1", "error"), "r")
        cells.dispatch(_meta("kitchen", "temp1", "min"), "-40")
        cells.dispatch(_meta("kitchen", "temp1", "max"), "125")
        cells.dispatch(_meta("kitchen", "temp1", "step"), "0.5")

        cell = cells.lookup("kitchen/temp1")
        assert cell.name == "Temperature"
        assert cell.units == "K"
        assert cell.read_only is True
        assert cell.error is True
        assert (cell.min, cell.max, cell.step) == (-40.0, 125.0, 0.5)

    def test_readonly_other_than_one_is_false(self, cells: CellRegistry) -> None:
        cells.dispatch(_meta("d", "c", "readonly"), "true")
        assert cells.lookup("d/c").read_only is False

    def test_empty_error_clears(self, cells: CellRegistry) -> None:
        cells.dispatch(_meta("d", "c", "error"), "r")
        cells.dispatch(_meta("d", "c", "error"), "")
        assert cells.lookup("d/c").error is False

    def test_metadata_only_cell_kept_but_device_collected(
        self, cells: CellRegistry
    ) -> None:
        """Metadata for an unknown cell survives until its type arrives."""
        cells.dispatch(_meta("d", "c", "units"), "W")
        assert "d/c" in cells
        assert "d" not in cells.devices

        cells.dispatch(_meta("d", "c", "type"), "power")
        cells.dispatch(_value("d", "c"), "12")
        assert cells.lookup("d/c").units == "W"
        assert cells.devices.ensure("d").cell_names == ["d/c"]

    def test_malformed_topic_dropped(
        self,
        cells: CellRegistry,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="cellwatch._registry"):
            cells.dispatch("/devices/d/controls", "1")

        assert "malformed topic" in caplog.text
        assert len(cells) == 0
        assert len(cells.devices) == 0

    def test_empty_control_id_dropped(
        self,
        cells: CellRegistry,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="cellwatch._registry"):
            cells.dispatch("/devices/d/controls/", "1")

        assert "invalid cell id" in caplog.text
        assert len(cells) == 0
        assert "d" not in cells.devices

    def test_unknown_suffix_ignored(self, cells: CellRegistry) -> None:
        cells.dispatch("/devices/d/controls/c/on", "1")
        assert "d/c" not in cells
        assert "d" not in cells.devices


class TestDeviceName:
    """Explicit device naming.

    Technique: State-based Testing.
    """

    def test_explicit_name(self, cells: CellRegistry) -> None:
        cells.dispatch_device_name("/devices/livingroom/meta/name", "Living room")
        device = cells.devices.get("livingroom")
        assert device is not None
        assert device.name == "Living room"
        assert device.explicit is True

    def test_empty_name_removes_cellless_device(self, cells: CellRegistry) -> None:
        cells.dispatch_device_name("/devices/livingroom/meta/name", "Living room")
        cells.dispatch_device_name("/devices/livingroom/meta/name", "")
        assert "livingroom" not in cells.devices

    def test_empty_name_for_unknown_device(self, cells: CellRegistry) -> None:
        cells.dispatch_device_name("/devices/ghost/meta/name", "")
        assert "ghost" not in cells.devices


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


class TestLookups:
    """get_or_create / lookup / find / listings.

    Technique: Specification-based Testing.
    """

    def test_get_or_create_validates(self, cells: CellRegistry) -> None:
        with pytest.raises(InvalidCellIdError, match="invalid cell id"):
            cells.get_or_create("no-slash")

    def test_get_or_create_interns(self, cells: CellRegistry) -> None:
        assert cells.get_or_create("d/c") is cells.get_or_create("d/c")

    def test_lookup_missing_raises(self, cells: CellRegistry) -> None:
        with pytest.raises(CellNotFoundError, match="cell not found: d/c"):
            cells.lookup("d/c")

    def test_lookup_error_is_key_error(self, cells: CellRegistry) -> None:
        with pytest.raises(KeyError):
            cells.lookup("d/c")

    def test_find_missing_is_none(self, cells: CellRegistry) -> None:
        assert cells.find("d/c") is None

    def test_list_complete_ids_sorted(self, cells: CellRegistry) -> None:
        for control, type_name in (("z", "switch"), ("a", "temperature"), ("m", "switch")):
            cells.dispatch(_meta("d", control, "type"), type_name)
            cells.dispatch(_value("d", control), "1")
        cells.dispatch(_meta("d", "incomplete_one", "type"), "voltage")

        assert cells.list_complete_ids() == ["d/a", "d/m", "d/z"]
        assert cells.list_complete_ids_by_type("switch") == ["d/m", "d/z"]
        assert cells.list_complete_ids(lambda cell: cell.control_id == "a") == ["d/a"]

    def test_clear(self, cells: CellRegistry) -> None:
        cells.dispatch(_meta("d", "c", "type"), "pushbutton")
        cells.dispatch_device_name("/devices/e/meta/name", "E")
        cells.clear()
        assert len(cells) == 0
        assert len(cells.devices) == 0


# ---------------------------------------------------------------------------
# Subscription wiring
# ---------------------------------------------------------------------------


class TestSubscribe:
    """Sticky subscription registration.

    Technique: Behavioural Testing.
    """

    def test_registers_ten_patterns(self, mock_bus: MockBus) -> None:
        cells = CellRegistry()
        cells.subscribe(mock_bus)
        assert mock_bus.patterns[0] == "/devices/+/meta/name"
        assert "/devices/+/controls/+" in mock_bus.patterns
        assert "/devices/+/controls/+/meta/step" in mock_bus.patterns
        assert len(mock_bus.patterns) == 10

    def test_default_bus_discards_writes(self, cells: CellRegistry) -> None:
        cells.dispatch(_meta("panel", "btn1", "type"), "pushbutton")
        cells.lookup("panel/btn1").send_value("1")  # NullBus: no error

    def test_null_bus_is_not_reconnecting(self) -> None:
        cells = CellRegistry()
        cells.subscribe(NullBus())
        cells.dispatch(_meta("panel", "btn1", "type"), "pushbutton")
        assert "panel/btn1" in cells


# ---------------------------------------------------------------------------
# Properties
# ---------------------------------------------------------------------------


_STREAM: list[tuple[str, str]] = [
    ("/devices/kitchen/meta/name", "Kitchen"),
    (_value("kitchen", "temp1"), "21.5"),
    (_meta("kitchen", "temp1", "type"), "temperature"),
    (_meta("kitchen", "lamp", "type"), "switch"),
    (_value("kitchen", "lamp"), "1"),
    (_meta("hall", "strip", "type"), "rgb"),
    (_value("hall", "strip"), "1;2;3"),
    (_meta("hall", "strip", "units"), ""),
    (_value("kitchen", "lamp"), ""),
    (_meta("hall", "btn", "type"), "pushbutton"),
    (_meta("kitchen", "temp1", "type"), ""),
    (_value("kitchen", "temp1"), ""),
    ("/devices/kitchen/meta/name", ""),
    (_meta("kitchen", "lamp", "type"), ""),
]


class TestProperties:
    """Invariants across a mixed message stream.

    Technique: Idempotence / Invariant Checking.
    """

    def test_device_invariant_after_every_message(self, cells: CellRegistry) -> None:
        for topic, payload in _STREAM:
            if topic.endswith("/meta/name") and "/controls/" not in topic:
                cells.dispatch_device_name(topic, payload)
            else:
                cells.dispatch(topic, payload)
            _assert_device_invariant(cells)

    def test_completeness_rule(self, cells: CellRegistry) -> None:
        for topic, payload in _STREAM:
            if "/controls/" in topic:
                cells.dispatch(topic, payload)
            for cell in cells.cells.values():
                expected = cell.type != INCOMPLETE and (
                    cell.type == "pushbutton" or cell.value is not None
                )
                assert cell.is_complete() is expected

    @pytest.mark.parametrize("index", range(len(_STREAM)))
    def test_redelivery_is_idempotent(self, cells: CellRegistry, index: int) -> None:
        for topic, payload in _STREAM[: index + 1]:
            if "/controls/" in topic:
                cells.dispatch(topic, payload)
            else:
                cells.dispatch_device_name(topic, payload)
        topic, payload = _STREAM[index]
        before = _snapshot(cells)
        if "/controls/" in topic:
            cells.dispatch(topic, payload)
        else:
            cells.dispatch_device_name(topic, payload)
        assert _snapshot(cells) == before
