"""cellwatch.

A live, typed, in-memory model of the devices and controls published
on a ``/devices/...`` MQTT control bus.
"""

from importlib.metadata import PackageNotFoundError, version

from cellwatch._bus import (
    BusPort,
    Message,
    MessageHandler,
    MockBus,
    MqttBus,
    NullBus,
    ReconnectingBus,
)
from cellwatch._cell import INCOMPLETE, Cell
from cellwatch._devices import Device, DeviceRegistry
from cellwatch._errors import (
    CellNotFoundError,
    CellwatchError,
    InvalidCellIdError,
    MalformedTopicError,
)
from cellwatch._logging import JsonFormatter, configure_logging
from cellwatch._proxy import PLACEHOLDER, CellProxy, PlaceholderCell
from cellwatch._registry import CellRegistry
from cellwatch._settings import LoggingSettings, MqttSettings, Settings
from cellwatch._topics import (
    CellAddress,
    command_topic,
    device_id_from_topic,
    parse_cell_topic,
    topic_matches,
)
from cellwatch._types import (
    CONTROL_TYPES,
    ControlType,
    Rgb,
    ValueKind,
    control_type,
    decode_value,
    encode_value,
)

try:
    __version__ = version("cellwatch")
except PackageNotFoundError:
    # Editable installs without metadata
    __version__ = "0.0.0+unknown"

__all__ = [
    # Version
    "__version__",
    # Bus
    "BusPort",
    "Message",
    "MessageHandler",
    "MockBus",
    "MqttBus",
    "NullBus",
    "ReconnectingBus",
    # Model
    "INCOMPLETE",
    "Cell",
    "CellProxy",
    "CellRegistry",
    "Device",
    "DeviceRegistry",
    "PLACEHOLDER",
    "PlaceholderCell",
    # Topics
    "CellAddress",
    "command_topic",
    "device_id_from_topic",
    "parse_cell_topic",
    "topic_matches",
    # Types
    "CONTROL_TYPES",
    "ControlType",
    "Rgb",
    "ValueKind",
    "control_type",
    "decode_value",
    "encode_value",
    # Errors
    "CellNotFoundError",
    "CellwatchError",
    "InvalidCellIdError",
    "MalformedTopicError",
    # Logging
    "JsonFormatter",
    "configure_logging",
    # Settings
    "LoggingSettings",
    "MqttSettings",
    "Settings",
]
