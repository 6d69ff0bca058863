"""Unit tests for cellwatch._logging: JSON formatter and config.

Test Techniques Used:
    - Specification-based Testing: JsonFormatter output schema
    - State Inspection: Root logger handler/level after configure
    - Fixture Isolation: Save/restore root logger state
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import UTC, datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from cellwatch._logging import JsonFormatter, configure_logging
from cellwatch._settings import LoggingSettings


@pytest.fixture
def _restore_root_logger() -> Iterator[None]:
    """Save and restore root logger handlers and level."""
    root = logging.getLogger()
    original_handlers = root.handlers[:]
    original_level = root.level
    yield
    for h in root.handlers:
        if h not in original_handlers:
            h.close()
    root.handlers = original_handlers
    root.setLevel(original_level)


def _make_record(message: str = "hello", **extra: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="cellwatch._registry",
        level=logging.INFO,
        pathname="test.py",
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJsonFormatter:
    """Tests for JsonFormatter output schema.

    Technique: Specification-based Testing.
    """

    def test_has_required_fields(self) -> None:
        result = json.loads(JsonFormatter(service="svc").format(_make_record()))
        assert {"timestamp", "level", "logger", "message", "service"} <= result.keys()
        assert result["service"] == "svc"

    def test_default_service_name(self) -> None:
        result = json.loads(JsonFormatter().format(_make_record()))
        assert result["service"] == "cellwatch"

    def test_timestamp_is_utc_iso8601(self) -> None:
        result = json.loads(JsonFormatter().format(_make_record()))
        assert datetime.fromisoformat(result["timestamp"]).tzinfo == UTC

    def test_version_included_only_when_set(self) -> None:
        with_version = json.loads(
            JsonFormatter(version="1.2.3").format(_make_record())
        )
        without = json.loads(JsonFormatter().format(_make_record()))
        assert with_version["version"] == "1.2.3"
        assert "version" not in without

    def test_context_fields_lifted(self) -> None:
        record = _make_record("Cell erased", cell="kitchen/temp1", device="kitchen")
        result = json.loads(JsonFormatter().format(record))
        assert result["cell"] == "kitchen/temp1"
        assert result["device"] == "kitchen"
        assert "topic" not in result

    def test_exception_included_when_present(self) -> None:
        record = _make_record()
        record.exc_info = (ValueError, ValueError("boom"), None)
        result = json.loads(JsonFormatter().format(record))
        assert "ValueError" in result["exception"]

    def test_single_line(self) -> None:
        record = _make_record("line one\nline two")
        assert "\n" not in JsonFormatter().format(record)


class TestConfigureLogging:
    """Tests for configure_logging() root logger setup.

    Technique: State Inspection.
    """

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_json_mode_sets_json_formatter(self) -> None:
        configure_logging(LoggingSettings(format="json"))
        handler = logging.getLogger().handlers[0]
        assert isinstance(handler.formatter, JsonFormatter)

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_text_mode_sets_standard_formatter(self) -> None:
        configure_logging(LoggingSettings(format="text"))
        handler = logging.getLogger().handlers[0]
        assert not isinstance(handler.formatter, JsonFormatter)

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_sets_root_logger_level(self) -> None:
        configure_logging(LoggingSettings(level="WARNING"))
        assert logging.getLogger().level == logging.WARNING

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_clears_existing_handlers(self) -> None:
        root = logging.getLogger()
        dummy = logging.StreamHandler()
        root.addHandler(dummy)
        configure_logging(LoggingSettings())
        assert dummy not in root.handlers

    @pytest.mark.usefixtures("_restore_root_logger")
    def test_file_handler_uses_configured_size(self, tmp_path: Path) -> None:
        settings = LoggingSettings(
            file=str(tmp_path / "cellwatch.log"),
            max_file_size_mb=2,
            backup_count=5,
        )
        configure_logging(settings, service="dash")

        rotating = [
            h for h in logging.getLogger().handlers if isinstance(h, RotatingFileHandler)
        ]
        assert len(rotating) == 1
        assert rotating[0].maxBytes == 2 * 1024 * 1024
        assert rotating[0].backupCount == 5
