"""Tests for logging.py."""

import json
import logging

import pytest
import structlog
from stacklayer.logging import bind_unit, configure_logging
from stacklayer.units import ResourceIntent, declare
from structlog.testing import capture_logs


@pytest.fixture
def restore_logging():
    """Put back the test suite's logging setup after reconfiguring it."""
    saved = structlog.get_config()
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    structlog.configure(**saved)
    root.handlers[:] = handlers
    root.setLevel(level)


class TestBindUnit:
    """Tests for per-unit loggers."""

    def test_binds_unit_fields(self, primary):
        unit = declare("Network", primary, [ResourceIntent("vpc", "Vpc")])

        with capture_logs() as logs:
            bind_unit(unit, wave=1).info("unit_started", intents=1)

        assert logs[0]["event"] == "unit_started"
        assert logs[0]["unit"] == "Network"
        assert logs[0]["locality"] == "111111111111/ap-southeast-2"
        assert logs[0]["wave"] == 1


class TestConfigureLogging:
    """Tests for the structlog/stdlib bridge."""

    def test_json_to_stderr(self, restore_logging, capsys):
        configure_logging("warning", json_output=True)

        structlog.get_logger("stacklayer.state").warning("state_saved", resources=3)

        captured = capsys.readouterr()
        assert captured.out == ""
        event = json.loads(captured.err.strip().splitlines()[-1])
        assert event["event"] == "state_saved"
        assert event["level"] == "warning"
        assert event["logger"] == "stacklayer.state"
        assert event["resources"] == 3

    def test_level_filters_events(self, restore_logging, capsys):
        configure_logging(logging.ERROR, json_output=True)

        structlog.get_logger("stacklayer.state").info("state_loaded")

        assert capsys.readouterr().err == ""
        assert logging.getLogger().level == logging.ERROR
