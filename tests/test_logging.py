import json
import logging
import re
from io import StringIO

import pytest

from mcp_toolchain_manager.errors import RemoveError, log_error
from mcp_toolchain_manager.logging import (
    LOGGER_NAME,
    JsonFormatter,
    configure_logging,
    get_logger,
    log_with_data,
)

ANSI = re.compile(r"\033\[[0-9;]*m")


def decode(output: str) -> dict:
    return json.loads(ANSI.sub("", output))


class CaptureHandler(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def test_format_json_log():
    """Test JSON log formatting"""
    formatter = JsonFormatter()
    record = logging.LogRecord("test", logging.INFO, "test.py", 10, "Test message", (), None)

    data = decode(formatter.format(record))

    assert data["level"] == "INFO"
    assert data["logger"] == "test"
    assert data["msg"] == "Test message"
    assert "data" not in data


def test_format_event_dict():
    """Test event dicts are emitted as nested JSON, not stringified"""
    formatter = JsonFormatter()
    event = {"event": "download_complete", "version": "1.2.0"}
    record = logging.LogRecord("test", logging.INFO, "test.py", 10, event, (), None)

    assert decode(formatter.format(record))["msg"] == event


@pytest.mark.parametrize(
    "level,expected_color",
    [
        (logging.DEBUG, "\033[34m"),
        (logging.INFO, "\033[32m"),
        (logging.WARNING, "\033[33m"),
        (logging.ERROR, "\033[31m\033[1m"),
        (logging.CRITICAL, "\033[35m\033[1m"),
    ],
)
def test_format_json_log_colors(level, expected_color):
    """Test log level color coding"""
    formatter = JsonFormatter()
    record = logging.LogRecord("test", level, "test.py", 10, "Test message", (), None)

    output = formatter.format(record)
    assert output.startswith(expected_color)
    assert output.endswith("\033[0m")


def test_log_with_data():
    """Test structured logging with data"""
    logger = logging.getLogger("test.log_with_data")
    logger.setLevel(logging.INFO)
    handler = CaptureHandler()
    logger.addHandler(handler)
    try:
        log_with_data(logger, logging.INFO, "Test message", {"key": "value"})
        log_with_data(logger, logging.INFO, "No data")
    finally:
        logger.removeHandler(handler)

    assert handler.records[0].data == {"key": "value"}
    assert not hasattr(handler.records[1], "data")


def test_log_with_data_json_structure():
    """Test structured logging produces valid JSON"""
    logger = logging.getLogger("test.json_structure")
    logger.setLevel(logging.INFO)
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    try:
        log_with_data(logger, logging.INFO, "Checksum verified", {"version": "1.2.0"})
    finally:
        logger.removeHandler(handler)

    data = decode(stream.getvalue().strip())
    assert data["msg"] == "Checksum verified"
    assert data["data"] == {"version": "1.2.0"}


def test_get_logger_namespacing():
    assert get_logger("server").name == f"{LOGGER_NAME}.server"
    assert get_logger(f"{LOGGER_NAME}.config").name == f"{LOGGER_NAME}.config"
    assert get_logger(LOGGER_NAME).name == LOGGER_NAME


def test_configure_logging(monkeypatch):
    """Test handler is installed once and level comes from the environment"""
    app_logger = logging.getLogger(LOGGER_NAME)
    saved = (list(app_logger.handlers), app_logger.level, app_logger.propagate)
    app_logger.handlers.clear()
    monkeypatch.setenv("MCP_TOOLCHAIN_LOG_LEVEL", "debug")
    try:
        configure_logging()
        configure_logging()

        assert len(app_logger.handlers) == 1
        assert isinstance(app_logger.handlers[0].formatter, JsonFormatter)
        assert app_logger.level == logging.DEBUG
        assert app_logger.propagate is False

        configure_logging("warning")
        assert app_logger.level == logging.WARNING
    finally:
        app_logger.handlers[:] = saved[0]
        app_logger.setLevel(saved[1])
        app_logger.propagate = saved[2]


def test_log_error_attaches_details():
    """Test errors are logged with their type, context and details as data"""
    logger = logging.getLogger("test.log_error")
    logger.setLevel(logging.INFO)
    handler = CaptureHandler()
    logger.addHandler(handler)
    try:
        log_error(RemoveError("Failed to remove x"), {"version": "1.2.0"}, logger)
    finally:
        logger.removeHandler(handler)

    record = handler.records[0]
    assert record.levelno == logging.ERROR
    assert record.data["error_type"] == "RemoveError"
    assert record.data["context"] == {"version": "1.2.0"}
    assert record.data["details"] == {}
