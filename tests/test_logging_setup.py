"""Tests for logging setup."""

import logging
import logging.handlers

from source_tracking.logging_setup import get_logger, setup_logging


def test_file_logging(tmp_path):
    """Test that log lines reach a rotating log file."""
    log_file = tmp_path / "logs" / "tracking.log"

    logger = setup_logging(str(log_file), "INFO", max_bytes=1024, backup_count=1)
    get_logger("session").info("hello from the session")
    for handler in logger.handlers:
        handler.flush()

    assert isinstance(logger.handlers[0], logging.handlers.RotatingFileHandler)
    assert "hello from the session" in log_file.read_text()
    assert " - source_tracking.session - INFO - " in log_file.read_text()

    for handler in logger.handlers:
        handler.close()
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def test_console_only():
    """Test setup without a log file."""
    logger = setup_logging(None, "warning")

    assert logger.level == logging.WARNING
    assert len(logger.handlers) == 1

    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)


def test_get_logger_names():
    """Test child logger naming."""
    assert get_logger().name == "source_tracking"
    assert get_logger("tracking").name == "source_tracking.tracking"
