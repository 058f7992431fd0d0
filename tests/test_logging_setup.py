"""
Tests for logging configuration.
"""

from __future__ import annotations

import logging

import pytest

from ushield.logging_setup import LOG_FORMAT, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_level_and_format(restore_root_logger) -> None:
    setup_logging("debug")

    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert root.handlers[0].formatter._fmt == LOG_FORMAT


def test_unknown_level_falls_back_to_info(restore_root_logger) -> None:
    setup_logging("chatty")

    assert restore_root_logger.level == logging.INFO


def test_log_file(restore_root_logger, temp_dir) -> None:
    log_file = temp_dir / "ushield.log"
    setup_logging("info", str(log_file))

    logging.getLogger("ushield.test").info("device snapshot refreshed")
    for handler in restore_root_logger.handlers:
        handler.flush()

    assert "[INFO] ushield.test: device snapshot refreshed" in log_file.read_text()
