"""Tests for logging setup."""

import logging

from ritual.core.logs import setup_logging


def test_setup_logging_writes_dated_file(tmp_path):
    logger = setup_logging(log_dir=tmp_path / "logs", console_level=logging.ERROR)
    try:
        logging.getLogger("ritual.sync.executor").debug("plan skipped")
        for handler in logger.handlers:
            handler.flush()

        files = list((tmp_path / "logs").glob("ritual_*.log"))
        assert len(files) == 1
        assert "ritual.sync.executor: plan skipped" in files[0].read_text()
        assert logger.handlers[0].level == logging.ERROR
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []


def test_setup_logging_replaces_handlers(tmp_path):
    setup_logging(log_dir=tmp_path)
    logger = setup_logging(log_dir=tmp_path)
    try:
        assert len(logger.handlers) == 2
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers = []
