"""Tests for logging setup."""

import logging

import pytest

from webcrawl.logging_config import NOISY_LOGGERS, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    noisy_levels = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield root
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)
    for name, noisy_level in noisy_levels.items():
        logging.getLogger(name).setLevel(noisy_level)


class TestSetupLogging:
    """Root logger configuration used by the CLI."""

    def test_level_and_stderr_handler(self, restore_root_logger):
        setup_logging("debug")

        assert restore_root_logger.level == logging.DEBUG
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0], logging.StreamHandler)

    def test_unknown_level_falls_back_to_info(self, restore_root_logger):
        setup_logging("chatty")

        assert restore_root_logger.level == logging.INFO

    def test_noisy_loggers_quieted(self, restore_root_logger):
        setup_logging("DEBUG")

        for name in NOISY_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_log_file_directory_created(self, restore_root_logger, tmp_path):
        log_file = tmp_path / "logs" / "crawl.log"

        setup_logging("INFO", log_file=str(log_file))
        logging.getLogger("webcrawl.test").info("page crawled")
        for handler in restore_root_logger.handlers:
            handler.flush()

        assert "page crawled" in log_file.read_text()
