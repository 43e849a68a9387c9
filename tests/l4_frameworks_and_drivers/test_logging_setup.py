"""Tests for file-based logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from speechtide.l4_frameworks_and_drivers.logging_setup import setup_file_logging


@pytest.fixture
def tide_logger():
    logger = logging.getLogger('tide')
    handlers, level = list(logger.handlers), logger.level
    yield logger
    for handler in logger.handlers[len(handlers) :]:
        handler.close()
    logger.handlers = handlers
    logger.setLevel(level)


class TestSetupFileLogging:
    def test_creates_log_file(self, tmp_path: Path, tide_logger):
        log_path = setup_file_logging(tmp_path / 'logs')
        assert log_path == tmp_path / 'logs' / 'speechtide.log'
        assert 'Logging started' in log_path.read_text(encoding='utf-8')
        assert tide_logger.level == logging.INFO

    def test_debug_level(self, tmp_path: Path, tide_logger):
        log_path = setup_file_logging(tmp_path, debug=True)
        logging.getLogger('tide.worker').debug('decoder detail')
        for handler in tide_logger.handlers:
            handler.flush()
        assert tide_logger.level == logging.DEBUG
        assert 'decoder detail' in log_path.read_text(encoding='utf-8')
