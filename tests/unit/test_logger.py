"""
Unit tests for logging setup.
"""

import logging

import pytest

from skysale.utils.logger import SkysaleLogger, get_logger, setup_logging


@pytest.fixture(autouse=True)
def fresh_logging():
    SkysaleLogger.reset()
    yield
    SkysaleLogger.reset()


class TestSetup:
    def test_subsystem_names(self):
        assert get_logger("tiers").name == "skysale.tiers"
        assert get_logger("storage.catalog").name == "skysale.storage.catalog"

    def test_storage_quiet_at_info(self):
        setup_logging(level=logging.INFO)
        assert not get_logger("storage.sqlite").isEnabledFor(logging.INFO)
        assert get_logger("auction").isEnabledFor(logging.INFO)

    def test_storage_verbose_at_debug(self):
        setup_logging(level=logging.DEBUG)
        assert get_logger("storage.sqlite").isEnabledFor(logging.DEBUG)

    def test_log_file(self, tmp_path):
        setup_logging(log_dir=tmp_path / "logs", log_to_file=True)
        get_logger("finalize").info("Auction settled")
        for handler in logging.getLogger("skysale").handlers:
            handler.flush()

        path = SkysaleLogger.log_file()
        assert path == tmp_path / "logs" / "skysale.log"
        assert "[skysale.finalize] INFO" in path.read_text()

    def test_setup_replaces_handlers(self, tmp_path):
        setup_logging(log_dir=tmp_path, log_to_file=True)
        setup_logging(level=logging.DEBUG)
        assert len(logging.getLogger("skysale").handlers) == 1
        assert SkysaleLogger.log_file() is None
