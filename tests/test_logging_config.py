"""Tests for logging_config module."""

import logging
import logging.handlers

import pytest

from retro_hayes.logging_config import set_debug, setup_logging


@pytest.fixture(autouse=True)
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


class TestSetupLogging:
    def test_stderr_default(self):
        setup_logging()
        root = logging.getLogger()
        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)

    def test_file(self, tmp_path):
        path = tmp_path / "modem.log"
        setup_logging(log_target=str(path), level="DEBUG")
        logging.getLogger("retro_hayes.test").debug("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()
        assert "hello file" in path.read_text()

    def test_file_with_console(self, tmp_path):
        setup_logging(log_target=str(tmp_path / "modem.log"), console=True)
        kinds = {type(h) for h in logging.getLogger().handlers}
        assert kinds == {logging.FileHandler, logging.StreamHandler}


class TestSetDebug:
    def test_toggle(self):
        setup_logging(level="WARNING")
        set_debug(True, logging.WARNING)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert all(h.level == logging.DEBUG for h in root.handlers)
        set_debug(False, logging.WARNING)
        assert root.level == logging.WARNING
