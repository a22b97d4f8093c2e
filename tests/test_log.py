"""
Tests for repograb/log.py: level resolution and handler setup.
"""

import logging
import sys
from pathlib import Path

# Ensure project root on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from repograb.log import LOG_LEVEL_ENV, configure_logging, get_logger, resolve_level


@pytest.fixture(autouse=True)
def clean_logger(monkeypatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    yield
    root = logging.getLogger("repograb")
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()


class TestResolveLevel:

    def test_default_info(self):
        assert resolve_level() == logging.INFO

    def test_env_name_and_number(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "warning")
        assert resolve_level() == logging.WARNING
        monkeypatch.setenv(LOG_LEVEL_ENV, "10")
        assert resolve_level() == logging.DEBUG

    def test_unknown_env_value_falls_back(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "chatty")
        assert resolve_level() == logging.INFO

    def test_flags_beat_env(self, monkeypatch):
        monkeypatch.setenv(LOG_LEVEL_ENV, "ERROR")
        assert resolve_level(verbose=True) == logging.DEBUG
        assert resolve_level(quiet=True) == logging.WARNING


class TestConfigureLogging:

    def test_child_loggers(self):
        assert get_logger("crawler").name == "repograb.crawler"
        assert get_logger().name == "repograb"

    def test_repeat_calls_do_not_stack_handlers(self):
        configure_logging()
        logger = configure_logging(quiet=True)
        assert len(logger.handlers) == 1
        assert logger.handlers[0].level == logging.WARNING

    def test_foreign_handlers_kept(self):
        logger = logging.getLogger("repograb")
        foreign = logging.NullHandler()
        logger.addHandler(foreign)
        configure_logging()
        configure_logging()
        assert foreign in logger.handlers
        assert len(logger.handlers) == 2

    def test_file_sink_records_debug(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(log_file=log_file)
        get_logger("crawler").debug("frontier size %d", 3)
        for handler in logging.getLogger("repograb").handlers:
            handler.flush()
        text = log_file.read_text(encoding="utf-8")
        assert "DEBUG repograb.crawler: frontier size 3" in text

    def test_console_goes_to_stderr(self, capsys):
        configure_logging()
        get_logger("cache").info("cache hit")
        out, err = capsys.readouterr()
        assert out == ""
        assert "[repograb] INFO cache hit" in err
