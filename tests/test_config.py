import logging
import sys

import pytest
from pydantic import ValidationError

from memokit.core.config import get_settings
from memokit.core.logging import configure_logging


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("MEMOKIT_LOG_LEVEL", "debug")
    monkeypatch.setenv("MEMOKIT_SCHEDULER", "thread")
    settings = get_settings()
    assert settings.log_level == "debug"
    assert settings.scheduler == "thread"
    assert get_settings() is settings


def test_unknown_scheduler_is_rejected(monkeypatch):
    monkeypatch.setenv("MEMOKIT_SCHEDULER", "celery")
    with pytest.raises(ValidationError):
        get_settings()


@pytest.fixture
def root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield root
    for h in list(root.handlers):
        root.removeHandler(h)
    for h in handlers:
        root.addHandler(h)
    root.setLevel(level)


def test_configure_logging_installs_one_stdout_handler(monkeypatch, root_logger):
    monkeypatch.setenv("MEMOKIT_LOG_LEVEL", "debug")
    configure_logging()
    assert root_logger.level == logging.DEBUG
    assert len(root_logger.handlers) == 1
    assert root_logger.handlers[0].stream is sys.stdout

    configure_logging("warning")
    assert root_logger.level == logging.WARNING
    assert len(root_logger.handlers) == 1
