import logging
import sys

import pytest

from circlestats.infrastructure.monitoring.logger_setup import level_from_name, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.parametrize("name, expected", [
    ("DEBUG", logging.DEBUG),
    ("warning", logging.WARNING),
    ("nonsense", logging.INFO),
    ("BASIC_FORMAT", logging.INFO),
    (None, logging.INFO),
])
def test_level_from_name(name, expected):
    assert level_from_name(name) == expected


def test_setup_logging_writes_to_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "circlestats.log"

    setup_logging(log_level=logging.DEBUG, log_file=str(log_file))
    logging.getLogger("circlestats.test").info("hello from the test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "hello from the test" in log_file.read_text(encoding="utf-8")


def test_http_client_loggers_are_quietened(restore_root_logger):
    setup_logging(log_level=logging.DEBUG)
    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("httpcore").level == logging.WARNING


def test_console_logs_go_to_stderr(restore_root_logger):
    setup_logging(log_level=logging.INFO)
    streams = [h.stream for h in logging.getLogger().handlers if type(h) is logging.StreamHandler]
    assert streams == [sys.stderr]
