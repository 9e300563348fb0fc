"""Logging setup."""

import logging
from logging.handlers import RotatingFileHandler

import pytest

from ethcore.logger import NOISY_LOGGERS, ColoredFormatter, parse_level, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    noisy = {name: logging.getLogger(name).level for name in NOISY_LOGGERS}
    yield root
    for name, noisy_level in noisy.items():
        logging.getLogger(name).setLevel(noisy_level)
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers = handlers
    root.setLevel(level)


def test_parse_level():
    assert parse_level("debug") == logging.DEBUG
    assert parse_level("WARNING") == logging.WARNING
    assert parse_level(logging.ERROR) == logging.ERROR
    assert parse_level(None) == logging.INFO
    assert parse_level("chatty", default=logging.WARNING) == logging.WARNING


def test_handlers_installed(tmp_path, restore_root_logger):
    log_file = tmp_path / "engine.log"
    setup_logging(log_file=str(log_file), level=logging.DEBUG, console_level=logging.WARNING)
    root = restore_root_logger
    assert root.level == logging.DEBUG
    assert len(root.handlers) == 2
    console, rotating = root.handlers
    assert isinstance(console.formatter, ColoredFormatter)
    assert console.level == logging.WARNING
    assert isinstance(rotating, RotatingFileHandler)

    logging.info("dataset ready")
    rotating.flush()
    assert "dataset ready" in log_file.read_text(encoding="utf-8")


def test_file_logging_disabled(tmp_path, restore_root_logger):
    setup_logging(log_file=str(tmp_path / "engine.log"), enable_file_logging=False)
    assert len(restore_root_logger.handlers) == 1
    assert not (tmp_path / "engine.log").exists()


def test_only_level_name_is_colored():
    formatter = ColoredFormatter('%(levelname)s %(message)s')
    record = logging.LogRecord("ethash", logging.ERROR, __file__, 1, "device lost", None, None)
    text = formatter.format(record)
    assert text.endswith("\x1b[0m device lost")
    assert "ERROR" in text
    # the record itself is left untouched for other handlers
    assert record.levelname == "ERROR"


def test_file_log_names_thread(tmp_path, restore_root_logger):
    log_file = tmp_path / "engine.log"
    setup_logging(log_file=str(log_file), enable_console_logging=False)
    logging.warning("stale dataset")
    restore_root_logger.handlers[0].flush()
    assert "[MainThread]" in log_file.read_text(encoding="utf-8")


def test_noisy_libraries_quieted(tmp_path, restore_root_logger):
    setup_logging(log_file=str(tmp_path / "engine.log"), enable_file_logging=False)
    assert logging.getLogger("filelock").level == logging.WARNING
    setup_logging(log_file=str(tmp_path / "engine.log"), level=logging.DEBUG, enable_file_logging=False)
    assert logging.getLogger("filelock").level == logging.NOTSET
