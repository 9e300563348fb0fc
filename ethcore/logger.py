"""
Logging setup for the engine and the CLI.

Console output is coloured by level; the file log is plain text, rotated by
size, and names the thread so host-engine chunk workers can be told apart.
Chatty third-party loggers (filelock logs every acquire/release, pycuda its
compiler cache) are held at WARNING unless the engine itself runs at DEBUG.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional
from colorama import Fore, Style, init

from .constants import LOG_MAX_SIZE, LOG_BACKUP_COUNT, DEFAULT_LOG_FILE

init(autoreset=True)

CONSOLE_FORMAT = '%(asctime)s %(levelname)-7s %(message)s'
FILE_FORMAT = '%(asctime)s [%(threadName)s] %(name)s %(levelname)s: %(message)s'

# Libraries whose INFO/DEBUG records drown out dataset and batch progress
NOISY_LOGGERS = ("filelock", "pycuda")


class ColoredFormatter(logging.Formatter):
    """Colours the level name only, so hashes and sizes stay readable."""

    LEVEL_COLORS = {
        logging.DEBUG: Fore.CYAN,
        logging.INFO: Fore.GREEN,
        logging.WARNING: Fore.YELLOW,
        logging.ERROR: Fore.RED,
        logging.CRITICAL: Fore.RED + Style.BRIGHT,
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, Fore.WHITE)
        plain = record.levelname
        record.levelname = f"{color}{plain}{Style.RESET_ALL}"
        try:
            return super().format(record)
        finally:
            record.levelname = plain


def parse_level(value, default: int = logging.INFO) -> int:
    """Accept a logging level as an int or a name such as 'debug'."""
    if value is None:
        return default
    if isinstance(value, int):
        return value
    level = logging.getLevelName(str(value).upper())
    return level if isinstance(level, int) else default


def setup_logging(
    log_file: str = DEFAULT_LOG_FILE,
    level: int = logging.INFO,
    console_level: Optional[int] = None,
    enable_file_logging: bool = True,
    max_bytes: int = LOG_MAX_SIZE,
    backup_count: int = LOG_BACKUP_COUNT,
    enable_console_logging: bool = True,
    quiet: Iterable[str] = NOISY_LOGGERS,
) -> None:
    """
    Install the console and rotating file handlers on the root logger.

    Args:
        log_file: Path of the rotating log file
        level: Root level, also used by the file handler
        console_level: Console threshold (INFO when None)
        enable_file_logging: Write ``log_file``
        max_bytes: Rotate once the file reaches this size
        backup_count: Rotated files to keep
        enable_console_logging: Log to stdout
        quiet: Logger names held at WARNING unless ``level`` is DEBUG

    Example:
        >>> setup_logging(log_file="engine.log", level=logging.DEBUG, console_level=logging.INFO)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Re-running (tests, repeated CLI calls) must not stack handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    if enable_console_logging:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO if console_level is None else console_level)
        console_handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt='%H:%M:%S'))
        root_logger.addHandler(console_handler)

    if enable_file_logging:
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding='utf-8'
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        root_logger.addHandler(file_handler)

    for name in quiet:
        logging.getLogger(name).setLevel(logging.NOTSET if level <= logging.DEBUG else logging.WARNING)

    logging.debug(f"Logging initialized (file={log_file if enable_file_logging else 'off'})")
