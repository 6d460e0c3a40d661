"""
Logging Configuration Module

Console logging to stderr (colored on a terminal) plus an optional log file,
configured once from LOG_LEVEL / LOG_FILE.

Usage:
    from cohost.logger import get_logger

    logger = get_logger(__name__)
    logger.info(f"Phrase received: {text}")
"""

import logging
import sys
from pathlib import Path
from typing import Optional

CONSOLE_FORMAT = "%(asctime)s │ %(levelname)s │ %(name)s │ %(message)s"
PLAIN_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"

# Chatty at DEBUG, drowns out recognition and chat output
NOISY_LOGGERS = ("aiohttp.access", "asyncio")


class ColoredFormatter(logging.Formatter):
    """Colors the level name for terminal output."""

    COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelno, self.RESET)
        # Other handlers share the record, color a copy only
        record = logging.makeLogRecord(record.__dict__)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _console_handler(level: int, use_colors: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    if use_colors and sys.stderr.isatty():
        handler.setFormatter(ColoredFormatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _file_handler(path: Path, level: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Replace the root logger's handlers.

    Args:
        level: Log level name; unknown names fall back to INFO
        log_file: Also write to this file when given
        use_colors: Color the console output if stderr is a terminal
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(numeric_level)
    root.handlers.clear()
    root.addHandler(_console_handler(numeric_level, use_colors))
    if log_file:
        root.addHandler(_file_handler(Path(log_file), numeric_level))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.INFO))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


_initialized = False


def init_logging(level: Optional[str] = None) -> None:
    """Configure logging from settings once; ``level`` overrides LOG_LEVEL."""
    global _initialized
    if _initialized:
        return

    from cohost.config import settings
    setup_logging(level=level or settings.logging.level, log_file=settings.logging.file)
    _initialized = True
