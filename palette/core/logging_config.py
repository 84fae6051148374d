"""
Palette Logging Configuration

All package loggers hang off the "palette" logger. Handlers are installed
once on that logger; module loggers only propagate to it.
"""

import logging
import sys
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

ROOT_LOGGER_NAME = "palette"

DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
VERBOSE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d %(funcName)s() | %(message)s"
SIMPLE_FORMAT = "%(levelname)s: %(message)s"

DATE_FORMAT = "%H:%M:%S"


class LogLevel(Enum):
    """Levels accepted by setup_logging."""
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    CRITICAL = logging.CRITICAL


_configured = False


def _build_handlers(
    formatter: logging.Formatter,
    log_file: Optional[Path],
    console_output: bool
) -> List[logging.Handler]:
    handlers: List[logging.Handler] = []

    # stderr so `palette run` can print the run JSON on stdout
    if console_output:
        handlers.append(logging.StreamHandler(sys.stderr))

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(
    level: LogLevel = LogLevel.INFO,
    log_file: Optional[Path] = None,
    verbose: bool = False,
    console_output: bool = True
) -> logging.Logger:
    """
    Configure the palette logger.

    Calling this again replaces the previous handlers, so the CLI can
    reconfigure after a module has already triggered the default setup.

    Args:
        level: Minimum level for the palette logger and its handlers
        log_file: Optional file that receives a copy of every record
        verbose: Include line number and function name in each record
        console_output: Write records to stderr

    Returns:
        The configured palette logger
    """
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(VERBOSE_FORMAT if verbose else DEFAULT_FORMAT, datefmt=DATE_FORMAT)
    for handler in _build_handlers(formatter, log_file, console_output):
        handler.setLevel(level.value)
        root.addHandler(handler)

    root.setLevel(level.value)
    _configured = True
    root.debug(f"Logging configured at {level.name} (verbose={verbose}, file={log_file})")
    return root


def get_logger(name: str) -> logging.Logger:
    """Return the palette.<name> logger, configuring defaults on first use."""
    if not _configured:
        setup_logging()

    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


class LogContext:
    """
    Temporarily run a logger at another level.

        with LogContext(get_logger("llm.structured"), LogLevel.ERROR):
            ...
    """

    def __init__(self, logger: logging.Logger, level: LogLevel):
        self.logger = logger
        self.level = level
        self._saved: Dict[str, int] = {}

    def __enter__(self) -> logging.Logger:
        self._saved[self.logger.name] = self.logger.level
        self.logger.setLevel(self.level.value)
        return self.logger

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.setLevel(self._saved.pop(self.logger.name))
        return False
