"""
Logging setup for the FAQ retrieval core.

Every module does `logger = get_logger(__name__)`. Loggers created here do
not propagate to the root logger; each one gets:
- a console handler (coloured level names when stdout is a terminal)
- optionally, rotating files <name>.log (all levels) and <name>_errors.log

Defaults come from the LOG_* settings. set_level() changes the level of every
logger created so far, which is how the CLI's --log-level is applied.
"""

import logging
import logging.handlers
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from core.config import get_logging_settings

DEFAULT_LOG_DIR = Path(__file__).parent.parent / "logs"

CONSOLE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s"

# Loggers configured by setup_logger, by name
_managed: Dict[str, logging.Logger] = {}


class ColoredFormatter(logging.Formatter):
    """Console formatter colouring the level name on terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record):
        color = self.COLORS.get(record.levelname)
        if color and sys.stdout.isatty():
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def _level_number(level: str) -> int:
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def _is_console(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and not isinstance(
        handler, logging.FileHandler
    )


def _rotating_file(path: Path, level: int, max_bytes: int, backup_count: int):
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def setup_logger(
    name: str,
    level: str = "INFO",
    log_dir: Optional[Path] = None,
    console_output: bool = True,
    file_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure a named logger once; later calls return it unchanged.

    Args:
        name: Logger name (typically __name__ of the module)
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        log_dir: Directory for log files (default: <project>/logs)
        console_output: Attach the console handler
        file_output: Attach the rotating file handlers
        max_bytes: Size at which a log file is rotated
        backup_count: Rotated files kept per log

    Returns:
        The configured logger

    Raises:
        ValueError: If the level name is unknown
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level_number = _level_number(level)
    logger.setLevel(level_number)
    logger.propagate = False

    if console_output:
        console = logging.StreamHandler(sys.stdout)
        console.setLevel(level_number)
        console.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        logger.addHandler(console)

    if file_output:
        directory = log_dir or DEFAULT_LOG_DIR
        directory.mkdir(parents=True, exist_ok=True)
        stem = name.replace(".", "_")
        logger.addHandler(
            _rotating_file(directory / f"{stem}.log", logging.DEBUG, max_bytes, backup_count)
        )
        logger.addHandler(
            _rotating_file(
                directory / f"{stem}_errors.log", logging.ERROR, max_bytes, backup_count
            )
        )

    _managed[name] = logger
    return logger


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Logger configured from the LOG_* settings.

    Args:
        name: Logger name (typically __name__)
        level: Override of LOG_LEVEL

    Example:
        from utils.logger import get_logger
        logger = get_logger(__name__)
    """
    settings = get_logging_settings()
    return setup_logger(
        name,
        level=level or settings.LEVEL,
        log_dir=settings.DIR,
        file_output=settings.TO_FILE,
    )


def set_level(level: str) -> None:
    """Apply a level to every logger (and console handler) created so far."""
    level_number = _level_number(level)
    for logger in _managed.values():
        logger.setLevel(level_number)
        for handler in logger.handlers:
            if _is_console(handler):
                handler.setLevel(level_number)


class PerformanceLogger:
    """
    Context manager timing a block and logging its duration.

    The duration in seconds is available as `.elapsed` once the block exits.

    Example:
        with PerformanceLogger(logger, "search_faqs 'horaires'"):
            rows = await self.fetch_all(sql, params)
    """

    def __init__(
        self, logger: logging.Logger, operation: str, level: int = logging.DEBUG
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.start_time: Optional[datetime] = None
        self.elapsed: Optional[float] = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed = (datetime.now() - self.start_time).total_seconds()
        if exc_type is not None:
            self.logger.error(
                f"Failed: {self.operation} (after {self.elapsed:.3f}s) - {exc_val}"
            )
        else:
            self.logger.log(
                self.level, f"Completed: {self.operation} in {self.elapsed:.3f}s"
            )


def configure_third_party_loggers():
    """Keep the database driver and event loop loggers at WARNING."""
    for name in ("psycopg", "psycopg.pool", "asyncio"):
        logging.getLogger(name).setLevel(logging.WARNING)


configure_third_party_loggers()
