"""Logging utilities for oscdock.

Console and event-log lines share one compact format:

    [I 14:23:45.123 osc      ] send 127.0.0.1:9000 /press args=[] bytes=12
"""
import logging
import sys
import os
import threading
from pathlib import Path
from typing import Optional


_logger_init_lock = threading.Lock()

LEVEL_ENV_VAR = "OSCDOCK_LOG_LEVEL"
MODULE_WIDTH = 9


class OscdockFormatter(logging.Formatter):
    """``[level initial, HH:MM:SS.mmm, padded module basename] message``."""

    def format(self, record):
        module = record.name.rsplit('.', 1)[-1][:MODULE_WIDTH]
        stamp = f"{self.formatTime(record, '%H:%M:%S')}.{record.msecs:03.0f}"
        return f"[{record.levelname[0]} {stamp} {module:<{MODULE_WIDTH}}] {record.getMessage()}"


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a console logger for an oscdock module.

    Args:
        name: Module name (usually __name__)
        level: DEBUG/INFO/WARNING/ERROR; defaults to $OSCDOCK_LOG_LEVEL, then INFO

    Returns:
        Logger with a single stdout handler
    """
    logger = logging.getLogger(name)
    level = level or os.getenv(LEVEL_ENV_VAR, "INFO")
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    with _logger_init_lock:
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(OscdockFormatter())
            logger.addHandler(handler)

    return logger


def add_file_handler(path, loggers) -> logging.FileHandler:
    """Append records of the given loggers to an event log file.

    The file is opened in append mode and never rotated; parent
    directories are created on demand. Attaching the same path twice to a
    logger is a no-op.

    Args:
        path: Log file path
        loggers: Iterable of logger instances to attach

    Returns:
        The file handler (shared by all given loggers)
    """
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
    handler.setFormatter(OscdockFormatter())

    attached = False
    with _logger_init_lock:
        for logger in loggers:
            already = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path.resolve()
                for h in logger.handlers
            )
            if not already:
                logger.addHandler(handler)
                attached = True

    if not attached:
        handler.close()
    return handler


def set_level(level: str, prefix: str = "oscdock") -> None:
    """Apply a level to every already-created logger under prefix."""
    numeric = getattr(logging, level.upper(), logging.INFO)
    for name, logger in list(logging.root.manager.loggerDict.items()):
        if not isinstance(logger, logging.Logger):
            continue
        if name == prefix or name.startswith(prefix + "."):
            logger.setLevel(numeric)
