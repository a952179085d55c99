"""
Interceptors for routing standard library logging into a clusterlog ``Logger``.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .core import Logger, get_logger
from .types import LogLevel

# Rank given to stdlib DEBUG records
STDLIB_DEBUG_RANK = 1


def map_record_level(levelno: int) -> LogLevel:
    if levelno >= logging.ERROR:
        return LogLevel.ERROR
    if levelno >= logging.WARNING:
        return LogLevel.WARN
    if levelno >= logging.INFO:
        return LogLevel.INFO
    return LogLevel.DEBUG


class NotifyHandler(logging.Handler):
    """
    Redirect standard library logging records to ``Logger.notify``.

    Third-party libraries that log through ``logging`` then reach the same
    sinks (and, on workers, the same forwarding channel) as direct calls.
    """

    def __init__(self, logger: Optional[Logger] = None, level: int = logging.NOTSET):
        super().__init__(level)
        self._logger = logger

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            level = map_record_level(record.levelno)
            target = self._logger or get_logger()
            if level is LogLevel.DEBUG:
                target.notify(level, f"{record.name}: {msg}", debug_rank=STDLIB_DEBUG_RANK)
            else:
                target.notify(level, f"{record.name}: {msg}")
        except Exception:
            self.handleError(record)


def intercept_loggers(names: Iterable[str], logger: Optional[Logger] = None) -> NotifyHandler:
    """Replace the handlers of the named stdlib loggers with one ``NotifyHandler``."""
    handler = NotifyHandler(logger)
    for name in names:
        lg = logging.getLogger(name)
        lg.handlers = [handler]
        lg.propagate = False
    return handler
