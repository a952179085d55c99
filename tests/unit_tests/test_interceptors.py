import io
import logging

import pytest

from clusterlog import Logger
from clusterlog.interceptors import NotifyHandler, intercept_loggers, map_record_level
from clusterlog.types import LogLevel


@pytest.mark.parametrize(
    "levelno, expected",
    [
        (logging.CRITICAL, LogLevel.ERROR),
        (logging.ERROR, LogLevel.ERROR),
        (logging.WARNING, LogLevel.WARN),
        (logging.INFO, LogLevel.INFO),
        (logging.DEBUG, LogLevel.DEBUG),
    ],
)
def test_map_record_level(levelno, expected):
    assert map_record_level(levelno) is expected


@pytest.fixture
def stdlib_logger():
    lg = logging.getLogger("clusterlog.tests.interceptors")
    lg.setLevel(logging.DEBUG)
    yield lg
    lg.handlers = []
    lg.propagate = True


def test_records_become_notifications(stdlib_logger):
    stream = io.StringIO()
    stdlib_logger.addHandler(NotifyHandler(Logger(fallback_stream=stream)))

    stdlib_logger.warning("disk %s", "full")

    assert stream.getvalue() == "[WARN] clusterlog.tests.interceptors: disk full\n"


def test_debug_records_follow_debug_level(stdlib_logger):
    stream = io.StringIO()
    logger = Logger(fallback_stream=stream)
    stdlib_logger.addHandler(NotifyHandler(logger))

    stdlib_logger.debug("hidden")
    logger.set_debug_level(1)
    stdlib_logger.debug("shown")

    assert stream.getvalue() == "[DEBUG] clusterlog.tests.interceptors: shown\n"


def test_intercept_loggers_replaces_handlers(stdlib_logger):
    stream = io.StringIO()
    stdlib_logger.addHandler(logging.NullHandler())

    handler = intercept_loggers([stdlib_logger.name], Logger(fallback_stream=stream))

    assert stdlib_logger.handlers == [handler]
    assert stdlib_logger.propagate is False
    stdlib_logger.error("boom")
    assert stream.getvalue() == "[ERROR] clusterlog.tests.interceptors: boom\n"
