"""
clusterlog: process-wide logging for single processes and worker clusters.

Fans each log call out to the configured sinks:
- console: standard output
- file: one file per day, old files pruned
- sysLog: remote collector over UDP, TCP or TLS

In a cluster only the master owns sinks; workers forward their calls to it.

Library: structlog event pipeline, pydantic-settings configuration, pyzmq
forwarding, orjson serialization.

Usage:
    import clusterlog

    await clusterlog.initialize({"appName": "billing", "fileLog": {"daysToKeep": 7}})
    clusterlog.error("payment gateway unreachable")
    clusterlog.debug(2, "retry scheduled")
    await clusterlog.finalize()
"""

from .config import LoggerSettings
from .core import (
    Logger,
    debug,
    error,
    finalize,
    get_logger,
    info,
    initialize,
    notify,
    set_debug_level,
    warn,
)
from .exceptions import ClusterLogError, InvalidConfiguration, LifecycleError
from .types import ClusterRole, LifecycleState, LogLevel, NotifyOptions

__all__ = [
    "ClusterLogError",
    "ClusterRole",
    "InvalidConfiguration",
    "LifecycleError",
    "LifecycleState",
    "LogLevel",
    "Logger",
    "LoggerSettings",
    "NotifyOptions",
    "debug",
    "error",
    "finalize",
    "get_logger",
    "info",
    "initialize",
    "notify",
    "set_debug_level",
    "warn",
]
