"""
clusterlog Configuration Module.

One sub-module per concern, composed by ``LoggerSettings``:

    logger.py    top-level options (app name, debug level, cluster switch)
    sinks.py     file and syslog sinks
    cluster.py   forwarding channel
    watchdog.py  process heartbeat

Usage:
    from clusterlog.config import LoggerSettings

    settings = LoggerSettings.from_options({"appName": "billing", "fileLog": {"daysToKeep": 3}})
    settings.file_log.days_to_keep  # 3
"""

from .cluster import ClusterRoleSetting, ClusterSettings
from .logger import LoggerSettings, normalize_option_keys
from .sinks import FileLogSettings, LogFormat, SysLogProtocol, SysLogSettings, SysLogTransport
from .watchdog import WatchdogSettings

__all__ = [
    "ClusterRoleSetting",
    "ClusterSettings",
    "FileLogSettings",
    "LogFormat",
    "LoggerSettings",
    "SysLogProtocol",
    "SysLogSettings",
    "SysLogTransport",
    "WatchdogSettings",
    "normalize_option_keys",
]
