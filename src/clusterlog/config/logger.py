"""
Logger Configuration.

Top-level options accepted by ``initialize``. Values may come from the
mapping passed by the caller (snake_case or camelCase keys) and from
``CLOG_``-prefixed environment variables, nested with ``__``::

    CLOG_APP_NAME=billing
    CLOG_FILE_LOG__DAYS_TO_KEEP=14
    CLOG_SYS_LOG__HOST=logs.internal
"""

from __future__ import annotations

import re
from typing import Any, Mapping, Optional, Union

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import InvalidConfiguration
from .cluster import ClusterSettings
from .sinks import FileLogSettings, SysLogSettings
from .watchdog import WatchdogSettings

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")
_LEGACY_KEYS = {"disable_console_log": "disable_console"}


def normalize_option_keys(options: Mapping[str, Any]) -> dict[str, Any]:
    """Convert camelCase keys to snake_case, recursing into nested mappings."""
    normalized: dict[str, Any] = {}
    for key, value in options.items():
        name = _CAMEL_BOUNDARY.sub("_", str(key)).lower()
        name = _LEGACY_KEYS.get(name, name)
        if isinstance(value, Mapping):
            value = normalize_option_keys(value)
        normalized[name] = value
    return normalized


class LoggerSettings(BaseSettings):
    """Complete logger configuration, validated once per ``initialize``."""

    model_config = SettingsConfigDict(
        env_prefix="CLOG_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    app_name: str = Field(min_length=1, description="Application name, used for file names and registration")
    disable_console: bool = Field(default=False, description="Do not create the console sink")
    file_log: Optional[FileLogSettings] = Field(default=None, description="Daily file sink")
    sys_log: Optional[SysLogSettings] = Field(default=None, description="Remote syslog sink")
    debug_level: int = Field(default=0, ge=0, description="Highest debug rank that is emitted")
    using_cluster: bool = Field(default=False, description="Forward worker logs to the master process")
    cluster: ClusterSettings = Field(default_factory=ClusterSettings, description="Forwarding channel")
    server_watchdog: Optional[WatchdogSettings] = Field(default=None, description="Process heartbeat")
    shutdown_timeout: float = Field(default=10.0, gt=0, description="Seconds to wait for sinks on finalize")

    @field_validator("app_name")
    @classmethod
    def _app_name_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("app_name must not be blank")
        return value

    @property
    def send_info_notifications(self) -> bool:
        return self.sys_log is not None and self.sys_log.send_info_notifications

    @classmethod
    def from_options(cls, options: Union["LoggerSettings", Mapping[str, Any], None]) -> "LoggerSettings":
        """Validate caller options, raising ``InvalidConfiguration`` on any problem."""
        if options is None:
            raise InvalidConfiguration("Options not set")
        if isinstance(options, LoggerSettings):
            return options
        try:
            return cls(**normalize_option_keys(options))
        except ValidationError as exc:
            raise InvalidConfiguration.from_validation_error(exc) from exc
