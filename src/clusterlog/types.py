from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Mapping, Optional, Union


class LogLevel(str, Enum):
    """Closed set of notification levels."""

    ERROR = "error"
    WARN = "warn"
    INFO = "info"
    DEBUG = "debug"

    @classmethod
    def _missing_(cls, value: object) -> Optional["LogLevel"]:
        if isinstance(value, str):
            name = value.strip().lower()
            if name == "warning":
                name = "warn"
            for member in cls:
                if member.value == name:
                    return member
        return None

    @property
    def tag(self) -> str:
        return self.value.upper()


class SinkKind(str, Enum):
    CONSOLE = "console"
    FILE = "file"
    SYSLOG = "sysLog"


class ClusterRole(str, Enum):
    """Role of this process. ``NONE`` is a non-clustered process acting as its own master."""

    MASTER = "master"
    WORKER = "worker"
    NONE = "none"

    @property
    def owns_sinks(self) -> bool:
        return self is not ClusterRole.WORKER


class LifecycleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    FINALIZING = "finalizing"


@dataclass(frozen=True)
class LogMessage:
    """A single log call. ``debug_rank`` is only meaningful for debug messages."""

    level: LogLevel
    text: str
    debug_rank: Optional[int] = None


_CAMEL_NAMES = {
    "no_console": "noConsole",
    "no_file": "noFile",
    "no_sys_log": "noSysLog",
    "only_console": "onlyConsole",
    "only_file": "onlyFile",
    "only_sys_log": "onlySysLog",
}
_SNAKE_NAMES = {camel: snake for snake, camel in _CAMEL_NAMES.items()}


@dataclass(frozen=True)
class NotifyOptions:
    """
    Per-call sink overrides.

    Any ``only_*`` flag wins over every ``no_*`` flag. When several ``only_*``
    flags are set the first in console, file, sysLog order is used; this is a
    tie-break, callers are expected to set at most one.
    """

    no_console: bool = False
    no_file: bool = False
    no_sys_log: bool = False
    only_console: bool = False
    only_file: bool = False
    only_sys_log: bool = False

    @classmethod
    def coerce(cls, options: Union["NotifyOptions", Mapping[str, Any], None]) -> "NotifyOptions":
        """Accept an instance, ``None`` or a mapping with snake_case or camelCase keys."""
        if options is None:
            return _NO_OPTIONS
        if isinstance(options, NotifyOptions):
            return options
        values: dict[str, bool] = {}
        for key, value in options.items():
            name = _SNAKE_NAMES.get(key, key)
            if name not in _CAMEL_NAMES:
                raise ValueError(f"Unknown notify option: {key!r}")
            values[name] = bool(value)
        return cls(**values)

    def to_wire(self) -> dict[str, bool]:
        """Sparse camelCase mapping, only the flags that are set."""
        return {_CAMEL_NAMES[f.name]: True for f in fields(self) if getattr(self, f.name)}


_NO_OPTIONS = NotifyOptions()


@dataclass(frozen=True)
class Silence:
    """Silence decision for one call. Never stored on a sink."""

    console: bool = False
    file: bool = False
    sys_log: bool = False

    def for_kind(self, kind: SinkKind) -> bool:
        if kind is SinkKind.CONSOLE:
            return self.console
        if kind is SinkKind.FILE:
            return self.file
        return self.sys_log
