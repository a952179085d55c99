"""
LogRouter: the single entry point for log calls.

Every call goes through the same gates in order: debug rank, process role
(workers forward and return), silencing policy, then a per-router structlog
pipeline whose last processor renders into the sink registry.
"""

from __future__ import annotations

import os
import sys
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Mapping, Optional, TextIO, Union

import structlog
from structlog.typing import EventDict, WrappedLogger

from .policy import console_silenced_by_options, resolve_silence
from .registry import SinkRegistry
from .types import ClusterRole, LogLevel, LogMessage, NotifyOptions

if TYPE_CHECKING:
    from .cluster import ClusterForwarder

OptionsArg = Union[NotifyOptions, Mapping[str, Any], None]

# Rank assumed for debug calls that do not name one
DEFAULT_DEBUG_RANK = 1

_SILENCE_KEY = "_silence"


# =============================================================================
# Structlog Processors
# =============================================================================


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO 8601 timestamp to log event."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def rename_event_key(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Rename 'event' to 'message'."""
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


class _NopFile:
    def write(self, s: str) -> None:
        pass

    def flush(self) -> None:
        pass


_NOP_FILE = _NopFile()


# =============================================================================
# Router
# =============================================================================


class LogRouter:
    """
    Routes log calls to local sinks or to the cluster master.

    Args:
        registry: Sinks owned by this process; ``None`` on workers and before initialize
        role: Cluster role of this process
        forwarder: Channel to the master, required for ``ClusterRole.WORKER``
        app_name: Bound into every event
        debug_level: Highest debug rank that is emitted
        send_info_notifications: Allow info messages on the syslog sink
        fallback_stream: Stream for ``[LEVEL] text`` lines when no sink exists (default: stdout)
    """

    def __init__(
        self,
        *,
        registry: Optional[SinkRegistry] = None,
        role: ClusterRole = ClusterRole.NONE,
        forwarder: Optional["ClusterForwarder"] = None,
        app_name: str = "",
        debug_level: int = 0,
        send_info_notifications: bool = False,
        fallback_stream: Optional[TextIO] = None,
    ):
        if role is ClusterRole.WORKER and forwarder is None:
            raise ValueError("A worker router needs a forwarder")
        self._registry = registry
        self._role = role
        self._forwarder = forwarder
        self._send_info_notifications = send_info_notifications
        self._fallback_stream = fallback_stream
        self.debug_level = debug_level

        self._pipeline = structlog.wrap_logger(
            structlog.PrintLogger(file=_NOP_FILE),
            processors=[add_timestamp, rename_event_key, self._render_to_sinks],
            wrapper_class=structlog.BoundLogger,
            context_class=dict,
            cache_logger_on_first_use=True,
            app=app_name,
            pid=os.getpid(),
        )

    @property
    def role(self) -> ClusterRole:
        return self._role

    @property
    def registry(self) -> Optional[SinkRegistry]:
        return self._registry

    def debug_enabled(self, rank: int) -> bool:
        return 0 < rank <= self.debug_level

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def notify(
        self,
        level: Union[LogLevel, str],
        text: str,
        options: OptionsArg = None,
        *,
        debug_rank: Optional[int] = None,
    ) -> None:
        level = LogLevel(level)
        opts = NotifyOptions.coerce(options)

        rank: Optional[int] = None
        if level is LogLevel.DEBUG:
            rank = DEFAULT_DEBUG_RANK if debug_rank is None else debug_rank
            if not self.debug_enabled(rank):
                return

        message = LogMessage(level=level, text=str(text), debug_rank=rank)
        if self._role is ClusterRole.WORKER:
            self._forwarder.send(message, opts)
            return
        self._deliver(message, opts)

    def dispatch_forwarded(self, message: LogMessage, options: OptionsArg = None) -> None:
        """Deliver a message forwarded by a worker. Debug rank was checked by the sender."""
        self._deliver(message, NotifyOptions.coerce(options))

    def error(self, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.ERROR, text, options)

    def warn(self, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.WARN, text, options)

    def info(self, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.INFO, text, options)

    def debug(self, rank: int, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.DEBUG, text, options, debug_rank=rank)

    # -------------------------------------------------------------------------
    # Local delivery
    # -------------------------------------------------------------------------

    def _deliver(self, message: LogMessage, options: NotifyOptions) -> None:
        if self._registry is None or self._registry.is_empty:
            if not console_silenced_by_options(options):
                self._write_fallback(message)
            return

        silence = resolve_silence(options, message.level, self._send_info_notifications)
        extra: dict[str, Any] = {}
        if message.debug_rank is not None:
            extra["debug_rank"] = message.debug_rank
        self._pipeline.msg(message.text, level=message.level.value, **{_SILENCE_KEY: silence}, **extra)

    def _render_to_sinks(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> str:
        """Render to the registry. Returns empty to suppress default output."""
        silence = event_dict.pop(_SILENCE_KEY)
        if self._registry is not None:
            self._registry.dispatch(event_dict, silence)
        return ""

    def _write_fallback(self, message: LogMessage) -> None:
        stream = self._fallback_stream or sys.stdout
        try:
            stream.write(f"[{message.level.tag}] {message.text}\n")
            stream.flush()
        except (OSError, ValueError):
            pass
