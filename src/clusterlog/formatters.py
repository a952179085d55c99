"""
Line formatters: the console/file text layout and syslog packet bodies.
"""

from __future__ import annotations

import socket
from datetime import datetime, timezone
from typing import Any, Mapping

# =============================================================================
# Console Formatter
# =============================================================================

COLORS = {
    "reset": "\033[0m",
    "error": "\033[31m",
    "warn": "\033[33m",
    "info": "\033[32m",
    "debug": "\033[36m",
    "timestamp": "\033[90m",
}


def colorize(text: str, color: str) -> str:
    """Apply ANSI color to text."""
    return f"{COLORS.get(color, '')}{text}{COLORS['reset']}"


def parse_timestamp(raw_timestamp: Any) -> datetime:
    """Parse the ISO 8601 pipeline timestamp, falling back to now (UTC)."""
    if raw_timestamp:
        try:
            dt = datetime.fromisoformat(str(raw_timestamp).replace("Z", "+00:00"))
            if dt.tzinfo is None:
                dt = dt.replace(tzinfo=timezone.utc)
            return dt
        except (ValueError, TypeError):
            pass
    return datetime.now(timezone.utc)


class ConsoleFormatter:
    """Renders ``[2024-05-01 13:45:10] [ERROR] - message`` lines."""

    TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

    @classmethod
    def _format_timestamp(cls, raw_timestamp: Any) -> str:
        return parse_timestamp(raw_timestamp).astimezone().strftime(cls.TIMESTAMP_FORMAT)

    @staticmethod
    def _maybe_color(text: str, color: str, use_color: bool) -> str:
        if not use_color:
            return text
        return colorize(text, color)

    @classmethod
    def format(cls, event_dict: Mapping[str, Any], *, use_color: bool = False) -> str:
        level = str(event_dict.get("level", "info")).lower()
        message = event_dict.get("message", event_dict.get("event", ""))
        timestamp = cls._format_timestamp(event_dict.get("timestamp"))

        return "".join(
            [
                "[",
                cls._maybe_color(timestamp, "timestamp", use_color),
                "] [",
                cls._maybe_color(level.upper(), level, use_color),
                "] - ",
                str(message),
            ]
        )


# =============================================================================
# Syslog Formatter
# =============================================================================

# RFC 5424 section 6.2.1 severities
_SEVERITIES = {"error": 3, "warn": 4, "info": 6, "debug": 7}
FACILITY_LOCAL0 = 16
NILVALUE = "-"


class SysLogFormatter:
    """Builds syslog message bodies for the BSD (RFC 3164) and RFC 5424 layouts."""

    def __init__(self, app_name: str, *, facility: int = FACILITY_LOCAL0, hostname: str | None = None):
        self._app_name = app_name.replace(" ", "_") or NILVALUE
        self._facility = facility
        self._hostname = hostname or socket.gethostname() or NILVALUE

    def priority(self, level: str) -> int:
        return self._facility * 8 + _SEVERITIES.get(level, _SEVERITIES["info"])

    def format_bsd(self, event_dict: Mapping[str, Any]) -> str:
        dt = parse_timestamp(event_dict.get("timestamp")).astimezone()
        stamp = f"{dt:%b} {dt.day:>2} {dt:%H:%M:%S}"
        pid = event_dict.get("pid", "")
        return (
            f"<{self.priority(str(event_dict.get('level', 'info')))}>"
            f"{stamp} {self._hostname} {self._app_name}[{pid}]: {event_dict.get('message', '')}"
        )

    def format_5424(self, event_dict: Mapping[str, Any]) -> str:
        dt = parse_timestamp(event_dict.get("timestamp")).astimezone(timezone.utc)
        stamp = dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
        pid = event_dict.get("pid") or NILVALUE
        return (
            f"<{self.priority(str(event_dict.get('level', 'info')))}>1 "
            f"{stamp} {self._hostname} {self._app_name} {pid} {NILVALUE} {NILVALUE} "
            f"{event_dict.get('message', '')}"
        )
