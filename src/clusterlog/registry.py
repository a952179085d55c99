"""
SinkRegistry: the only owner of sink instances.

Built once per initialize on the process that owns output. Dispatch walks
the sinks in a fixed order (console, file, sysLog) and isolates failures: a
broken sink is reported on the remaining local sinks and never stops the
others or reaches the caller.
"""

from __future__ import annotations

import asyncio
from typing import Iterable, Optional

from structlog.typing import EventDict

from .config import LoggerSettings
from .exceptions import DeliveryError, InvalidConfiguration
from .formatters import SysLogFormatter
from .paths import default_log_dir
from .sinks import BaseSink, ConsoleSink, FileSink, SysLogSink
from .types import LogLevel, Silence, SinkKind

_ORDER = (SinkKind.CONSOLE, SinkKind.FILE, SinkKind.SYSLOG)
_REPORT_KINDS = (SinkKind.CONSOLE, SinkKind.FILE)


class SinkRegistry:
    def __init__(self, sinks: Iterable[BaseSink] = ()):
        self._sinks: dict[SinkKind, BaseSink] = {}
        for sink in sinks:
            if sink.kind in self._sinks:
                raise ValueError(f"Duplicate sink kind: {sink.kind.value}")
            self._sinks[sink.kind] = sink

    @classmethod
    def from_settings(cls, settings: LoggerSettings) -> "SinkRegistry":
        """
        Create the configured sinks.

        Either every sink is built or none stays open: a failure closes the
        sinks created so far and raises ``InvalidConfiguration``.
        """
        created: list[BaseSink] = []
        try:
            if not settings.disable_console:
                created.append(ConsoleSink())
            if settings.file_log is not None:
                directory = settings.file_log.dir or default_log_dir(settings.app_name)
                created.append(
                    FileSink(
                        directory,
                        settings.app_name,
                        days_to_keep=settings.file_log.days_to_keep,
                        fmt=settings.file_log.format,
                    )
                )
            if settings.sys_log is not None:
                created.append(SysLogSink(settings.sys_log, SysLogFormatter(settings.app_name)))
        except OSError as exc:
            for sink in created:
                try:
                    sink.close()
                except Exception:
                    pass
            raise InvalidConfiguration(f"Unable to create log sink: {exc}") from exc
        return cls(created)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._sinks)

    def __contains__(self, kind: object) -> bool:
        return kind in self._sinks

    def get(self, kind: SinkKind) -> Optional[BaseSink]:
        return self._sinks.get(kind)

    @property
    def is_empty(self) -> bool:
        return not self._sinks

    @property
    def kinds(self) -> list[SinkKind]:
        return [kind for kind in _ORDER if kind in self._sinks]

    # -------------------------------------------------------------------------
    # Writing
    # -------------------------------------------------------------------------

    def write_to(self, kind: SinkKind, event_dict: EventDict) -> None:
        """Write to one sink; an absent kind is a no-op. Raises the sink's error."""
        sink = self._sinks.get(kind)
        if sink is None or sink.closed:
            return
        sink.emit(event_dict)

    def dispatch(self, event_dict: EventDict, silence: Silence) -> int:
        """Write to every present, non-silenced sink. Returns the number of successful writes."""
        written = 0
        failures: list[tuple[SinkKind, Exception]] = []
        for kind in self.kinds:
            if silence.for_kind(kind):
                continue
            try:
                self.write_to(kind, event_dict)
                written += 1
            except Exception as exc:
                failures.append((kind, exc))

        for failed_kind, exc in failures:
            self._report_failure(failed_kind, exc, event_dict)
        return written

    def _report_failure(self, failed_kind: SinkKind, exc: Exception, event_dict: EventDict) -> None:
        reason = exc.reason if isinstance(exc, DeliveryError) else str(exc)
        report = dict(event_dict)
        report["level"] = LogLevel.ERROR.value
        report["message"] = f"Unable to deliver message to {failed_kind.value} [{reason}]"
        report.pop("debug_rank", None)
        for kind in _REPORT_KINDS:
            if kind is failed_kind:
                continue
            try:
                self.write_to(kind, report)
            except Exception:
                # nowhere left to report to
                pass

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    async def flush_and_close_all(self, timeout: Optional[float] = None) -> None:
        """
        Flush and close every sink concurrently and wait for all of them.

        Bounded by ``timeout`` seconds; on expiry the stragglers are closed
        synchronously. Close failures are swallowed.
        """
        sinks = list(self._sinks.values())
        if not sinks:
            return

        async def _close(sink: BaseSink) -> None:
            try:
                await sink.aclose()
            except Exception:
                pass

        try:
            await asyncio.wait_for(asyncio.gather(*(_close(s) for s in sinks)), timeout=timeout)
        except asyncio.TimeoutError:
            for sink in sinks:
                try:
                    sink.close()
                except Exception:
                    pass

    def close_all(self, timeout: Optional[float] = None) -> None:
        """
        Blocking variant of ``flush_and_close_all`` for use outside an event loop.

        Each sink gets up to ``timeout`` seconds to drain its queue before it
        is closed. Failures are swallowed.
        """
        for sink in self._sinks.values():
            try:
                sink.drain(timeout)
            except Exception:
                pass
            try:
                sink.close()
            except Exception:
                pass
