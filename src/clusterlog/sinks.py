"""
Log sink abstractions and concrete implementations.

The set is closed: console, daily file and remote syslog, each tagged with a
``SinkKind``. Sinks raise ``DeliveryError`` on failure; the registry is the
boundary that keeps those errors away from callers.
"""

from __future__ import annotations

import asyncio
import queue
import socket
import ssl
import sys
import threading
from abc import ABC, abstractmethod
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Callable, ClassVar, Optional, TextIO

import orjson
from structlog.typing import EventDict

from .config.sinks import LogFormat, SysLogProtocol, SysLogSettings, SysLogTransport
from .exceptions import DeliveryError
from .formatters import ConsoleFormatter, SysLogFormatter
from .types import SinkKind


def orjson_dumps(v: Any, *, default: Any = None) -> str:
    """Fast JSON serialization using orjson."""
    return orjson.dumps(v, default=default, option=orjson.OPT_UTC_Z | orjson.OPT_NAIVE_UTC).decode()


# =============================================================================
# Sink Abstraction
# =============================================================================


class BaseSink(ABC):
    """Abstract base class for log sinks."""

    kind: ClassVar[SinkKind]

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @abstractmethod
    def emit(self, event_dict: EventDict) -> None:
        """Write one rendered event. Raises ``DeliveryError`` on failure."""
        ...

    def flush(self) -> None:
        """Push buffered output to the underlying device."""

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until queued output is written. Sinks without a queue return at once."""

    @abstractmethod
    def _release(self) -> None:
        """Release the underlying resource."""
        ...

    def close(self) -> None:
        """Flush and release. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            self.flush()
        finally:
            self._release()

    async def aclose(self) -> None:
        """Asynchronous flush-and-close; completes once, later calls return immediately."""
        self.close()


class ConsoleSink(BaseSink):
    """Standard output sink.

    Args:
        fmt: "console" (human-readable, level colored on a TTY) or "json"
        stream: Output stream (default: stdout)
    """

    kind = SinkKind.CONSOLE

    def __init__(self, fmt: LogFormat = LogFormat.CONSOLE, stream: Optional[TextIO] = None):
        super().__init__()
        self._fmt = fmt
        self._stream = stream or sys.stdout
        try:
            self._use_color = self._stream.isatty()
        except (AttributeError, OSError, ValueError):
            self._use_color = False

    def emit(self, event_dict: EventDict) -> None:
        if self._fmt is LogFormat.JSON:
            output = orjson_dumps(event_dict)
        else:
            output = ConsoleFormatter.format(event_dict, use_color=self._use_color)
        try:
            self._stream.write(output + "\n")
            self._stream.flush()
        except (OSError, ValueError) as exc:
            raise DeliveryError(self.kind.value, str(exc)) from exc

    def flush(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError):
            pass

    def _release(self) -> None:
        # the process owns stdout, only detach from it
        pass


class FileSink(BaseSink):
    """Local file sink, one file per day: ``<dir>/<app_name>.<YYYY-MM-DD>.log``.

    Args:
        directory: Target directory, created if missing
        app_name: File name prefix
        days_to_keep: Files older than this many days are deleted on rotation, 0 keeps all
        fmt: "console" text lines or "json" lines
        today: Clock used to pick the current file
    """

    kind = SinkKind.FILE

    def __init__(
        self,
        directory: str | Path,
        app_name: str,
        *,
        days_to_keep: int = 7,
        fmt: LogFormat = LogFormat.CONSOLE,
        today: Callable[[], date] = date.today,
    ):
        super().__init__()
        self._dir = Path(directory)
        self._dir.mkdir(parents=True, exist_ok=True)
        self._app_name = app_name
        self._days_to_keep = days_to_keep
        self._fmt = fmt
        self._today = today
        self._current_date = self._today()
        self._file = open(self.path_for(self._current_date), "a", encoding="utf-8")
        self._prune()

    @property
    def current_path(self) -> Path:
        return self.path_for(self._current_date)

    def path_for(self, day: date) -> Path:
        return self._dir / f"{self._app_name}.{day.isoformat()}.log"

    def emit(self, event_dict: EventDict) -> None:
        if self._fmt is LogFormat.JSON:
            line = orjson_dumps(event_dict)
        else:
            line = ConsoleFormatter.format(event_dict, use_color=False)
        try:
            self._maybe_rotate()
            self._file.write(line + "\n")
            self._file.flush()
        except (OSError, ValueError) as exc:
            raise DeliveryError(self.kind.value, str(exc)) from exc

    def _maybe_rotate(self) -> None:
        today = self._today()
        if today == self._current_date:
            return
        # a failed open keeps the current file, the next emit retries
        new_file = open(self.path_for(today), "a", encoding="utf-8")
        old_file, self._file = self._file, new_file
        self._current_date = today
        old_file.close()
        self._prune()

    def _prune(self) -> None:
        if self._days_to_keep <= 0:
            return
        cutoff = self._current_date - timedelta(days=self._days_to_keep)
        prefix = f"{self._app_name}."
        for candidate in self._dir.glob(f"{self._app_name}.*.log"):
            stamp = candidate.name[len(prefix) : -len(".log")]
            try:
                day = date.fromisoformat(stamp)
            except ValueError:
                continue
            if day < cutoff:
                try:
                    candidate.unlink()
                except OSError:
                    pass

    def flush(self) -> None:
        if not self._file.closed:
            self._file.flush()

    def _release(self) -> None:
        self._file.close()


class SysLogSink(BaseSink):
    """Remote syslog collector over UDP, TCP or TLS.

    ``emit`` only renders and enqueues; a daemon writer thread owns the
    socket, so a slow or unreachable collector never stalls the caller. The
    queue is bounded and payloads are dropped when it is full. The socket is
    opened lazily and dropped after a failure, so the next payload retries
    the connection. Writer failures surface as a ``DeliveryError`` from the
    next ``emit``.

    Stream transports use newline framing for BSD messages and octet
    counting (RFC 6587) for RFC 5424 messages.
    """

    kind = SinkKind.SYSLOG

    def __init__(
        self,
        settings: SysLogSettings,
        formatter: SysLogFormatter,
        *,
        connect_timeout: float = 5.0,
        ssl_context: Optional[ssl.SSLContext] = None,
        queue_size: int = 10000,
    ):
        super().__init__()
        self._settings = settings
        self._formatter = formatter
        self._connect_timeout = connect_timeout
        self._ssl_context = ssl_context
        self._sock: Optional[socket.socket] = None
        self._udp_address: Any = None

        self._queue: "queue.Queue[bytes]" = queue.Queue(maxsize=queue_size)
        self._lock = threading.Lock()
        self._failure: Optional[str] = None
        self._dropping = False
        self.dropped = 0

        self._stopping = threading.Event()
        self._abandoned = threading.Event()
        self._writer = threading.Thread(target=self._run, name="clusterlog-syslog-writer", daemon=True)
        self._writer.start()

    @property
    def _is_datagram(self) -> bool:
        return self._settings.transport is SysLogTransport.UDP

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def _render(self, event_dict: EventDict) -> bytes:
        if self._settings.protocol is SysLogProtocol.RFC5424:
            data = self._formatter.format_5424(event_dict).encode("utf-8")
            if self._is_datagram:
                return data
            return f"{len(data)} ".encode("ascii") + data
        data = self._formatter.format_bsd(event_dict).encode("utf-8")
        return data if self._is_datagram else data + b"\n"

    # -------------------------------------------------------------------------
    # Caller side
    # -------------------------------------------------------------------------

    def emit(self, event_dict: EventDict) -> None:
        payload = self._render(event_dict)
        with self._lock:
            failure, self._failure = self._failure, None

        try:
            self._queue.put_nowait(payload)
        except queue.Full:
            self.dropped += 1
            if not self._dropping:
                self._dropping = True
                failure = failure or "send queue full"
        else:
            self._dropping = False

        if failure is not None:
            raise DeliveryError(self.kind.value, failure)

    # -------------------------------------------------------------------------
    # Writer thread
    # -------------------------------------------------------------------------

    def _run(self) -> None:
        while not self._abandoned.is_set():
            try:
                payload = self._queue.get(timeout=0.1)
            except queue.Empty:
                if self._stopping.is_set():
                    break
                continue
            if self._abandoned.is_set():
                break
            try:
                self._send(payload)
            except OSError as exc:
                self._drop_socket()
                with self._lock:
                    self._failure = str(exc)
        self._drop_socket()

    def _connect(self) -> socket.socket:
        host, port = self._settings.host, self._settings.port
        if self._is_datagram:
            family, socktype, proto, _, sockaddr = socket.getaddrinfo(host, port, 0, socket.SOCK_DGRAM)[0]
            self._udp_address = sockaddr
            return socket.socket(family, socktype, proto)
        sock = socket.create_connection((host, port), timeout=self._connect_timeout)
        if self._settings.transport is SysLogTransport.TLS:
            context = self._ssl_context or ssl.create_default_context()
            sock = context.wrap_socket(sock, server_hostname=host)
        return sock

    def _send(self, payload: bytes) -> None:
        if self._sock is None:
            self._sock = self._connect()
        if self._is_datagram:
            self._sock.sendto(payload, self._udp_address)
        else:
            self._sock.sendall(payload)

    def _drop_socket(self) -> None:
        sock, self._sock = self._sock, None
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass

    # -------------------------------------------------------------------------
    # Shutdown
    # -------------------------------------------------------------------------

    def drain(self, timeout: Optional[float] = None) -> None:
        """Block until every queued payload is written or ``timeout`` passes."""
        self._stopping.set()
        self._writer.join(timeout)

    async def aclose(self) -> None:
        """Wait for the writer to send everything queued, then close."""
        if self._closed:
            return
        self._stopping.set()
        while self._writer.is_alive():
            await asyncio.sleep(0.01)
        self.close()

    def _release(self) -> None:
        # queued payloads are abandoned; the writer exits after its current send
        self._stopping.set()
        self._abandoned.set()
        if not self._writer.is_alive():
            self._drop_socket()
