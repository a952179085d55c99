from __future__ import annotations

import socket
import threading
from typing import Any, Callable

import pytest

from clusterlog.exceptions import DeliveryError
from clusterlog.registry import SinkRegistry
from clusterlog.sinks import BaseSink
from clusterlog.types import SinkKind


class RecordingSink(BaseSink):
    """In-memory sink that records every event it receives."""

    def __init__(self, kind: SinkKind, *, fail: bool = False, fail_close: bool = False):
        super().__init__()
        self.kind = kind
        self.fail = fail
        self.fail_close = fail_close
        self.events: list[dict[str, Any]] = []
        self.released = False

    @property
    def messages(self) -> list[str]:
        return [event["message"] for event in self.events]

    def emit(self, event_dict: dict[str, Any]) -> None:
        if self.fail:
            raise DeliveryError(self.kind.value, "boom")
        self.events.append(dict(event_dict))

    def _release(self) -> None:
        self.released = True
        if self.fail_close:
            raise OSError("close failed")


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep CLOG_* variables and stray .env files out of every test."""
    import os

    for name in list(os.environ):
        if name.startswith("CLOG_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    yield


@pytest.fixture
def make_sink() -> Callable[..., RecordingSink]:
    """Factory for RecordingSink instances."""
    return RecordingSink


@pytest.fixture
def sinks() -> dict[SinkKind, RecordingSink]:
    """One recording sink per kind."""
    return {kind: RecordingSink(kind) for kind in SinkKind}


@pytest.fixture
def registry(sinks) -> SinkRegistry:
    return SinkRegistry(sinks.values())


@pytest.fixture
def udp_collector():
    """A UDP socket on loopback standing in for a syslog collector."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def free_tcp_port() -> int:
    """A loopback port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def stalled_collector(monkeypatch, free_tcp_port) -> int:
    """A TCP collector whose handshake never completes while the test runs.

    ``socket.create_connection`` waits out its timeout and then fails, like a
    collector behind a firewall that drops SYNs.
    """
    released = threading.Event()

    def create_connection(address, timeout=None, *args, **kwargs):
        released.wait(timeout)
        raise socket.timeout("timed out")

    monkeypatch.setattr(socket, "create_connection", create_connection)
    yield free_tcp_port
    released.set()
