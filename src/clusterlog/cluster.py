"""
Worker -> master log forwarding.

Exactly one process in a cluster owns the sinks (the master). Workers
serialize each log call and post it on a ``ForwardChannel`` without waiting
for an acknowledgement; delivery is best effort and at most once. The master
runs a listener task that feeds every received message back into its own
``LogRouter``.

Channels:
  - ``MemoryChannel``: asyncio queue shared by logger instances in one process
  - ``ZmqChannel``: PUSH (workers) / PULL (master) sockets on one endpoint
"""

from __future__ import annotations

import asyncio
import contextlib
import multiprocessing
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Protocol

import orjson
import zmq
import zmq.asyncio

from .config import ClusterRoleSetting
from .exceptions import ChannelError
from .types import ClusterRole, LogLevel, LogMessage, NotifyOptions

if TYPE_CHECKING:
    from .router import LogRouter

FORWARD_KIND = "log-forward"


def detect_role(using_cluster: bool, configured: ClusterRoleSetting = ClusterRoleSetting.AUTO) -> ClusterRole:
    """Decide this process's role. ``auto`` means master when there is no multiprocessing parent."""
    if not using_cluster:
        return ClusterRole.NONE
    if configured is ClusterRoleSetting.MASTER:
        return ClusterRole.MASTER
    if configured is ClusterRoleSetting.WORKER:
        return ClusterRole.WORKER
    return ClusterRole.MASTER if multiprocessing.parent_process() is None else ClusterRole.WORKER


# =============================================================================
# Wire format
# =============================================================================


def encode_message(message: LogMessage, options: NotifyOptions) -> bytes:
    payload: dict[str, Any] = {
        "kind": FORWARD_KIND,
        "level": message.level.value,
        "text": message.text,
        "options": options.to_wire(),
    }
    if message.debug_rank is not None:
        payload["debugRank"] = message.debug_rank
    return orjson.dumps(payload)


def decode_message(payload: bytes) -> tuple[LogMessage, NotifyOptions]:
    """Parse a forwarded message. Raises ``ValueError`` when it is malformed."""
    data = orjson.loads(payload)
    if not isinstance(data, dict) or data.get("kind") != FORWARD_KIND:
        raise ValueError("not a log-forward message")
    try:
        level = LogLevel(data["level"])
        text = data["text"]
    except KeyError as exc:
        raise ValueError(f"missing field {exc}") from exc
    if not isinstance(text, str):
        raise ValueError("text must be a string")
    rank = data.get("debugRank")
    if rank is not None and not isinstance(rank, int):
        raise ValueError("debugRank must be an integer")
    raw_options = data.get("options") or {}
    if not isinstance(raw_options, dict):
        raise ValueError("options must be an object")
    options = NotifyOptions.coerce(raw_options)
    return LogMessage(level=level, text=text, debug_rank=rank), options


# =============================================================================
# Channels
# =============================================================================


class ForwardChannel(Protocol):
    """
    Transport between workers and the master.

    ``send`` must not block the caller; ``receive`` is only used on the master.
    Both raise ``ChannelError`` on transport failure.
    """

    def open(self, role: ClusterRole) -> None: ...

    def send(self, payload: bytes) -> None: ...

    async def receive(self) -> bytes: ...

    def close(self) -> None: ...


class MemoryChannel:
    """In-process channel backed by an ``asyncio.Queue``; all users must share one event loop."""

    def __init__(self, maxsize: int = 0):
        self._queue: "asyncio.Queue[bytes]" = asyncio.Queue(maxsize)
        self._closed = False

    def open(self, role: ClusterRole) -> None:
        self._closed = False

    def send(self, payload: bytes) -> None:
        if self._closed:
            raise ChannelError("channel closed")
        try:
            self._queue.put_nowait(payload)
        except asyncio.QueueFull as exc:
            raise ChannelError("queue full") from exc

    async def receive(self) -> bytes:
        return await self._queue.get()

    def close(self) -> None:
        self._closed = True


class ZmqChannel:
    """
    zmq transport. The master binds a PULL socket, workers connect PUSH sockets.

    Worker sends use ``NOBLOCK``: when the high-water mark is reached the
    message is dropped instead of stalling the caller.
    """

    def __init__(self, endpoint: str, *, send_hwm: int = 10000, linger_ms: int = 1000):
        self.endpoint = endpoint
        self._send_hwm = send_hwm
        self._linger_ms = linger_ms
        self._ctx: Optional[zmq.Context] = None
        self._sock: Optional[zmq.Socket] = None

    @property
    def bound_endpoint(self) -> Optional[str]:
        """Resolved endpoint after a master bind (wildcard ports filled in)."""
        if self._sock is None or self._sock.type != zmq.PULL:
            return None
        return self._sock.getsockopt_string(zmq.LAST_ENDPOINT)

    def open(self, role: ClusterRole) -> None:
        try:
            if role is ClusterRole.WORKER:
                self._ctx = zmq.Context()
                self._sock = self._ctx.socket(zmq.PUSH)
                self._sock.setsockopt(zmq.SNDHWM, self._send_hwm)
                self._sock.setsockopt(zmq.LINGER, self._linger_ms)
                self._sock.connect(self.endpoint)
            else:
                self._ctx = zmq.asyncio.Context()
                self._sock = self._ctx.socket(zmq.PULL)
                self._sock.setsockopt(zmq.LINGER, 0)
                self._sock.bind(self.endpoint)
        except zmq.ZMQError as exc:
            self.close()
            raise ChannelError(str(exc), endpoint=self.endpoint) from exc

    def send(self, payload: bytes) -> None:
        if self._sock is None:
            raise ChannelError("channel not open", endpoint=self.endpoint)
        try:
            self._sock.send(payload, flags=zmq.NOBLOCK)
        except zmq.Again as exc:
            raise ChannelError("send queue full", endpoint=self.endpoint) from exc
        except zmq.ZMQError as exc:
            raise ChannelError(str(exc), endpoint=self.endpoint) from exc

    async def receive(self) -> bytes:
        if self._sock is None:
            raise ChannelError("channel not open", endpoint=self.endpoint)
        try:
            return await self._sock.recv()
        except zmq.ZMQError as exc:
            raise ChannelError(str(exc), endpoint=self.endpoint) from exc

    def close(self) -> None:
        sock, self._sock = self._sock, None
        ctx, self._ctx = self._ctx, None
        if sock is not None:
            sock.close()
        if ctx is not None:
            # waits up to linger_ms for queued worker messages
            ctx.term()


# =============================================================================
# Forwarder
# =============================================================================


class ForwarderState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ACTIVE = "active"
    STOPPED = "stopped"


class ClusterForwarder:
    """
    Owns the forwarding channel, never the sinks.

    For ``ClusterRole.NONE`` there is no channel and every call stays local.
    """

    def __init__(self, role: ClusterRole, channel: Optional[ForwardChannel] = None):
        if role is not ClusterRole.NONE and channel is None:
            raise ValueError(f"A channel is required for role {role.value}")
        self._role = role
        self._channel = channel
        self._state = ForwarderState.UNINITIALIZED
        self._listener: Optional[asyncio.Task[None]] = None
        self.dropped = 0

    @property
    def role(self) -> ClusterRole:
        return self._role

    @property
    def state(self) -> ForwarderState:
        return self._state

    def start(self, router: Optional["LogRouter"] = None) -> None:
        """
        Open the channel. On the master also start the listener task, which
        needs a running event loop.
        """
        if self._state is not ForwarderState.UNINITIALIZED:
            return
        if self._channel is not None:
            self._channel.open(self._role)
        if self._role is ClusterRole.MASTER:
            if router is None:
                raise ValueError("The master forwarder needs a router to deliver into")
            loop = asyncio.get_running_loop()
            self._listener = loop.create_task(self._listen(router), name="clusterlog-forward-listener")
        self._state = ForwarderState.ACTIVE

    def send(self, message: LogMessage, options: NotifyOptions) -> None:
        """Fire and forget. Anything that goes wrong drops the message."""
        if self._state is not ForwarderState.ACTIVE or self._role is not ClusterRole.WORKER:
            self.dropped += 1
            return
        try:
            self._channel.send(encode_message(message, options))
        except ChannelError:
            self.dropped += 1

    async def _listen(self, router: "LogRouter") -> None:
        while True:
            try:
                payload = await self._channel.receive()
            except ChannelError:
                return
            try:
                message, options = decode_message(payload)
            except ValueError as exc:
                router.notify(LogLevel.ERROR, f"Discarded malformed forwarded log message [{exc}]")
                continue
            router.dispatch_forwarded(message, options)

    def close_now(self) -> None:
        """Close without awaiting the listener, for use when no event loop is running."""
        if self._state is ForwarderState.STOPPED:
            return
        self._state = ForwarderState.STOPPED
        listener, self._listener = self._listener, None
        if listener is not None:
            # a closed loop refuses the cancel callback
            with contextlib.suppress(RuntimeError):
                listener.cancel()
        if self._channel is not None:
            try:
                self._channel.close()
            except Exception:
                pass

    async def stop(self) -> None:
        """Cancel the listener and close the channel. Idempotent."""
        if self._state is ForwarderState.STOPPED:
            return
        self._state = ForwarderState.STOPPED
        listener, self._listener = self._listener, None
        if listener is not None:
            listener.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await listener
        if self._channel is not None:
            try:
                self._channel.close()
            except Exception:
                pass
