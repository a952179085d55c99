"""
Shutdown orchestration.

Stops the heartbeat, stops forwarding, flushes and closes the sinks, then
resets the owner's state. Every step is best effort; the reset always runs
and ``finalize`` never raises.
"""

from __future__ import annotations

from typing import Callable, Optional

from .cluster import ClusterForwarder
from .registry import SinkRegistry
from .types import ClusterRole
from .watchdog import ProcessHeartbeat


class ShutdownCoordinator:
    def __init__(
        self,
        *,
        role: ClusterRole,
        reset: Callable[[], None],
        registry: Optional[SinkRegistry] = None,
        forwarder: Optional[ClusterForwarder] = None,
        heartbeat: Optional[ProcessHeartbeat] = None,
        timeout: Optional[float] = None,
    ):
        self._role = role
        self._reset = reset
        self._registry = registry
        self._forwarder = forwarder
        self._heartbeat = heartbeat
        self._timeout = timeout

    async def finalize(self) -> None:
        try:
            if self._heartbeat is not None:
                try:
                    await self._heartbeat.stop()
                except Exception:
                    pass

            # no forwarded message may land on a sink that is closing
            if self._forwarder is not None:
                try:
                    await self._forwarder.stop()
                except Exception:
                    pass

            if self._role.owns_sinks and self._registry is not None:
                try:
                    await self._registry.flush_and_close_all(self._timeout)
                except Exception:
                    pass
        finally:
            self._reset()
