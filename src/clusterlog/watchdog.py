"""
Process watchdog heartbeat.

Registers the running process with a server watchdog and re-registers it
periodically, so the watchdog can raise an alert when the process dies. On
finalize the timer is cancelled and the process is unwatched best effort.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
from typing import Callable, Optional, Protocol

import httpx

from .config import WatchdogSettings

WATCH_SEVERITY = "error"


class WatchdogClient(Protocol):
    async def process_watch(self, pid: int, name: str, severity: str) -> None: ...

    async def process_unwatch(self, pid: int) -> None: ...

    def process_unwatch_blocking(self, pid: int) -> None: ...

    async def aclose(self) -> None: ...


class HttpWatchdogClient:
    """Watchdog REST client: ``POST /process/watch`` and ``POST /process/unwatch``."""

    def __init__(self, settings: WatchdogSettings, *, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._channel = settings.default_channel
        self._base_url = settings.base_url
        self._timeout = settings.timeout
        self._headers = {"X-Api-Key": settings.api_key.get_secret_value()}
        # reused by the blocking client only when it also serves sync requests
        self._sync_transport = transport if isinstance(transport, httpx.BaseTransport) else None
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=transport,
        )

    async def process_watch(self, pid: int, name: str, severity: str) -> None:
        response = await self._client.post(
            "/process/watch",
            json={"pid": pid, "name": name, "severity": severity, "channel": self._channel},
        )
        response.raise_for_status()

    async def process_unwatch(self, pid: int) -> None:
        response = await self._client.post("/process/unwatch", json={"pid": pid})
        response.raise_for_status()

    def process_unwatch_blocking(self, pid: int) -> None:
        """Unwatch with a short-lived synchronous client, for interpreter exit."""
        with httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=self._headers,
            transport=self._sync_transport,
        ) as client:
            response = client.post("/process/unwatch", json={"pid": pid})
            response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()


class ProcessHeartbeat:
    """
    Keeps this process registered with the watchdog.

    A failed registration is reported once through ``report``; it is
    reported again only after a later registration has succeeded.
    """

    def __init__(
        self,
        client: WatchdogClient,
        *,
        app_name: str,
        interval: float,
        report: Callable[[str], None],
        pid: Optional[int] = None,
    ):
        self._client = client
        self._app_name = app_name
        self._interval = interval
        self._report = report
        self._pid = pid if pid is not None else os.getpid()
        self._task: Optional[asyncio.Task[None]] = None
        self._last_succeeded = True

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        await self.register()
        self._task = asyncio.get_running_loop().create_task(self._run(), name="clusterlog-watchdog-heartbeat")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            await self.register()

    async def register(self) -> bool:
        try:
            await self._client.process_watch(self._pid, self._app_name, WATCH_SEVERITY)
        except Exception as exc:
            if self._last_succeeded:
                self._report(f"Unable to deliver process watch to server watchdog [{exc}]")
                self._last_succeeded = False
            return False
        self._last_succeeded = True
        return True

    async def stop(self) -> None:
        """Cancel the timer and unwatch. Failures are swallowed."""
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._last_succeeded = True
        try:
            await self._client.process_unwatch(self._pid)
        except Exception:
            pass
        finally:
            with contextlib.suppress(Exception):
                await self._client.aclose()

    def stop_blocking(self) -> None:
        """Synchronous ``stop`` for interpreter exit. Failures are swallowed."""
        task, self._task = self._task, None
        if task is not None:
            with contextlib.suppress(RuntimeError):
                task.cancel()
        self._last_succeeded = True
        try:
            self._client.process_unwatch_blocking(self._pid)
        except Exception:
            pass
