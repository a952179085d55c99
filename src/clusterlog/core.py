"""
Logger instance and the module-level facade.

All state (role, debug threshold, sinks, forwarder, heartbeat) lives on a
``Logger`` object, so independent instances can coexist and a finalize
returns an instance to a clean, uninitialized state. The module functions
operate on one default instance for applications that want a single
process-wide logger.
"""

from __future__ import annotations

import atexit
import contextlib
from typing import Any, AsyncIterator, Mapping, Optional, TextIO, Union

from .cluster import ClusterForwarder, ForwardChannel, ZmqChannel, detect_role
from .config import LoggerSettings
from .exceptions import ChannelError, InvalidConfiguration, LifecycleError
from .paths import default_cluster_endpoint
from .registry import SinkRegistry
from .router import LogRouter, OptionsArg
from .shutdown import ShutdownCoordinator
from .types import ClusterRole, LifecycleState, LogLevel
from .watchdog import HttpWatchdogClient, ProcessHeartbeat, WatchdogClient

ConfigArg = Union[LoggerSettings, Mapping[str, Any], None]


class Logger:
    """
    A logging facility instance.

    Lifecycle: ``uninitialized -> initialized -> finalizing -> uninitialized``.
    Before ``initialize`` (and after ``finalize``) every call falls back to a
    ``[LEVEL] text`` line on stdout.

    Args:
        fallback_stream: Stream used when no sink exists (default: stdout at call time)
    """

    def __init__(self, *, fallback_stream: Optional[TextIO] = None):
        self._fallback_stream = fallback_stream
        self._state = LifecycleState.UNINITIALIZED
        self._settings: Optional[LoggerSettings] = None
        self._role = ClusterRole.NONE
        self._debug_level = 0
        self._registry: Optional[SinkRegistry] = None
        self._forwarder: Optional[ClusterForwarder] = None
        self._heartbeat: Optional[ProcessHeartbeat] = None
        self._router = self._idle_router()

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def role(self) -> ClusterRole:
        return self._role

    @property
    def debug_level(self) -> int:
        return self._debug_level

    @property
    def settings(self) -> Optional[LoggerSettings]:
        return self._settings

    @property
    def registry(self) -> Optional[SinkRegistry]:
        return self._registry

    @property
    def forwarder(self) -> Optional[ClusterForwarder]:
        return self._forwarder

    def _idle_router(self) -> LogRouter:
        return LogRouter(debug_level=self._debug_level, fallback_stream=self._fallback_stream)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def initialize(
        self,
        options: ConfigArg,
        *,
        channel: Optional[ForwardChannel] = None,
        watchdog_client: Optional[WatchdogClient] = None,
    ) -> None:
        """
        Validate ``options`` and bring the sinks, forwarder and heartbeat up.

        Raises ``InvalidConfiguration`` without leaving anything open when
        the options are invalid, a sink cannot be created or the cluster
        channel cannot be opened. Concurrent calls on one instance are not
        supported.
        """
        if self._state is not LifecycleState.UNINITIALIZED:
            raise LifecycleError("Logger is already initialized", state=self._state.value)

        settings = LoggerSettings.from_options(options)
        role = detect_role(settings.using_cluster, settings.cluster.role)
        registry = SinkRegistry.from_settings(settings) if role.owns_sinks else None

        forwarder = ClusterForwarder(role, self._resolve_channel(settings, role, channel))
        router = LogRouter(
            registry=registry,
            role=role,
            forwarder=forwarder,
            app_name=settings.app_name,
            debug_level=settings.debug_level,
            send_info_notifications=settings.send_info_notifications,
            fallback_stream=self._fallback_stream,
        )
        try:
            forwarder.start(router)
        except ChannelError as exc:
            await forwarder.stop()
            if registry is not None:
                await registry.flush_and_close_all(settings.shutdown_timeout)
            raise InvalidConfiguration(f"Unable to open cluster channel: {exc}") from exc

        self._settings = settings
        self._role = role
        self._debug_level = settings.debug_level
        self._registry = registry
        self._forwarder = forwarder
        self._router = router
        self._state = LifecycleState.INITIALIZED
        atexit.register(self._close_at_exit)

        if settings.server_watchdog is not None:
            client = watchdog_client or HttpWatchdogClient(settings.server_watchdog)
            self._heartbeat = ProcessHeartbeat(
                client,
                app_name=settings.app_name,
                interval=settings.server_watchdog.interval,
                report=self.error,
            )
            await self._heartbeat.start()

    @staticmethod
    def _resolve_channel(
        settings: LoggerSettings,
        role: ClusterRole,
        channel: Optional[ForwardChannel],
    ) -> Optional[ForwardChannel]:
        if role is ClusterRole.NONE:
            return None
        if channel is not None:
            return channel
        return ZmqChannel(settings.cluster.endpoint or default_cluster_endpoint(settings.app_name))

    async def finalize(self) -> None:
        """Flush and close everything, then reset. A no-op when not initialized; never raises."""
        if self._state is not LifecycleState.INITIALIZED:
            return
        self._state = LifecycleState.FINALIZING
        coordinator = ShutdownCoordinator(
            role=self._role,
            reset=self._reset,
            registry=self._registry,
            forwarder=self._forwarder,
            heartbeat=self._heartbeat,
            timeout=self._settings.shutdown_timeout if self._settings else None,
        )
        # calls made while sinks close go to the fallback line
        self._router = self._idle_router()
        await coordinator.finalize()

    def _close_at_exit(self) -> None:
        """
        Best-effort synchronous cleanup when the interpreter exits without
        ``finalize``. The process is unwatched and the channel closed before
        the sinks are drained and closed. Failures are swallowed.
        """
        if self._state is LifecycleState.UNINITIALIZED:
            return
        timeout = self._settings.shutdown_timeout if self._settings else None
        if self._heartbeat is not None:
            self._heartbeat.stop_blocking()
        if self._forwarder is not None:
            self._forwarder.close_now()
        if self._registry is not None:
            self._registry.close_all(timeout)
        self._clear()

    def _reset(self) -> None:
        atexit.unregister(self._close_at_exit)
        self._clear()

    def _clear(self) -> None:
        self._settings = None
        self._role = ClusterRole.NONE
        self._debug_level = 0
        self._registry = None
        self._forwarder = None
        self._heartbeat = None
        self._router = self._idle_router()
        self._state = LifecycleState.UNINITIALIZED

    @contextlib.asynccontextmanager
    async def running(self, options: ConfigArg, **kwargs: Any) -> AsyncIterator["Logger"]:
        """``async with logger.running(config):`` initializes and always finalizes."""
        await self.initialize(options, **kwargs)
        try:
            yield self
        finally:
            await self.finalize()

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    def set_debug_level(self, level: int) -> None:
        if isinstance(level, bool) or not isinstance(level, int) or level < 0:
            raise InvalidConfiguration(f"Debug level must be a non-negative integer, got {level!r}")
        self._debug_level = level
        self._router.debug_level = level

    def notify(
        self,
        level: Union[LogLevel, str],
        text: str,
        options: OptionsArg = None,
        *,
        debug_rank: Optional[int] = None,
    ) -> None:
        self._router.notify(level, text, options, debug_rank=debug_rank)

    def error(self, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.ERROR, text, options)

    def warn(self, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.WARN, text, options)

    def info(self, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.INFO, text, options)

    def debug(self, rank: int, text: str, options: OptionsArg = None) -> None:
        self.notify(LogLevel.DEBUG, text, options, debug_rank=rank)


# =============================================================================
# Default instance
# =============================================================================

_default_logger = Logger()


def get_logger() -> Logger:
    """Get the process-wide default logger."""
    return _default_logger


async def initialize(options: ConfigArg, **kwargs: Any) -> None:
    await _default_logger.initialize(options, **kwargs)


async def finalize() -> None:
    await _default_logger.finalize()


def set_debug_level(level: int) -> None:
    _default_logger.set_debug_level(level)


def notify(level: Union[LogLevel, str], text: str, options: OptionsArg = None, *, debug_rank: Optional[int] = None) -> None:
    _default_logger.notify(level, text, options, debug_rank=debug_rank)


def error(text: str, options: OptionsArg = None) -> None:
    _default_logger.error(text, options)


def warn(text: str, options: OptionsArg = None) -> None:
    _default_logger.warn(text, options)


def info(text: str, options: OptionsArg = None) -> None:
    _default_logger.info(text, options)


def debug(rank: int, text: str, options: OptionsArg = None) -> None:
    _default_logger.debug(rank, text, options)
