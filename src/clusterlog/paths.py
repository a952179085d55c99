"""Platform default locations for log files and the cluster channel.

Policy:
- Logs: the per-user conventional log location for the platform, unless
  overridden by ``CLOG_LOG_DIR``.
    * Windows: ``%LOCALAPPDATA%\\<app>\\Logs``
    * macOS: ``~/Library/Logs/<app>``
    * other: ``$XDG_STATE_HOME/<app>/log`` (``~/.local/state`` when unset)
- Cluster endpoint: a per-app IPC socket in the temp dir on POSIX, a loopback
  TCP port on Windows (no ipc:// transport there).
"""

from __future__ import annotations

import os
import sys
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import Final


_ENV_LOG_DIR: Final[str] = "CLOG_LOG_DIR"
_WINDOWS_CLUSTER_ENDPOINT: Final[str] = "tcp://127.0.0.1:5515"


def _platform_log_dir(app_name: str, env: Mapping[str, str], platform: str) -> Path:
    home = Path.home()
    if platform.startswith("win"):
        base = env.get("LOCALAPPDATA") or str(home / "AppData" / "Local")
        return Path(base) / app_name / "Logs"
    if platform == "darwin":
        return home / "Library" / "Logs" / app_name
    state_home = (env.get("XDG_STATE_HOME") or "").strip()
    base_path = Path(state_home) if state_home else home / ".local" / "state"
    return base_path / app_name / "log"


def default_log_dir(
    app_name: str,
    *,
    env: Mapping[str, str] | None = None,
    platform: str | None = None,
) -> Path:
    """Get the default writable directory for ``app_name`` log files."""

    mapping = env if env is not None else os.environ
    override = (mapping.get(_ENV_LOG_DIR) or "").strip()
    if override:
        return Path(override).expanduser().resolve()
    return _platform_log_dir(app_name, mapping, platform or sys.platform).expanduser().resolve()


def default_cluster_endpoint(app_name: str, *, platform: str | None = None) -> str:
    """Get the default zmq endpoint the master binds and workers connect to."""

    if (platform or sys.platform).startswith("win"):
        return _WINDOWS_CLUSTER_ENDPOINT
    socket_path = Path(tempfile.gettempdir()) / f"{app_name}.clusterlog.sock"
    return f"ipc://{socket_path}"


__all__ = ["default_log_dir", "default_cluster_endpoint"]
