"""
Per-call silencing policy.

Maps (options, level, global info flag) to a ``Silence`` value. Pure: the
result is computed fresh for every call and handed down the pipeline, so no
silence state survives between calls.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional, Union

from .types import LogLevel, NotifyOptions, Silence


def resolve_silence(
    options: Union[NotifyOptions, Mapping[str, Any], None],
    level: LogLevel,
    send_info_notifications: bool,
) -> Silence:
    opts = NotifyOptions.coerce(options)

    if opts.only_console:
        console, file, sys_log = False, True, True
    elif opts.only_file:
        console, file, sys_log = True, False, True
    elif opts.only_sys_log:
        console, file, sys_log = True, True, False
    else:
        console, file, sys_log = opts.no_console, opts.no_file, opts.no_sys_log

    # info reaches the remote collector only when explicitly enabled
    if level is LogLevel.INFO and not send_info_notifications:
        sys_log = True
    # debug never leaves the host
    if level is LogLevel.DEBUG:
        sys_log = True

    return Silence(console=console, file=file, sys_log=sys_log)


def console_silenced_by_options(options: Optional[NotifyOptions]) -> bool:
    """True when the caller explicitly kept this call off the console."""
    # the console flag does not depend on level or the info switch
    return resolve_silence(options, LogLevel.ERROR, True).console
