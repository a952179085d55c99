"""
clusterlog exception hierarchy.

Two families matter to callers:

- Configuration errors (``InvalidConfiguration``) are fatal to ``initialize``
  and are raised immediately.
- Delivery errors (``DeliveryError``, ``ChannelError``) are raised inside sinks
  and channels, caught at the registry / forwarder boundary and never reach
  the code that called ``notify`` or ``finalize``.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ClusterLogError(Exception):
    """Root of all clusterlog exceptions."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


# ================================
# Configuration / lifecycle
# ================================


class InvalidConfiguration(ClusterLogError):
    """Malformed or out-of-range options passed to ``initialize``."""

    def __init__(self, message: str, *, errors: Optional[list[Dict[str, Any]]] = None) -> None:
        super().__init__(
            message,
            code="INVALID_CONFIGURATION",
            details={"errors": errors or []},
        )

    @classmethod
    def from_validation_error(cls, exc: Exception) -> "InvalidConfiguration":
        """Wrap a pydantic ``ValidationError`` keeping its structured error list."""
        errors_fn = getattr(exc, "errors", None)
        errors: list[Dict[str, Any]] = []
        if callable(errors_fn):
            for err in errors_fn():
                errors.append(
                    {
                        "loc": ".".join(str(part) for part in err.get("loc", ())),
                        "msg": err.get("msg", ""),
                        "type": err.get("type", ""),
                    }
                )
        summary = "; ".join(f"{e['loc']}: {e['msg']}" for e in errors) or str(exc)
        return cls(f"Invalid logger configuration: {summary}", errors=errors)


class LifecycleError(ClusterLogError):
    """Operation not allowed in the current lifecycle state."""

    def __init__(self, message: str, *, state: str) -> None:
        super().__init__(message, code="ALREADY_INITIALIZED", details={"state": state})


# ================================
# Delivery
# ================================


class DeliveryError(ClusterLogError):
    """A sink failed to write or close."""

    def __init__(self, sink: str, reason: str) -> None:
        super().__init__(
            f"Unable to deliver message to {sink} [{reason}]",
            code="DELIVERY_FAILED",
            details={"sink": sink, "reason": reason},
        )
        self.sink = sink
        self.reason = reason


class ChannelError(ClusterLogError):
    """The inter-process forwarding channel failed."""

    def __init__(self, reason: str, *, endpoint: Optional[str] = None) -> None:
        super().__init__(
            f"Forwarding channel failure: {reason}",
            code="CHANNEL_FAILED",
            details={"endpoint": endpoint, "reason": reason},
        )
