"""In-process publish/subscribe event bus with isolated async fan-out."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .bus import (
    EventBus,
    Handler,
    Unsubscribe,
    clear,
    emit,
    emit_nowait,
    get_event_bus,
    once,
    reset,
    reset_event_bus,
    setup,
    subscribe,
    unsubscribe,
)
from .exceptions import (
    ConfigValidationError,
    EventBusError,
    EventNotRegisteredError,
    InvalidArgumentError,
)

if TYPE_CHECKING:
    from .config import bootstrap, load_config
    from .logging_utils import configure_logging

__all__ = [
    "ConfigValidationError",
    "EventBus",
    "EventBusError",
    "EventNotRegisteredError",
    "Handler",
    "InvalidArgumentError",
    "Unsubscribe",
    "bootstrap",
    "clear",
    "configure_logging",
    "emit",
    "emit_nowait",
    "get_event_bus",
    "load_config",
    "once",
    "reset",
    "reset_event_bus",
    "setup",
    "subscribe",
    "unsubscribe",
]


def __getattr__(name: str) -> Any:
    """Lazily import config helpers so the bus itself needs no extra packages."""
    if name in {"bootstrap", "load_config"}:
        from .config import bootstrap, load_config

        return {"bootstrap": bootstrap, "load_config": load_config}[name]
    if name == "configure_logging":
        from .logging_utils import configure_logging

        return configure_logging
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
