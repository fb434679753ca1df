"""In-process publish/subscribe event bus.

Usage:
    bus = get_event_bus()
    bus.setup(["model.saved", "model.deleted"])

    async def on_saved(record):
        print(f"Saved: {record}")

    unsubscribe = bus.subscribe("model.saved", on_saved)

    # Every current subscriber runs concurrently; failures are logged.
    await bus.emit("model.saved", record)

    unsubscribe()
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable, Sequence
import functools
import inspect
import logging
import threading
from typing import Any

from .exceptions import EventNotRegisteredError, InvalidArgumentError
from .tasks import TaskTracker

LOGGER = logging.getLogger(__name__)

Handler = Callable[..., Any]
Unsubscribe = Callable[[], None]


def _handler_name(handler: Handler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class _IdentityKey:
    """Dict key for an unhashable handler, compared by identity."""

    __slots__ = ("handler",)

    def __init__(self, handler: Handler) -> None:
        self.handler = handler

    def __hash__(self) -> int:
        return id(self.handler)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, _IdentityKey) and other.handler is self.handler


def _handler_key(handler: Handler) -> Any:
    try:
        hash(handler)
    except TypeError:
        return _IdentityKey(handler)
    return handler


class EventBus:
    """Registry of named events and the handlers subscribed to them.

    Events must be registered with :meth:`setup` before anything can
    subscribe to them. Emission fans out to a snapshot of the current
    subscribers, runs them concurrently and isolates each handler's failure.

    Hashable handlers are deduplicated by equality, so ``obj.method`` can be
    unsubscribed with a fresh ``obj.method`` reference; two distinct but
    equal callables (e.g. frozen dataclasses with equal fields) share one
    subscription. Unhashable callables are tracked by identity.
    """

    def __init__(self) -> None:
        self._registered: set[str] = set()
        # Insertion-ordered handler sets, keyed by _handler_key.
        self._subscribers: dict[str, dict[Any, Handler]] = {}
        self._lock = threading.RLock()
        self._tasks = TaskTracker()

    def __len__(self) -> int:
        return len(self._registered)

    def __contains__(self, event: object) -> bool:
        return event in self._registered

    def __repr__(self) -> str:
        return f"<EventBus events={len(self._registered)}>"

    @property
    def registered_events(self) -> frozenset[str]:
        with self._lock:
            return frozenset(self._registered)

    @property
    def pending_emissions(self) -> int:
        """Number of ``emit_nowait`` emissions that have not finished yet."""
        return self._tasks.pending

    def is_registered(self, event: str) -> bool:
        return event in self

    def event_names(self) -> list[str]:
        """Names that currently hold a subscriber entry."""
        with self._lock:
            return list(self._subscribers)

    def subscribers(self, event: str) -> tuple[Handler, ...]:
        """Snapshot of the handlers currently subscribed to ``event``."""
        with self._lock:
            return tuple(self._subscribers.get(event, {}).values())

    def subscriber_count(self, event: str) -> int:
        with self._lock:
            return len(self._subscribers.get(event, ()))

    def setup(self, event_names: Sequence[str]) -> None:
        """Register event names so handlers may subscribe to them.

        Registering a name twice is harmless and keeps its subscribers.

        Args:
            event_names: Sequence of event name strings.

        Raises:
            InvalidArgumentError: If ``event_names`` is not a sequence or
                contains a non-string element. Nothing is registered then.
        """
        if isinstance(event_names, (str, bytes)) or not isinstance(
            event_names, Sequence
        ):
            raise InvalidArgumentError(
                "setup() requires a sequence of event names, "
                f"got {type(event_names).__name__}"
            )
        for name in event_names:
            if not isinstance(name, str):
                raise InvalidArgumentError(
                    f"Event names must be strings, got {type(name).__name__}"
                )

        with self._lock:
            for name in event_names:
                self._registered.add(name)
                self._subscribers.setdefault(name, {})
        LOGGER.debug(
            "Registered events: %s",
            ", ".join(event_names),
            extra={"event_names": list(event_names)},
        )

    def _check_subscription(self, event: str, handler: Any) -> None:
        if event not in self._registered:
            raise EventNotRegisteredError(event)
        if not callable(handler):
            raise InvalidArgumentError(
                f"Callback must be a function, got {type(handler).__name__}"
            )

    def subscribe(self, event: str, handler: Handler) -> Unsubscribe:
        """Subscribe ``handler`` to ``event``.

        Subscribing the same handler twice keeps a single subscription.

        Returns:
            A zero-argument callable removing this subscription. Calling it
            more than once, or after :meth:`reset`, does nothing.

        Raises:
            EventNotRegisteredError: If ``event`` was not set up.
            InvalidArgumentError: If ``handler`` is not callable.
        """
        with self._lock:
            self._check_subscription(event, handler)
            self._subscribers[event].setdefault(_handler_key(handler), handler)
        LOGGER.debug(
            "Subscribed to event: %s",
            event,
            extra={"event_name": event, "handler": _handler_name(handler)},
        )

        def unsubscribe() -> None:
            self.unsubscribe(event, handler)

        return unsubscribe

    def once(self, event: str, handler: Handler) -> Unsubscribe:
        """Subscribe ``handler`` for the next emission of ``event`` only.

        The wrapper removes itself before calling ``handler``, so a handler
        that re-emits ``event`` is not invoked again. Overlapping emissions
        whose snapshots both hold the wrapper still call ``handler`` once.

        Returns:
            A callable removing the one-time subscription before it fires.
        """
        with self._lock:
            self._check_subscription(event, handler)

        fired = False

        @functools.wraps(handler)
        async def once_wrapper(*args: Any, **kwargs: Any) -> None:
            nonlocal fired
            if fired:
                return
            fired = True
            self.unsubscribe(event, once_wrapper)
            result = handler(*args, **kwargs)
            if inspect.isawaitable(result):
                await result

        return self.subscribe(event, once_wrapper)

    def unsubscribe(self, event: str, handler: Handler) -> None:
        """Remove ``handler`` from ``event``; unknown pairs are ignored."""
        with self._lock:
            handlers = self._subscribers.get(event)
            if handlers is None or handlers.pop(_handler_key(handler), None) is None:
                return
        LOGGER.debug(
            "Unsubscribed from event: %s",
            event,
            extra={"event_name": event, "handler": _handler_name(handler)},
        )

    async def _invoke(
        self, event: str, handler: Handler, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> None:
        try:
            result = handler(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                # The emission itself is being cancelled.
                raise
            LOGGER.exception(
                "Event handler for %r was cancelled",
                event,
                extra={"event_name": event, "handler": _handler_name(handler)},
            )
        except Exception:
            LOGGER.exception(
                "Error in event handler for %r",
                event,
                extra={"event_name": event, "handler": _handler_name(handler)},
            )

    async def _fan_out(
        self,
        event: str,
        handlers: Iterable[Handler],
        args: tuple[Any, ...],
        kwargs: dict[str, Any],
    ) -> None:
        await asyncio.gather(
            *(self._invoke(event, handler, args, kwargs) for handler in handlers)
        )

    async def emit(self, event: str, /, *args: Any, **kwargs: Any) -> None:
        """Call every current subscriber of ``event`` concurrently.

        Completes once all handlers have finished. A failing handler is
        logged and never affects its siblings or the caller. Emitting an
        event nobody listens to, or that was never set up, does nothing.
        """
        handlers = self.subscribers(event)
        if not handlers:
            return
        await self._fan_out(event, handlers, args, kwargs)

    def emit_nowait(
        self, event: str, /, *args: Any, **kwargs: Any
    ) -> asyncio.Task[None] | None:
        """Schedule an emission on the running loop without waiting for it.

        The subscriber snapshot is taken immediately. Returns the scheduled
        task, or ``None`` when there is nobody to notify.

        Raises:
            RuntimeError: If called without a running event loop.
        """
        loop = asyncio.get_running_loop()
        handlers = self.subscribers(event)
        if not handlers:
            return None
        task = loop.create_task(
            self._fan_out(event, handlers, args, kwargs), name=f"emit:{event}"
        )
        return self._tasks.add(task)

    async def drain(self) -> None:
        """Wait for every ``emit_nowait`` emission to finish."""
        await self._tasks.wait_all()

    async def aclose(self) -> None:
        """Cancel every pending ``emit_nowait`` emission and wait for it."""
        await self._tasks.cancel_all()

    def clear(self, event: str) -> None:
        """Drop every subscriber of ``event``; it stays registered."""
        with self._lock:
            handlers = self._subscribers.get(event)
            if handlers is None:
                return
            handlers.clear()
        LOGGER.debug("Cleared event: %s", event, extra={"event_name": event})

    def reset(self) -> None:
        """Forget every registered event and subscriber."""
        with self._lock:
            self._subscribers.clear()
            self._registered.clear()
        LOGGER.debug("Event bus reset")


_default_bus: EventBus | None = None
_default_lock = threading.Lock()


def get_event_bus() -> EventBus:
    """Return the process-wide bus, creating it on first use."""
    global _default_bus
    if _default_bus is None:
        with _default_lock:
            if _default_bus is None:
                _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    """Discard the process-wide bus; the next access builds a fresh one."""
    global _default_bus
    with _default_lock:
        _default_bus = None


# Convenience functions forwarding to the process-wide bus.


def setup(event_names: Sequence[str]) -> None:
    get_event_bus().setup(event_names)


def subscribe(event: str, handler: Handler) -> Unsubscribe:
    return get_event_bus().subscribe(event, handler)


def once(event: str, handler: Handler) -> Unsubscribe:
    return get_event_bus().once(event, handler)


def unsubscribe(event: str, handler: Handler) -> None:
    get_event_bus().unsubscribe(event, handler)


async def emit(event: str, /, *args: Any, **kwargs: Any) -> None:
    await get_event_bus().emit(event, *args, **kwargs)


def emit_nowait(event: str, /, *args: Any, **kwargs: Any) -> asyncio.Task[None] | None:
    return get_event_bus().emit_nowait(event, *args, **kwargs)


def clear(event: str) -> None:
    get_event_bus().clear(event)


def reset() -> None:
    get_event_bus().reset()
