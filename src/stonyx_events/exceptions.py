"""Exception hierarchy for the event bus."""

from __future__ import annotations


class EventBusError(RuntimeError):
    """Base class for all event bus errors."""


class InvalidArgumentError(EventBusError, TypeError):
    """Raised when a bus operation receives a malformed argument."""


class EventNotRegisteredError(EventBusError, LookupError):
    """Raised when subscribing to an event that was never set up."""

    def __init__(self, event: str) -> None:
        self.event = event
        super().__init__(f'Event "{event}" is not registered. Call setup() first.')


class ConfigValidationError(EventBusError):
    """Raised when configuration cannot be validated safely."""
