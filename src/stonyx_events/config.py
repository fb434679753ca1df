"""Configuration loading and validation for hosts bootstrapping the bus."""

from __future__ import annotations

from copy import deepcopy
import logging
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from .bus import EventBus, get_event_bus
from .exceptions import ConfigValidationError
from .logging_utils import DEFAULT_LOG_FILE_PATH, configure_logging

import tomllib

LOGGER = logging.getLogger(__name__)

CONFIG_ENV_VAR = "STONYX_EVENTS_CONFIG"
CONFIG_PATH = Path.home() / ".config" / "stonyx-events" / "config.toml"
VALID_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


class LoggingConfig(BaseModel):
    """Logging behavior and output destinations."""

    level: str = "INFO"
    structured: bool = True
    log_to_file: bool = False
    log_file_path: str = DEFAULT_LOG_FILE_PATH

    @field_validator("level", mode="before")
    @classmethod
    def _validate_level(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("Logging level must be a string.")
        normalized = value.strip().upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(f"Unsupported log level {normalized!r}.")
        return normalized

    @field_validator("log_file_path", mode="before")
    @classmethod
    def _validate_log_file_path(cls, value: Any) -> str:
        if not isinstance(value, str):
            raise ValueError("log_file_path must be a string.")
        normalized = value.strip()
        if not normalized:
            raise ValueError("log_file_path must not be empty.")
        return normalized


class EventsConfig(BaseModel):
    """Event names registered on the bus at bootstrap."""

    events: list[str] = Field(default_factory=list)

    @field_validator("events", mode="before")
    @classmethod
    def _validate_events(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list):
            raise ValueError("events must be a list of event names.")
        normalized: list[str] = []
        for item in value:
            if not isinstance(item, str):
                raise ValueError("Each event name must be a string.")
            candidate = item.strip()
            if not candidate:
                raise ValueError("Event names must not be empty.")
            if candidate not in normalized:
                normalized.append(candidate)
        return normalized


class Config(BaseModel):
    """Root configuration model for all sections."""

    logging: LoggingConfig = LoggingConfig()
    events: EventsConfig = EventsConfig()


DEFAULT_CONFIG: dict[str, dict[str, Any]] = Config().model_dump()


def default_config_path() -> Path:
    override = os.environ.get(CONFIG_ENV_VAR, "").strip()
    return Path(override).expanduser() if override else CONFIG_PATH


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override values onto base values."""
    merged: dict[str, Any] = deepcopy(base)
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _validate_config(raw: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """Validate merged config and fallback to safe defaults when possible."""
    try:
        return Config.model_validate(raw).model_dump()
    except ValidationError as exc:
        LOGGER.warning("Configuration validation failed, using safe defaults: %s", exc)
        return deepcopy(DEFAULT_CONFIG)
    except Exception as exc:  # noqa: BLE001 - unexpected model construction failure.
        raise ConfigValidationError(f"Unable to validate configuration: {exc}") from exc


def load_config(config_path: Path | None = None) -> dict[str, dict[str, Any]]:
    """
    Load configuration from TOML, merge with defaults, and validate.

    A missing file yields the defaults. The optional ``config_path``
    argument wins over ``STONYX_EVENTS_CONFIG``.
    """
    target_path = config_path or default_config_path()

    raw_data: dict[str, Any] = {}
    if target_path.exists():
        try:
            raw_data = tomllib.loads(target_path.read_text(encoding="utf-8"))
        except (OSError, tomllib.TOMLDecodeError) as exc:
            LOGGER.warning("Failed to parse config at %s: %s", target_path, exc)
            raw_data = {}

    return _validate_config(_deep_merge(DEFAULT_CONFIG, raw_data))


def bootstrap(
    config: dict[str, dict[str, Any]] | None = None, bus: EventBus | None = None
) -> EventBus:
    """Configure logging and register the configured events.

    ``config`` may be partial; it is merged over the defaults. Uses the
    process-wide bus unless ``bus`` is given.
    """
    settings = (
        _validate_config(_deep_merge(DEFAULT_CONFIG, config))
        if config is not None
        else load_config()
    )
    configure_logging(settings["logging"])
    target = bus if bus is not None else get_event_bus()
    target.setup(settings["events"]["events"])
    LOGGER.info(
        "Event bus bootstrapped",
        extra={"event_names": list(settings["events"]["events"])},
    )
    return target
