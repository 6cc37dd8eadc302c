"""Configuration section that builds the main logger."""

from __future__ import annotations

import dataclasses
from typing import Any, Mapping, Optional

from spotkit.logger import LoggingConfig, create_logger, get_main_logger, set_main_logger


def _default_config() -> LoggingConfig:
    return LoggingConfig(
        console_level="info",
        file_level="debug",
        file="logs/main.log",
        max_size_mb=1000,
        max_backups=3,
        max_age_days=28,
    )


def _coerce(key: str, current: Any, value: Any) -> Any:
    if isinstance(current, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(current, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(current, str):
        if isinstance(value, str):
            return value
    raise ValueError(
        f"invalid value for '{key}': expected {type(current).__name__}, "
        f"got {type(value).__name__}"
    )


class MainLoggingConfig:
    """The "main" logging section: holds settings and rebuilds the main logger."""

    def __init__(self, config: Optional[LoggingConfig] = None) -> None:
        self.config = config if config is not None else _default_config()

    def get_default(self) -> LoggingConfig:
        """A copy of the current settings."""
        return dataclasses.replace(self.config)

    def load(self, name: str, config_dict: Mapping[str, Any]) -> None:
        """Apply ``config_dict`` and replace the main logger to match.

        Raises ValueError if a value has the wrong type; nothing changes then.
        """
        updated = dataclasses.replace(self.config)
        known = {field.name for field in dataclasses.fields(updated)}
        for key, value in config_dict.items():
            if key not in known:
                continue
            setattr(updated, key, _coerce(key, getattr(updated, key), value))
        self.config = updated

        set_main_logger(create_logger(updated))
        get_main_logger().console.debug("Main logger initialized")


_main_logging_config = MainLoggingConfig()


def get_main_logging_config() -> MainLoggingConfig:
    """The shared "main" logging section."""
    return _main_logging_config