"""Logging levels and the gate that decides which levels get written."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Level(enum.IntEnum):
    """Logging levels, ordered from silent to most verbose."""

    NONE = 0
    FATAL = 1
    ERROR = 2
    WARN = 3
    INFO = 4
    DEBUG = 5
    TRACE = 6


_BY_NAME = {
    "trace": Level.TRACE,
    "debug": Level.DEBUG,
    "info": Level.INFO,
    "warn": Level.WARN,
    "error": Level.ERROR,
    "fatal": Level.FATAL,
}
_NAMES = {level: name for name, level in _BY_NAME.items()}
_WRITABLE = frozenset(_BY_NAME.values())


def parse_level(name: str) -> Level:
    """Return the level called ``name``; unknown names mean INFO."""
    return _BY_NAME.get(name, Level.INFO)


def level_name(level: int) -> str:
    """Return the lower-case name of ``level``; unknown levels read as "info"."""
    return _NAMES.get(level, "info")


def _threshold(level: int) -> Level:
    return Level(level) if level in _WRITABLE else Level.INFO


@dataclass
class TraceGate:
    """Decides whether a level is written, with trace switched separately."""

    threshold: Level = Level.INFO
    trace_enabled: bool = False

    def __post_init__(self) -> None:
        self.threshold = _threshold(self.threshold)

    def enabled(self, level: int) -> bool:
        """Whether a message at ``level`` passes the gate."""
        if level == Level.TRACE:
            return self.trace_enabled
        return level <= self.threshold

    def enable_trace(self, enabled: bool) -> None:
        """Switch trace output on or off."""
        self.trace_enabled = enabled

    def set_threshold(self, level: int) -> None:
        """Set the least severe level that passes; NONE and unknown mean INFO."""
        self.threshold = _threshold(level)