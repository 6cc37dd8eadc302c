"""A single log destination that also keeps its latest messages in memory."""

from __future__ import annotations

import threading
from typing import Any, Callable, Mapping, Optional

from spotkit.levels import Level, TraceGate, level_name

Writer = Callable[[Level, str, Mapping[str, Any]], None]

_BLUE = "\x1b[34m"
_MAGENTA = "\x1b[35m"
_RESET = "\x1b[0m"


class Sink:
    """Writes messages through ``writer`` and remembers the most recent ones.

    A sink without a writer discards output but still keeps its memory.
    """

    def __init__(
        self,
        writer: Optional[Writer] = None,
        level: int = Level.NONE,
        gate: Optional[TraceGate] = None,
        memory_limit: int = 0,
        colorize: bool = False,
        fields: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.writer = writer
        self.level = level
        self.gate = gate
        self.memory_limit = memory_limit
        self.colorize = colorize
        self.fields: dict[str, Any] = dict(fields or {})
        self._lock = threading.Lock()
        self._messages: list[str] = []

    def remember(self, level: int, msg: str) -> None:
        """Keep ``msg`` in memory if the limit and level allow it."""
        with self._lock:
            if self.memory_limit <= 0:
                self._messages.clear()
                return
            if level > self.level:
                return
            self._messages.append(f"{level_name(level).upper()}: {msg}")
            excess = len(self._messages) - self.memory_limit
            if excess > 0:
                del self._messages[:excess]

    def _write(self, level: Level, msg: str) -> None:
        if self.writer is None:
            return
        if self.gate is not None and not self.gate.enabled(level):
            return
        self.writer(level, msg, dict(self.fields))

    def _emit(self, level: Level, msg: str) -> None:
        self._write(level, msg)
        self.remember(level, msg)

    def trace(self, msg: str) -> None:
        if self.colorize:
            msg = f"{_BLUE}{msg}{_RESET}"
        self._emit(Level.TRACE, msg)

    def debug(self, msg: str) -> None:
        if self.colorize:
            msg = f"{_MAGENTA}{msg}{_RESET}"
        self._emit(Level.DEBUG, msg)

    def info(self, msg: str) -> None:
        self._emit(Level.INFO, msg)

    def warn(self, msg: str) -> None:
        self._emit(Level.WARN, msg)

    def error(self, msg: str) -> None:
        self._emit(Level.ERROR, msg)

    def fatal(self, msg: str) -> None:
        """Write ``msg`` and end the program with status 1."""
        self._emit(Level.FATAL, msg)
        raise SystemExit(1)

    def log(self, level: int, msg: str, *args: Any) -> None:
        """Format ``msg`` with ``args`` and log it; unknown levels go to info."""
        text = msg % args if args else msg
        handlers = {
            Level.TRACE: self.trace,
            Level.DEBUG: self.debug,
            Level.INFO: self.info,
            Level.WARN: self.warn,
            Level.ERROR: self.error,
            Level.FATAL: self.fatal,
        }
        handlers.get(level, self.info)(text)

    def with_fields(self, fields: Mapping[str, Any]) -> "Sink":
        """Return a sink with extra fields and an empty memory."""
        return Sink(
            writer=self.writer,
            level=self.level,
            gate=self.gate,
            memory_limit=self.memory_limit,
            colorize=self.colorize,
            fields={**self.fields, **fields},
        )

    def with_field(self, key: str, value: Any) -> "Sink":
        return self.with_fields({key: value})

    def set_level(self, level: int) -> None:
        """Change the level for memory and, if present, the write gate."""
        if self.gate is not None:
            self.gate.set_threshold(level)
            self.gate.enable_trace(level >= Level.TRACE)
        self.level = level

    def last_messages(self) -> list[str]:
        """A copy of the remembered messages, oldest first."""
        with self._lock:
            return list(self._messages)

    def set_memory_limit(self, limit: int) -> None:
        with self._lock:
            self.memory_limit = limit