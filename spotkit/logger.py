"""Application logger writing to the console and to a rotating JSON file."""

from __future__ import annotations

import json
import os
import re
import sys
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Mapping, Optional, TextIO

from spotkit.levels import Level, TraceGate, level_name, parse_level
from spotkit.sink import Sink

_RESET = "\x1b[0m"
_LEVEL_COLORS = {
    Level.TRACE: "\x1b[34m",
    Level.DEBUG: "\x1b[35m",
    Level.INFO: "\x1b[36m",
    Level.WARN: "\x1b[33m",
    Level.ERROR: "\x1b[31m",
    Level.FATAL: "\x1b[31m",
}

_MEGABYTE = 1024 * 1024
_DEFAULT_MAX_SIZE_MB = 100
_BACKUP_TIME_FORMAT = "%Y-%m-%dT%H-%M-%S"


@dataclass
class LoggingConfig:
    """Settings for building a :class:`Logger`."""

    console_level: str = ""
    file_level: str = ""
    file: str = ""
    max_size_mb: int = 0
    max_backups: int = 0
    max_age_days: int = 0


def _format_message(msg: str, args: tuple[Any, ...]) -> str:
    if not args:
        return msg
    template = re.sub(
        r"%%|%v", lambda m: m.group(0) if m.group(0) == "%%" else "%s", msg
    )
    try:
        return template % args
    except (TypeError, ValueError):
        return " ".join([msg, *map(str, args)])


def _milliseconds(moment: datetime) -> str:
    return f"{moment.microsecond // 1000:03d}"


def _is_terminal(stream: Optional[TextIO]) -> bool:
    target = stream if stream is not None else sys.stdout
    try:
        return bool(target.isatty())
    except (AttributeError, ValueError):
        return False


class _ConsoleWriter:
    """Writes tab-separated, human-readable lines to a text stream."""

    def __init__(self, stream: Optional[TextIO], colorize: bool) -> None:
        self._stream = stream
        self._colorize = colorize

    def __call__(self, level: Level, msg: str, fields: Mapping[str, Any]) -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        now = datetime.now()
        stamp = now.strftime("%Y/%m/%d %H:%M:%S.") + _milliseconds(now)
        label = level_name(level).upper()
        if self._colorize and level in _LEVEL_COLORS:
            label = f"{_LEVEL_COLORS[level]}{label}{_RESET}"
        parts = [stamp, label, msg]
        if fields:
            parts.append(json.dumps(dict(fields), default=str))
        stream.write("\t".join(parts) + "\n")
        stream.flush()


class _RotatingFile:
    """An append-only file that is rotated by size, keeping dated backups."""

    def __init__(
        self, filename: str, max_size_mb: int, max_backups: int, max_age_days: int
    ) -> None:
        if filename:
            self.path = Path(filename)
        else:
            program = Path(sys.argv[0] or "python").name or "python"
            self.path = Path(tempfile.gettempdir()) / f"{program}-spotkit.log"
        size_mb = max_size_mb if max_size_mb > 0 else _DEFAULT_MAX_SIZE_MB
        self.max_bytes = size_mb * _MEGABYTE
        self.max_backups = max_backups
        self.max_age_days = max_age_days
        self._lock = threading.Lock()
        self._file: Optional[BinaryIO] = None
        self._size = 0

    def write(self, text: str) -> None:
        data = text.encode("utf-8")
        with self._lock:
            if self._file is None:
                self._open(len(data))
            elif self._size + len(data) > self.max_bytes:
                self._rotate()
            assert self._file is not None
            self._file.write(data)
            self._file.flush()
            self._size += len(data)

    def _open(self, incoming: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            size: Optional[int] = self.path.stat().st_size
        except FileNotFoundError:
            size = None
        if size is not None and size + incoming > self.max_bytes:
            self._rotate()
            return
        self._file = open(self.path, "ab")
        self._size = size or 0

    def _rotate(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None
        if self.path.exists():
            os.replace(self.path, self._backup_path())
        self._file = open(self.path, "wb")
        self._size = 0
        self._prune()

    def _backup_path(self) -> Path:
        now = datetime.now(timezone.utc)
        stamp = now.strftime(_BACKUP_TIME_FORMAT) + "." + _milliseconds(now)
        return self.path.with_name(f"{self.path.stem}-{stamp}{self.path.suffix}")

    def _backups(self) -> list[tuple[datetime, Path]]:
        prefix = f"{self.path.stem}-"
        suffix = self.path.suffix
        found = []
        for candidate in self.path.parent.iterdir():
            name = candidate.name
            if candidate == self.path or not name.startswith(prefix):
                continue
            if not name.endswith(suffix):
                continue
            stamp = name[len(prefix) : len(name) - len(suffix)] if suffix else name[len(prefix) :]
            try:
                moment = datetime.strptime(stamp, _BACKUP_TIME_FORMAT + ".%f")
            except ValueError:
                continue
            found.append((moment.replace(tzinfo=timezone.utc), candidate))
        found.sort(key=lambda item: item[0], reverse=True)
        return found

    def _prune(self) -> None:
        backups = self._backups()
        doomed: list[tuple[datetime, Path]] = []
        if self.max_backups > 0:
            doomed.extend(backups[self.max_backups :])
            backups = backups[: self.max_backups]
        if self.max_age_days > 0:
            cutoff = datetime.now(timezone.utc) - timedelta(days=self.max_age_days)
            doomed.extend(item for item in backups if item[0] < cutoff)
        for _, path in doomed:
            path.unlink(missing_ok=True)


class _FileWriter:
    """Writes one JSON object per line to a rotating file."""

    def __init__(self, target: _RotatingFile) -> None:
        self._target = target

    def __call__(self, level: Level, msg: str, fields: Mapping[str, Any]) -> None:
        now = datetime.now().astimezone()
        stamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + _milliseconds(now) + now.strftime("%z")
        record = {"level": level_name(level).upper(), "ts": stamp, "msg": msg, **fields}
        try:
            self._target.write(json.dumps(record, default=str) + "\n")
        except OSError as exc:
            print(f"log write error: {exc}", file=sys.stderr)


def _sink_handler(sink: Sink, level: int) -> Optional[Callable[[str], None]]:
    handlers = {
        Level.TRACE: sink.trace,
        Level.DEBUG: sink.debug,
        Level.INFO: sink.info,
        Level.WARN: sink.warn,
        Level.ERROR: sink.error,
        Level.FATAL: sink.fatal,
    }
    return handlers.get(level)


class _LoggingState:
    """Process-wide logging state: the main logger and any forced level."""

    def __init__(self) -> None:
        self.forced_level: Optional[int] = None
        self.main_logger: Optional["Logger"] = None


_state = _LoggingState()


class Logger:
    """Logs to the console and to a file, each with its own level."""

    console: Sink
    file: Sink
    file_name: str
    console_level: int
    file_level: int

    def __init__(
        self,
        console_level: int = Level.INFO,
        file_name: str = "",
        file_level: int = Level.NONE,
        max_size_mb: int = 0,
        max_backups: int = 0,
        max_age_days: int = 0,
        stream: Optional[TextIO] = None,
    ) -> None:
        if _state.forced_level is not None:
            console_level = _state.forced_level
            file_level = _state.forced_level

        if console_level == Level.NONE:
            console = Sink()
        else:
            colorize = _is_terminal(stream)
            console = Sink(
                writer=_ConsoleWriter(stream, colorize),
                level=console_level,
                gate=TraceGate(console_level, console_level >= Level.TRACE),
                colorize=colorize,
            )

        if file_level == Level.NONE and not file_name:
            file = Sink()
        else:
            target = _RotatingFile(file_name, max_size_mb, max_backups, max_age_days)
            file = Sink(
                writer=_FileWriter(target),
                level=file_level,
                gate=TraceGate(file_level, file_level >= Level.TRACE),
            )

        self.console = console
        self.file = file
        self.file_name = file_name
        self.console_level = console_level
        self.file_level = file_level

    @classmethod
    def _assemble(
        cls, console: Sink, file: Sink, file_name: str, console_level: int, file_level: int
    ) -> "Logger":
        logger = cls.__new__(cls)
        logger.console = console
        logger.file = file
        logger.file_name = file_name
        logger.console_level = console_level
        logger.file_level = file_level
        return logger

    def with_fields(self, fields: Mapping[str, Any]) -> "Logger":
        """Return a logger that adds ``fields`` to every message."""
        return self._assemble(
            self.console.with_fields(fields),
            self.file.with_fields(fields),
            self.file_name,
            self.console_level,
            self.file_level,
        )

    def with_field(self, key: str, value: Any) -> "Logger":
        return self.with_fields({key: value})

    def trace(self, msg: str, *args: Any) -> None:
        self.log(Level.TRACE, msg, *args)

    def debug(self, msg: str, *args: Any) -> None:
        self.log(Level.DEBUG, msg, *args)

    def info(self, msg: str, *args: Any) -> None:
        self.log(Level.INFO, msg, *args)

    def warn(self, msg: str, *args: Any) -> None:
        self.log(Level.WARN, msg, *args)

    def error(self, msg: str, *args: Any) -> None:
        self.log(Level.ERROR, msg, *args)

    def fatal(self, msg: str, *args: Any) -> None:
        """Log ``msg`` and end the program with status 1."""
        self.log(Level.FATAL, msg, *args)

    def log(self, level: int, msg: str, *args: Any) -> None:
        """Format ``msg`` with ``args`` and send it to both destinations."""
        if level > self.console_level and level > self.file_level:
            return
        text = _format_message(msg, args)
        exit_request: Optional[SystemExit] = None
        for sink in (self.console, self.file):
            handler = _sink_handler(sink, level)
            if handler is None:
                continue
            try:
                handler(text)
            except SystemExit as exc:
                exit_request = exc
        if exit_request is not None:
            raise exit_request

    def last_messages(self) -> str:
        """The console's remembered messages, one per line."""
        return "".join(f"{msg}\n" for msg in self.console.last_messages())

    def set_last_messages_limit(self, limit: int) -> None:
        self.console.set_memory_limit(limit)

    def set_console_level(self, level: int) -> None:
        self.console_level = level
        self.console.set_level(level)

    def set_file_level(self, level: int) -> None:
        self.file_level = level
        self.file.set_level(level)


def create_logger(config: LoggingConfig) -> Logger:
    """Build a logger from ``config``."""
    return Logger(
        parse_level(config.console_level),
        config.file,
        parse_level(config.file_level),
        config.max_size_mb,
        config.max_backups,
        config.max_age_days,
    )


_state.main_logger = Logger(Level.INFO, "", Level.DEBUG, 0, 0, 0)


def force_log_level(level: int) -> None:
    """Pin both levels of the main logger and of every new logger to ``level``."""
    _state.forced_level = level
    main = _state.main_logger
    if main is not None:
        main.set_console_level(level)
        main.set_file_level(level)


def clear_forced_log_level() -> None:
    """Let new loggers use the levels they are given again."""
    _state.forced_level = None


def get_main_logger() -> Logger:
    main = _state.main_logger
    assert main is not None
    return main


def set_main_logger(logger: Logger) -> None:
    """Make ``logger`` the one the module-level functions write to."""
    if not isinstance(logger, Logger):
        raise TypeError(f"expected a Logger, got {type(logger).__name__}")
    _state.main_logger = logger


def trace(msg: str, *args: Any) -> None:
    get_main_logger().log(Level.TRACE, msg, *args)


def debug(msg: str, *args: Any) -> None:
    get_main_logger().log(Level.DEBUG, msg, *args)


def info(msg: str, *args: Any) -> None:
    get_main_logger().log(Level.INFO, msg, *args)


def warn(msg: str, *args: Any) -> None:
    get_main_logger().log(Level.WARN, msg, *args)


def error(msg: str, *args: Any) -> None:
    get_main_logger().log(Level.ERROR, msg, *args)


def fatal(msg: str, *args: Any) -> None:
    get_main_logger().log(Level.FATAL, msg, *args)