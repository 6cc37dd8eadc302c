"""Retrying database operations that fail because the database is locked."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from spotkit.errors import InternalServerError

T = TypeVar("T")

_LOCK_MARKERS = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
)


@dataclass(frozen=True)
class RetryConfig:
    """How often to retry and how long to wait, in seconds."""

    max_retries: int = 5
    backoff: float = 0.01
    max_backoff: float = 0.1


def is_database_locked(error: Optional[BaseException]) -> bool:
    """Whether ``error`` reports a locked database."""
    if error is None:
        return False
    text = str(error).lower()
    return any(marker in text for marker in _LOCK_MARKERS)


def _run(
    operation: Callable[[], T],
    config: Optional[RetryConfig],
    is_retryable: Optional[Callable[[BaseException], bool]],
) -> T:
    config = config or RetryConfig()
    retryable = is_retryable or is_database_locked
    attempts = max(config.max_retries, 1)
    backoff = config.backoff
    last: Exception = InternalServerError("unknown error occurred during retry")

    for attempt in range(attempts):
        try:
            return operation()
        except Exception as exc:
            last = exc
            if not retryable(exc):
                raise InternalServerError(str(exc)) from exc
            if attempt == attempts - 1:
                break
            time.sleep(backoff)
            backoff *= 2
            if config.max_backoff > 0 and backoff > config.max_backoff:
                backoff = config.max_backoff

    raise InternalServerError(str(last)) from last


def retry_with_error(
    operation: Callable[[], object],
    config: Optional[RetryConfig] = None,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
) -> None:
    """Run ``operation``, retrying lock errors; raise InternalServerError on failure."""
    _run(operation, config, is_retryable)


def retry_with_error_and_result(
    operation: Callable[[], object],
    config: Optional[RetryConfig] = None,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
) -> None:
    """Like :func:`retry_with_error`, discarding the operation's result."""
    _run(operation, config, is_retryable)


def retry_with_result(
    operation: Callable[[], T],
    config: Optional[RetryConfig] = None,
    is_retryable: Optional[Callable[[BaseException], bool]] = None,
) -> T:
    """Run ``operation``, retrying lock errors, and return its result."""
    return _run(operation, config, is_retryable)