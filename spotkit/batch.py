"""Deleting and updating matching rows in bounded batches."""

from __future__ import annotations

import dataclasses
import sqlite3
from typing import Any, Mapping

from spotkit.errors import BadRequestError
from spotkit.mapping import to_snake_case
from spotkit.query import Query
from spotkit.retry import retry_with_result

_MAX_BATCH = 1000


def has_primary_key(model: Any, column: str) -> bool:
    """Whether the dataclass ``model`` has a primary-key field stored in ``column``."""
    cls = model if isinstance(model, type) else type(model)
    if not dataclasses.is_dataclass(cls):
        return False
    return any(
        f.metadata.get("primary_key")
        and (f.metadata.get("column") or to_snake_case(f.name)) == column
        for f in dataclasses.fields(cls)
    )


def _prepare(query: Any, primary_field: str, limit: int, batch_size: int) -> tuple[Query, int, int]:
    if query is None:
        raise BadRequestError("invalid query")
    if not isinstance(query, Query):
        raise BadRequestError("invalid query statement")
    if not has_primary_key(query.model, primary_field):
        raise BadRequestError(f"model primary key `{primary_field}` doesn't exist")
    if batch_size <= 0 or batch_size > _MAX_BATCH:
        batch_size = _MAX_BATCH
    if limit <= 0 and query.limit_value is not None and query.limit_value > 0:
        limit = query.limit_value
    return query.limit(-1), limit, batch_size


def _pluck(query: Query, primary_field: str, batch_size: int) -> list[Any]:
    try:
        return query.limit(batch_size).pluck(primary_field)
    except sqlite3.Error as exc:
        raise BadRequestError(str(exc)) from exc


def delete_objs(
    query: Query, primary_field: str, limit: int = 0, batch_size: int = _MAX_BATCH
) -> int:
    """Delete rows matching ``query`` a batch at a time; return how many went.

    ``limit`` caps the total (0 takes the query's own limit, or no cap);
    ``batch_size`` is clamped to 1..1000. Lock errors are retried.
    """
    unbounded, limit, batch_size = _prepare(query, primary_field, limit, batch_size)

    total = 0
    while True:
        ids = _pluck(unbounded, primary_field, batch_size)
        if not ids:
            break
        if limit > 0 and total + len(ids) > limit:
            ids = ids[: limit - total]
        batch = unbounded.where(f"{primary_field} IN ?", ids)
        deleted = retry_with_result(batch.delete)
        total += deleted
        if deleted == 0 or (limit > 0 and total >= limit):
            break
    return total


def update_objs(
    query: Query,
    primary_field: str,
    updates: Mapping[str, Any],
    limit: int = 0,
    batch_size: int = _MAX_BATCH,
) -> int:
    """Set ``updates`` on rows matching ``query`` a batch at a time; return the count.

    The keys of ``updates`` may be field or column names. All matching keys are
    collected before any row is changed. ``limit`` and ``batch_size`` behave as
    in :func:`delete_objs`.
    """
    unbounded, limit, batch_size = _prepare(query, primary_field, limit, batch_size)
    if not updates:
        raise BadRequestError("no updates provided")
    values = dict(updates)

    batches: list[list[Any]] = []
    seen: list[Any] = []
    while True:
        pending = unbounded
        if seen:
            pending = pending.where(f"{primary_field} NOT IN ?", seen)
        ids = _pluck(pending, primary_field, batch_size)
        if not ids:
            break
        if limit > 0 and len(seen) + len(ids) > limit:
            ids = ids[: limit - len(seen)]
        batches.append(ids)
        seen.extend(ids)
        if limit > 0 and len(seen) >= limit:
            break

    total = 0
    for ids in batches:
        batch = unbounded.where(f"{primary_field} IN ?", ids)
        total += retry_with_result(lambda batch=batch: batch.update(values))
    return total