"""A small query builder over SQLite for dataclass models.

Models are dataclasses. A field's ``metadata`` may carry ``"column"`` to
override its column name and ``"primary_key": True`` to mark the key.
Queries are immutable: every builder method returns a new query.
"""

from __future__ import annotations

import dataclasses
import enum
import functools
import re
import sqlite3
import threading
import types
import typing
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Optional, Union

from spotkit.errors import BadRequestError

_OR_WORD = re.compile(r"\bor\b", re.IGNORECASE)

_NAMED_TYPES: dict[str, Any] = {
    "int": int,
    "bool": bool,
    "float": float,
    "bytes": bytes,
    "str": str,
    "UUID": uuid.UUID,
    "uuid.UUID": uuid.UUID,
    "datetime": datetime,
    "datetime.datetime": datetime,
    "date": date,
    "datetime.date": date,
}

_OPTIONAL_TEXT = re.compile(r"^(?:typing\.)?Optional\[(.+)\]$")


def _snake(name: str) -> str:
    snake = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    snake = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", snake)
    return snake.lower()


def _plural(word: str) -> str:
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"


def _model_class(model: Any) -> type:
    cls = model if isinstance(model, type) else type(model)
    if not dataclasses.is_dataclass(cls):
        raise TypeError(f"{cls.__name__} is not a dataclass model")
    return cls


def _table_name(cls: type) -> str:
    explicit = getattr(cls, "__tablename__", None)
    return explicit if explicit else _plural(_snake(cls.__name__))


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _type_from_text(text: str) -> Any:
    text = text.replace(" ", "")
    optional = _OPTIONAL_TEXT.match(text)
    if optional:
        text = optional.group(1)
    parts = [part for part in text.split("|") if part not in ("None", "NoneType")]
    if len(parts) != 1:
        return Any
    return _NAMED_TYPES.get(parts[0], Any)


def _base_type(annotation: Any) -> Any:
    if isinstance(annotation, str):
        return _type_from_text(annotation)
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in typing.get_args(annotation) if arg is not type(None)]
        return args[0] if len(args) == 1 else annotation
    return annotation


@dataclass(frozen=True)
class _Column:
    attr: str
    name: str
    primary_key: bool
    init: bool
    py_type: Any


@functools.lru_cache(maxsize=None)
def _columns(cls: type) -> tuple[_Column, ...]:
    return tuple(
        _Column(
            attr=f.name,
            name=f.metadata.get("column") or _snake(f.name),
            primary_key=bool(f.metadata.get("primary_key")),
            init=f.init,
            py_type=_base_type(f.type),
        )
        for f in dataclasses.fields(cls)
    )


def _sql_type(py_type: Any) -> str:
    if py_type in (int, bool):
        return "INTEGER"
    if py_type is float:
        return "REAL"
    if py_type is bytes:
        return "BLOB"
    return "TEXT"


def _to_db(value: Any) -> Any:
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, enum.Enum):
        return value.value
    return value


def _from_db(value: Any, py_type: Any) -> Any:
    if value is None:
        return None
    if py_type is uuid.UUID and isinstance(value, str):
        return uuid.UUID(value)
    if py_type is datetime and isinstance(value, str):
        return datetime.fromisoformat(value)
    if py_type is date and isinstance(value, str):
        return date.fromisoformat(value)
    if py_type is bool:
        return bool(value)
    return value


def _resolve_column(cls: type, key: str) -> str:
    for column in _columns(cls):
        if key in (column.attr, column.name):
            return column.name
    return key


def _find_column(cls: type, key: str) -> Optional[_Column]:
    return next((c for c in _columns(cls) if key in (c.attr, c.name)), None)


@dataclass(frozen=True)
class _Cond:
    sql: str
    params: tuple[Any, ...]
    has_or: bool


def _bind(clause: str, args: Iterable[Any]) -> _Cond:
    args = tuple(args)
    pieces = clause.split("?")
    if len(pieces) - 1 != len(args):
        raise ValueError(
            f"clause {clause!r} expects {len(pieces) - 1} arguments, got {len(args)}"
        )
    out = [pieces[0]]
    params: list[Any] = []
    for arg, piece in zip(args, pieces[1:]):
        if isinstance(arg, (list, tuple, set, frozenset)):
            items = list(arg)
            out.append("(" + ", ".join("?" * len(items)) + ")" if items else "(NULL)")
            params.extend(_to_db(item) for item in items)
        else:
            out.append("?")
            params.append(_to_db(arg))
        out.append(piece)
    return _Cond("".join(out), tuple(params), bool(_OR_WORD.search(clause)))


def _and(left: Optional[_Cond], right: Optional[_Cond]) -> Optional[_Cond]:
    if left is None:
        return right
    if right is None:
        return left
    lhs = f"({left.sql})" if left.has_or else left.sql
    rhs = f"({right.sql})" if right.has_or else right.sql
    return _Cond(f"{lhs} AND {rhs}", left.params + right.params, False)


def _or(left: Optional[_Cond], right: Optional[_Cond]) -> Optional[_Cond]:
    if left is None:
        return right
    if right is None:
        return left
    return _Cond(f"{left.sql} OR {right.sql}", left.params + right.params, True)


class Database:
    """A SQLite database holding tables for dataclass models."""

    def __init__(self, path: str = ":memory:", timeout: float = 5.0) -> None:
        self._conn = sqlite3.connect(
            path, timeout=timeout, check_same_thread=False, isolation_level=None
        )
        self._lock = threading.RLock()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> tuple[list[tuple], int]:
        with self._lock:
            cursor = self._conn.execute(sql, tuple(params))
            return cursor.fetchall(), cursor.rowcount

    def create_table(self, model: Any) -> None:
        """Create the table for ``model`` unless it already exists."""
        cls = _model_class(model)
        columns = _columns(cls)
        if not columns:
            raise ValueError(f"{cls.__name__} has no fields")
        keys = [c.name for c in columns if c.primary_key]
        defs = []
        for column in columns:
            definition = f"{_quote(column.name)} {_sql_type(column.py_type)}"
            if len(keys) == 1 and column.primary_key:
                definition += " PRIMARY KEY"
            defs.append(definition)
        if len(keys) > 1:
            defs.append("PRIMARY KEY (" + ", ".join(map(_quote, keys)) + ")")
        self._execute(
            f"CREATE TABLE IF NOT EXISTS {_quote(_table_name(cls))} ({', '.join(defs)})"
        )

    def insert(self, obj: Any) -> None:
        """Store the dataclass instance ``obj`` as a new row."""
        if isinstance(obj, type):
            raise TypeError("insert() needs a model instance, not a class")
        cls = _model_class(obj)
        columns = _columns(cls)
        names = ", ".join(_quote(c.name) for c in columns)
        marks = ", ".join("?" * len(columns))
        values = [_to_db(getattr(obj, c.attr)) for c in columns]
        self._execute(
            f"INSERT INTO {_quote(_table_name(cls))} ({names}) VALUES ({marks})", values
        )

    def model(self, model: Any) -> "Query":
        """Start a query over the table of ``model`` (a class or an instance)."""
        cls = _model_class(model)
        return Query(db=self, model=cls, table=_table_name(cls))

    def close(self) -> None:
        with self._lock:
            self._conn.close()


@dataclass(frozen=True, eq=False)
class Query:
    """An immutable description of rows in one model's table."""

    db: Database
    model: type
    table: str
    condition: Optional[_Cond] = None
    orders: tuple[str, ...] = ()
    limit_value: Optional[int] = None
    offset_value: Optional[int] = None

    def _condition_of(self, clause: Any, args: tuple[Any, ...]) -> Optional[_Cond]:
        if isinstance(clause, Query):
            if args:
                raise TypeError("a query clause takes no arguments")
            return clause.condition
        if isinstance(clause, Mapping):
            if args:
                raise TypeError("a mapping clause takes no arguments")
            if not clause:
                return None
            parts = []
            values = []
            for key, value in clause.items():
                column = _quote(_resolve_column(self.model, key))
                if isinstance(value, (list, tuple, set, frozenset)):
                    parts.append(f"{column} IN ?")
                else:
                    parts.append(f"{column} = ?")
                values.append(value)
            bound = _bind(" AND ".join(parts), values)
            return _Cond(bound.sql, bound.params, False)
        if isinstance(clause, str):
            return _bind(clause, args)
        raise TypeError(f"unsupported clause type {type(clause).__name__}")

    def where(self, clause: Any, *args: Any) -> "Query":
        """Add a condition joined with AND.

        ``clause`` is SQL with ``?`` placeholders, a mapping of column to value,
        or another query whose conditions are added as one group. A list
        argument expands into a parenthesised list for ``IN ?``.
        """
        return dataclasses.replace(
            self, condition=_and(self.condition, self._condition_of(clause, args))
        )

    def or_where(self, other: Any) -> "Query":
        """Join a query's conditions, a mapping or an SQL clause with OR."""
        return dataclasses.replace(
            self, condition=_or(self.condition, self._condition_of(other, ()))
        )

    def merge(self, other: "Query") -> "Query":
        """AND the conditions of ``other``, a query on the same table, as a group."""
        if other.table != self.table:
            raise ValueError(f"cannot merge a query on {other.table} into {self.table}")
        return dataclasses.replace(self, condition=_and(self.condition, other.condition))

    def limit(self, count: int) -> "Query":
        """Return at most ``count`` rows; a negative count removes the limit."""
        return dataclasses.replace(self, limit_value=count if count >= 0 else None)

    def offset(self, count: int) -> "Query":
        """Skip ``count`` rows; a negative count removes the offset."""
        return dataclasses.replace(self, offset_value=count if count >= 0 else None)

    def order(self, clause: str) -> "Query":
        """Add an ORDER BY term such as ``"name desc"``."""
        return dataclasses.replace(self, orders=self.orders + (clause,))

    def _where_sql(self) -> tuple[str, tuple[Any, ...]]:
        if self.condition is None:
            return "", ()
        return f" WHERE {self.condition.sql}", self.condition.params

    def _select(self, columns: str) -> tuple[str, tuple[Any, ...]]:
        where, params = self._where_sql()
        sql = f"SELECT {columns} FROM {_quote(self.table)}{where}"
        if self.orders:
            sql += " ORDER BY " + ", ".join(self.orders)
        if self.limit_value is not None or self.offset_value is not None:
            sql += f" LIMIT {self.limit_value if self.limit_value is not None else -1}"
            if self.offset_value is not None:
                sql += f" OFFSET {self.offset_value}"
        return sql, params

    def to_sql(self) -> tuple[str, tuple[Any, ...]]:
        """The SELECT statement with ``?`` placeholders, and its parameters."""
        return self._select("*")

    def find(self) -> list[Any]:
        """The matching rows as model instances."""
        columns = _columns(self.model)
        sql, params = self._select(", ".join(_quote(c.name) for c in columns))
        rows, _ = self.db._execute(sql, params)
        found = []
        for row in rows:
            values = {
                c.attr: _from_db(value, c.py_type)
                for c, value in zip(columns, row)
                if c.init
            }
            found.append(self.model(**values))
        return found

    def count(self) -> int:
        """The number of matching rows, ignoring limit, offset and order."""
        where, params = self._where_sql()
        rows, _ = self.db._execute(
            f"SELECT COUNT(*) FROM {_quote(self.table)}{where}", params
        )
        return int(rows[0][0])

    def pluck(self, column: str) -> list[Any]:
        """The values of one column for the matching rows."""
        known = _find_column(self.model, column)
        name = known.name if known is not None else column
        sql, params = self._select(_quote(name))
        rows, _ = self.db._execute(sql, params)
        if known is None:
            return [row[0] for row in rows]
        return [_from_db(row[0], known.py_type) for row in rows]

    def _check_writable(self, operation: str) -> tuple[str, tuple[Any, ...]]:
        if self.limit_value is not None:
            helper = "delete_objs" if operation == "DELETE" else "update_objs"
            raise BadRequestError(
                f"LIMIT clause is not supported for {operation} operations, "
                f"use {helper}() instead"
            )
        if self.condition is None:
            raise BadRequestError(f"WHERE conditions required for {operation}")
        return self._where_sql()

    def delete(self) -> int:
        """Delete the matching rows and return how many were removed."""
        where, params = self._check_writable("DELETE")
        _, affected = self.db._execute(f"DELETE FROM {_quote(self.table)}{where}", params)
        return affected

    def update(self, values: Mapping[str, Any]) -> int:
        """Set columns (by field or column name) on matching rows; return the count."""
        where, params = self._check_writable("UPDATE")
        if not values:
            raise BadRequestError("no updates provided")
        assignments = ", ".join(
            f"{_quote(_resolve_column(self.model, key))} = ?" for key in values
        )
        new_values = tuple(_to_db(value) for value in values.values())
        _, affected = self.db._execute(
            f"UPDATE {_quote(self.table)} SET {assignments}{where}", new_values + params
        )
        return affected