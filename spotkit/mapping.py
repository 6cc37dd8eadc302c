"""Field-to-column mapping for dataclass models and common query building."""

from __future__ import annotations

import dataclasses
import re
import threading
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from spotkit.errors import BadRequestError, InternalServerError, OrmError
from spotkit.query import Database, Query
from spotkit.retry import retry_with_error

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")
_NIL_UUID = uuid.UUID(int=0)

_mapping_cache: dict[type, dict[str, str]] = {}
_cache_lock = threading.Lock()


@dataclass
class PageRequest:
    """Paging and ordering of a listing; ``order`` may start with "-" for descending."""

    page_size: int = 0
    page_number: int = 0
    order: str = ""

    def offset(self) -> int:
        """The number of rows before the requested page (pages count from 1)."""
        return max(self.page_number - 1, 0) * max(self.page_size, 0)


def to_snake_case(name: str) -> str:
    """Convert CamelCase to snake_case."""
    snake = _FIRST_CAP.sub(r"\1_\2", name)
    snake = _ALL_CAP.sub(r"\1_\2", snake)
    return snake.lower()


def _model_class(model: Any) -> type:
    return model if isinstance(model, type) else type(model)


def _is_dataclass_type(candidate: Any) -> bool:
    return isinstance(candidate, type) and dataclasses.is_dataclass(candidate)


def _resolve_named_type(cls: type, name: str) -> Any:
    """Look a string annotation up by name in the namespace the model was defined in."""
    namespace = getattr(getattr(cls, "__init__", None), "__globals__", None)
    if isinstance(namespace, dict):
        return namespace.get(name.strip().strip("'\""))
    return None


def _embedded_class(cls: type, f: dataclasses.Field) -> Optional[type]:
    marker = f.metadata.get("embedded")
    if not marker:
        return None
    if _is_dataclass_type(marker):
        return marker
    annotation = f.type
    if isinstance(annotation, str):
        annotation = _resolve_named_type(cls, annotation)
    if _is_dataclass_type(annotation):
        return annotation
    factory = f.default_factory
    if _is_dataclass_type(factory):
        return factory  # type: ignore[return-value]
    if _is_dataclass_type(type(f.default)) and f.default is not dataclasses.MISSING:
        return type(f.default)
    return None


def build_mapping(model: Any) -> dict[str, str]:
    """Map each field's key to its column name.

    The key is the field's ``"json"`` metadata (up to the first comma), or the
    field name when there is none; fields keyed ``"-"`` are left out. The column
    is the ``"column"`` metadata, or the field name in snake case. Fields marked
    ``"embedded"`` holding a dataclass contribute that dataclass's fields.
    Anything that is not a dataclass yields an empty mapping.
    """
    cls = _model_class(model)
    mapping: dict[str, str] = {}
    if not dataclasses.is_dataclass(cls):
        return mapping
    for f in dataclasses.fields(cls):
        inner = _embedded_class(cls, f)
        if inner is not None:
            for key, column in build_mapping(inner).items():
                mapping.setdefault(key, column)
            continue
        tag = f.metadata.get("json", f.name)
        if not tag or tag == "-":
            continue
        key = tag.split(",")[0]
        mapping[key] = f.metadata.get("column") or to_snake_case(f.name)
    return mapping


def get_column_name(obj: Any, key: str) -> str:
    """The column name for ``key`` in the model of ``obj`` (a class or instance).

    Mappings are cached per model. Raises OrmError for a missing or non-dataclass
    object and BadRequestError for an unknown key.
    """
    if obj is None:
        raise OrmError("object is nil")
    cls = _model_class(obj)
    if not dataclasses.is_dataclass(cls):
        raise OrmError("object is not a dataclass")
    with _cache_lock:
        mapping = _mapping_cache.get(cls)
        if mapping is None:
            mapping = build_mapping(cls)
            _mapping_cache[cls] = mapping
    column = mapping.get(key)
    if column is None:
        raise BadRequestError(
            f"field key '{key}' not found in mapping for object type '{cls.__name__}'"
        )
    return column


def clear_mapping_cache() -> None:
    """Forget every cached mapping."""
    with _cache_lock:
        _mapping_cache.clear()


def base_query(
    db: Optional[Database],
    model: Any,
    tenant_id: Optional[uuid.UUID] = None,
    user_id: Optional[uuid.UUID] = None,
    request: Optional[PageRequest] = None,
) -> Query:
    """A query over ``model`` scoped to a tenant and user, paged and ordered.

    Nil or missing identifiers add no condition. Ordering uses the column of the
    requested key; an unknown key raises BadRequestError.
    """
    if db is None:
        raise InternalServerError("database not initialized")
    query = db.model(model)

    if tenant_id is not None and tenant_id != _NIL_UUID:
        query = query.where("tenant_id = ?", tenant_id)
    if user_id is not None and user_id != _NIL_UUID:
        query = query.where("user_id = ?", user_id)

    if request is not None and request.page_size > 0:
        query = query.limit(request.page_size)
    if request is not None and request.page_number > 0:
        query = query.offset(request.offset())

    order_by = request.order if request is not None else ""
    direction = "asc"
    if order_by.startswith("-"):
        direction = "desc"
        order_by = order_by[1:]
    if order_by:
        column = get_column_name(model, order_by)
        if column:
            query = query.order(f"{column} {direction}")
    return query


def _find_field(obj: Any, name: str) -> Optional[tuple[Any, dataclasses.Field]]:
    cls = type(obj)
    for f in dataclasses.fields(cls):
        if f.name == name:
            return obj, f
        if f.metadata.get("embedded"):
            inner = getattr(obj, f.name, None)
            if inner is not None and dataclasses.is_dataclass(inner):
                found = _find_field(inner, name)
                if found is not None:
                    return found
    return None


def update_obj_fields(
    db: Optional[Database], obj: Any, pk_fields: Mapping[str, Any], *args: str
) -> None:
    """Write the named fields of ``obj`` to the row selected by ``pk_fields``.

    Each of ``args`` is a field name of ``obj`` (embedded fields included); the
    current value of that field is stored. Lock errors are retried.
    """
    if db is None:
        raise InternalServerError("database is not initialized")
    if obj is None or isinstance(obj, type) or not dataclasses.is_dataclass(obj):
        raise InternalServerError(
            f"the model parameter must be a dataclass instance, got {type(obj).__name__}"
        )
    if not pk_fields:
        raise InternalServerError("primary key field is required for update")

    query = db.model(type(obj))
    for column, value in pk_fields.items():
        query = query.where(f"{column} = ?", value)

    updates: dict[str, Any] = {}
    for name in args:
        if not isinstance(name, str):
            raise InternalServerError("update parameter must be a field name")
        found = _find_field(obj, name)
        if found is None:
            raise BadRequestError(f"field not found for update parameter: {name}")
        container, f = found
        updates[f.metadata.get("column") or f.name] = getattr(container, f.name)

    if not updates:
        return
    retry_with_error(lambda: query.update(updates))