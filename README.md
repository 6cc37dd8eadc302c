# spotkit

A small standard-library-only toolkit (Python 3.10+) with two halves:

* **Logging** – a leveled logger that writes human-readable lines to the
  console and JSON lines to a size-rotated file, keeps the most recent console
  messages in memory, and has a `TRACE` level below `DEBUG`.
* **SQLite helpers** – a small immutable query builder for dataclass models,
  an OData-like filter language, JSON-key to column mapping, paged base
  queries, batched delete and update, and retries for "database is locked"
  errors.

## Logging

### Levels

`spotkit.levels.Level` is an `IntEnum`: `NONE, FATAL, ERROR, WARN, INFO,
DEBUG, TRACE` (0–6). `parse_level("debug")` returns a level from its name
(`"trace"`, `"debug"`, `"info"`, `"warn"`, `"error"`, `"fatal"`; anything else
gives `INFO`), and `level_name(level)` goes the other way.

### Loggers

```python
from spotkit.levels import Level
from spotkit.logger import Logger

log = Logger(console_level=Level.DEBUG)
log.set_last_messages_limit(10)
log.info("user %s logged in", "alice")
print(log.last_messages())          # "INFO: user alice logged in\n"

tagged = log.with_field("request_id", 7)
tagged.warn("slow request")
```

`Logger(console_level, file_name, file_level, max_size_mb, max_backups,
max_age_days, stream)`:

* The console destination writes `date time<TAB>LEVEL<TAB>message` lines to
  `stream` (standard output by default), followed by the fields as JSON when
  there are any. Levels are coloured when the stream is a terminal.
* The file destination is set up when `file_level` is not `NONE` or a file
  name is given. It writes one JSON object per line (`level`, `ts`, `msg` and
  the fields). The file is rotated when it would grow past `max_size_mb`
  (100 MB when 0); rotated copies are named `<stem>-<UTC timestamp><suffix>`,
  and `max_backups` and `max_age_days` prune them when non-zero. With no file
  name, the file lives in the temporary directory as
  `<program>-spotkit.log`.
* Messages are formatted printf-style (`%s`, `%d`, and `%v` as `%s`).
* `set_last_messages_limit(n)` keeps the last `n` console messages (0 keeps
  none); `last_messages()` returns them as `"LEVEL: message"` lines.
* `set_console_level` and `set_file_level` change levels later.
* `with_fields(mapping)` / `with_field(key, value)` return a logger that adds
  those fields to every record, with its own empty message memory.
* `fatal(...)` logs the message and then raises `SystemExit(1)`.

`create_logger(LoggingConfig(console_level="debug", file="app.log", ...))`
builds a logger from level names.

### The main logger

`spotkit.logger` holds a process-wide main logger (console `INFO`, file
`DEBUG` in the temporary directory until replaced). The module functions
`trace`, `debug`, `info`, `warn`, `error` and `fatal` write to it;
`get_main_logger()` and `set_main_logger(logger)` read and replace it.

`force_log_level(level)` sets both levels of the main logger and makes every
logger created afterwards use that level, until `clear_forced_log_level()`.

`spotkit.logging_config.get_main_logging_config()` returns the shared
`MainLoggingConfig`. Its `get_default()` returns a copy of the settings
(console `info`, file `debug`, `logs/main.log`, 1000 MB, 3 backups, 28 days),
and `load(name, config_dict)` applies keys such as `console_level`,
`file_level`, `file`, `max_size_mb`, `max_backups` and `max_age_days`
(unknown keys are ignored, a value of the wrong type raises `ValueError`),
then replaces the main logger with one built from the result.

## Queries over SQLite

Models are dataclasses. Field `metadata` may hold `"column"` (column name;
otherwise the field name in snake case) and `"primary_key": True`. The table
is `__tablename__` if the class sets it, otherwise the plural snake-case class
name (`TestRecord` → `test_records`).

```python
from dataclasses import dataclass, field
from spotkit.query import Database

@dataclass
class Model:
    id: str = field(metadata={"primary_key": True})
    name: str = ""
    age: int = 0
    status: str = ""

with Database() as db:                   # in-memory SQLite by default
    db.create_table(Model)
    db.insert(Model("a1", "qwen3-1.7b", 30, "active"))
    adults = db.model(Model).where("age > ?", 18).order("name asc").find()
```

`Query` objects are immutable; `where` (SQL with `?`, a mapping, or another
query; a list argument expands for `IN ?`), `or_where`, `merge`, `limit`,
`offset` and `order` return new queries. `to_sql()`, `find()`, `count()`,
`pluck(column)`, `delete()` and `update(values)` run them. `delete` and
`update` refuse a query with a limit or without conditions and raise
`BadRequestError`.

## Filters

```python
from spotkit.filter import apply_filter

query = apply_filter(
    "(name like qwen3-1.7 or status eq active) and age gt 25",
    ["name", "age", "status"],
    db.model(Model),
)
rows = query.find()
```

Supported operators are `eq ne gt lt ge le like and or` with parentheses;
`like` matches anywhere in the value. An empty filter returns the query
unchanged. Fields outside the allowed list, unbalanced parentheses, missing
operands and operators such as `has`, `in` or `contains` raise
`spotkit.errors.BadRequestError`. The steps are available separately as
`tokenize_filter`, `parse_tokens` (giving a `FilterNode` tree),
`validate_field_name` and `is_unsupported_operator`.

## Column mapping and paging

`spotkit.mapping`:

* `build_mapping(model)` maps each field's key – its `"json"` metadata up to
  the first comma, or the field name – to its column; keys of `"-"` are left
  out, and fields marked `"embedded"` contribute the fields of the dataclass
  they hold. `get_column_name(obj, key)` looks a key up, caching per model
  (`clear_mapping_cache()` empties the cache); an unknown key raises
  `BadRequestError`, a missing or non-dataclass object raises `OrmError`.
* `base_query(db, model, tenant_id, user_id, request)` filters by
  `tenant_id` and `user_id` (nil UUIDs and `None` add nothing) and applies a
  `PageRequest(page_size, page_number, order)`; pages count from 1 and an
  `order` starting with `-` sorts descending. `to_snake_case(name)` is the
  name conversion used throughout.
* `update_obj_fields(db, obj, pk_fields, *field_names)` writes the current
  values of the named fields of `obj` to the row selected by `pk_fields`,
  retrying lock errors.

## Batched delete and update

`spotkit.batch.delete_objs(query, primary_field, limit=0, batch_size=1000)`
and `update_objs(query, primary_field, updates, limit=0, batch_size=1000)`
work through matching rows by primary key, at most `batch_size` (clamped to
1–1000) at a time, and return the number of rows touched. A `limit` of 0
takes the query's own limit, or none. `update_objs` collects all keys before
changing anything. `has_primary_key(model, column)` checks the model first;
a missing query, a wrong key or empty updates raise `BadRequestError`.

## Retries

```python
from spotkit.retry import RetryConfig, retry_with_result

value = retry_with_result(operation, RetryConfig())
```

`RetryConfig(max_retries=5, backoff=0.01, max_backoff=0.1)` is in seconds; at
least one attempt is always made and the wait doubles up to `max_backoff`
(0 means no cap). Errors that `is_database_locked` recognises (or that a
custom `is_retryable` accepts) are retried; any other error, or running out
of attempts, raises `InternalServerError`. `retry_with_error` and
`retry_with_error_and_result` do the same and return nothing.

## Errors

`spotkit.errors.OrmError` carries a message and a `status_code` (500);
`BadRequestError` has 400 and `InternalServerError` 500.

## What it does not do

There is no command-line program and no configuration-file reader:
`MainLoggingConfig.load` takes an already parsed dictionary. The query
helpers speak only SQLite through the standard `sqlite3` module; there is no
schema migration beyond `create_table`.

## Tests

```
pip install -e .[test]
pytest
```