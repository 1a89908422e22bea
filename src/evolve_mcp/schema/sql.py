"""Validated-identifier SQL construction.

SQLite cannot bind identifiers as parameters, so every table and column name
interpolated below is checked against ``SAFE_IDENTIFIER_RE`` and the reserved
keyword set first. Values are always bound with ``?``.
"""

from __future__ import annotations

import math
import re

from evolve_mcp.domain.models import DataType

SAFE_IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")
MAX_IDENTIFIER_LENGTH = 50

# SQLite keywords (https://sqlite.org/lang_keywords.html), lower-cased.
RESERVED_WORDS = frozenset(
    """
    abort action add after all alter always analyze and as asc attach autoincrement
    before begin between by cascade case cast check collate column commit conflict
    constraint create cross current current_date current_time current_timestamp
    database default deferrable deferred delete desc detach distinct do drop each
    else end escape except exclude exclusive exists explain fail filter first
    following for foreign from full generated glob group groups having if ignore
    immediate in index indexed initially inner insert instead intersect into is
    isnull join key last left like limit match materialized natural no not nothing
    notnull null nulls of offset on or order others outer over partition plan
    pragma preceding primary query raise range recursive references regexp reindex
    release rename replace restrict returning right rollback row rows savepoint
    select set table temp temporary then ties to transaction trigger unbounded
    union unique update using vacuum values view virtual when where window with
    without
    """.split()
)


def is_reserved(name: str) -> bool:
    lowered = name.lower()
    return lowered in RESERVED_WORDS or lowered.startswith("sqlite_")


def identifier_error(name: object) -> str | None:
    """Return why ``name`` is not a usable column/table name, or None if it is."""
    if not isinstance(name, str) or not name:
        return "identifier must be a non-empty string"
    if len(name) > MAX_IDENTIFIER_LENGTH:
        return f'"{name}" exceeds {MAX_IDENTIFIER_LENGTH} characters'
    if is_reserved(name):
        return f'"{name}" is a reserved SQL keyword'
    if not SAFE_IDENTIFIER_RE.match(name):
        return f'"{name}" is not a valid field name'
    return None


def _validate(name: str) -> str:
    error = identifier_error(name)
    if error:
        raise ValueError(f"Invalid SQL identifier: {error}")
    return name


def pragma_table_info(table: str) -> str:
    return f"PRAGMA table_info({_validate(table)})"


def render_default(value: object) -> str:
    """Render a DEFAULT literal. Strings are single-quoted with quotes doubled."""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError("Default value must be a finite number")
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("'", "''")
        return f"'{escaped}'"
    raise ValueError(f"Unsupported default value type: {type(value).__name__}")


def add_column(table: str, field: str, data_type: DataType, default: object = None) -> str:
    sql = f"ALTER TABLE {_validate(table)} ADD COLUMN {_validate(field)} {data_type.value}"
    if default is not None:
        sql += f" DEFAULT {render_default(default)}"
    return sql


def create_metrics_table(table: str) -> str:
    return (
        f"CREATE TABLE IF NOT EXISTS {_validate(table)} ("
        "id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "date TEXT NOT NULL, "
        "created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP)"
    )


def select_all(table: str) -> str:
    return f"SELECT * FROM {_validate(table)}"
