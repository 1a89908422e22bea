"""SQLite access layer for the evolving metrics store."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Mapping, Sequence

from evolve_mcp.domain.errors import StoreUnavailableError
from evolve_mcp.schema import sql

_SqlValue = str | bytes | int | float | None
_SqlParams = Sequence[_SqlValue] | Mapping[str, _SqlValue]


class SqliteStore:
    """Thread-safe wrapper around one SQLite connection.

    The connection runs in autocommit mode; multi-statement work goes through
    ``transaction()`` so DDL and its log entry commit or roll back together.
    Every ``sqlite3.Error`` surfaces as ``StoreUnavailableError``.
    """

    def __init__(self, path: str, wal: bool = True) -> None:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        self._path = path
        self._conn = sqlite3.connect(path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._closed = False
        if wal:
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")

    @property
    def path(self) -> str:
        return self._path

    def ensure_table(self, table: str) -> None:
        self.execute(sql.create_metrics_table(table), ())

    def executescript(self, script: str) -> None:
        with self._lock:
            try:
                self._conn.executescript(script)
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc

    def execute(self, query: str, params: _SqlParams) -> None:
        with self._lock:
            try:
                self._conn.execute(query, params)
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc

    def fetch_one(self, query: str, params: _SqlParams) -> sqlite3.Row | None:
        with self._lock:
            try:
                return self._conn.execute(query, params).fetchone()
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc

    def fetch_all(self, query: str, params: _SqlParams) -> list[sqlite3.Row]:
        with self._lock:
            try:
                return self._conn.execute(query, params).fetchall()
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run a block inside ``BEGIN IMMEDIATE``; commit on success, roll back on error."""
        with self._lock:
            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc
            try:
                yield self._conn
            except sqlite3.Error as exc:
                self._rollback_quietly()
                raise StoreUnavailableError(str(exc)) from exc
            except BaseException:
                self._rollback_quietly()
                raise
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback_quietly()
                raise StoreUnavailableError(str(exc)) from exc

    def _rollback_quietly(self) -> None:
        if self._conn.in_transaction:
            self._conn.execute("ROLLBACK")

    def list_columns(self, table: str) -> list[tuple[str, str]]:
        """Physical columns of ``table`` as ``(name, declared_type)``, in table order."""
        rows = self.fetch_all(sql.pragma_table_info(table), ())
        return [(row["name"], (row["type"] or "").upper()) for row in rows]

    def list_tables(self) -> list[str]:
        rows = self.fetch_all(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name",
            (),
        )
        return [row["name"] for row in rows]

    def dump(self) -> dict[str, dict[str, list]]:
        """Full content of every user table, for snapshot comparison."""
        result: dict[str, dict[str, list]] = {}
        for table in self.list_tables():
            columns = self.list_columns(table)
            rows = self.fetch_all(sql.select_all(table), ())
            result[table] = {
                "columns": [list(column) for column in columns],
                "rows": [list(tuple(row)) for row in rows],
            }
        return result

    def backup_to(self, destination: Path) -> None:
        """Copy the live database into ``destination`` with the online backup API."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            try:
                target = sqlite3.connect(str(destination))
                try:
                    self._conn.backup(target)
                    target.execute("PRAGMA journal_mode=DELETE")
                finally:
                    target.close()
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc

    def restore_from(self, source: Path) -> None:
        """Overwrite the live database with the content of ``source``."""
        with self._lock:
            try:
                origin = sqlite3.connect(str(source))
                try:
                    origin.backup(self._conn)
                finally:
                    origin.close()
            except sqlite3.Error as exc:
                raise StoreUnavailableError(str(exc)) from exc

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._conn.close()
            self._closed = True
