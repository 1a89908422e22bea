"""Append-only migration log stored beside the schema it describes."""

from __future__ import annotations

import sqlite3
import time

from evolve_mcp.domain.models import DataType, MigrationRecord, MigrationType
from evolve_mcp.schema.store import SqliteStore
from evolve_mcp.utils.time import utc_now_iso

_ORDER = "ORDER BY timestamp ASC, seq ASC"


class MigrationLog:
    def __init__(self, store: SqliteStore) -> None:
        self._store = store
        self._init_schema()

    def _init_schema(self) -> None:
        self._store.executescript(
            """
            CREATE TABLE IF NOT EXISTS schema_migrations (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT NOT NULL UNIQUE,
                type TEXT NOT NULL,
                table_name TEXT NOT NULL,
                field TEXT NOT NULL,
                data_type TEXT,
                transaction_id TEXT,
                note TEXT,
                applied_sql TEXT NOT NULL,
                timestamp TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_schema_migrations_field
                ON schema_migrations(table_name, field);
            CREATE INDEX IF NOT EXISTS idx_schema_migrations_tx
                ON schema_migrations(transaction_id);
            """
        )

    def append(
        self,
        conn: sqlite3.Connection,
        migration_type: MigrationType,
        table: str,
        field: str,
        applied_sql: str,
        data_type: DataType | None = None,
        transaction_id: str | None = None,
        note: str | None = None,
    ) -> MigrationRecord:
        """Insert a record using the caller's open transaction."""
        record = MigrationRecord(
            id=f"{migration_type.value}_{table}_{field}_{time.time_ns()}",
            type=migration_type,
            table=table,
            field=field,
            timestamp=utc_now_iso(),
            applied_sql=applied_sql,
            data_type=data_type,
            transaction_id=transaction_id,
            note=note,
        )
        cursor = conn.execute(
            """
            INSERT INTO schema_migrations (
                id, type, table_name, field, data_type, transaction_id,
                note, applied_sql, timestamp
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.id,
                record.type.value,
                record.table,
                record.field,
                record.data_type.value if record.data_type else None,
                record.transaction_id,
                record.note,
                record.applied_sql,
                record.timestamp,
            ),
        )
        record.seq = int(cursor.lastrowid or 0)
        return record

    def records(self) -> list[MigrationRecord]:
        rows = self._store.fetch_all(f"SELECT * FROM schema_migrations {_ORDER}", ())
        return [_from_row(row) for row in rows]

    def for_table(self, table: str) -> list[MigrationRecord]:
        rows = self._store.fetch_all(
            f"SELECT * FROM schema_migrations WHERE table_name = ? {_ORDER}", (table,)
        )
        return [_from_row(row) for row in rows]

    def for_transaction(self, transaction_id: str) -> list[MigrationRecord]:
        rows = self._store.fetch_all(
            f"SELECT * FROM schema_migrations WHERE transaction_id = ? {_ORDER}",
            (transaction_id,),
        )
        return [_from_row(row) for row in rows]

    def latest(self) -> MigrationRecord | None:
        row = self._store.fetch_one(
            "SELECT * FROM schema_migrations ORDER BY timestamp DESC, seq DESC LIMIT 1", ()
        )
        return _from_row(row) if row is not None else None


def _from_row(row: sqlite3.Row) -> MigrationRecord:
    return MigrationRecord(
        id=row["id"],
        type=MigrationType(row["type"]),
        table=row["table_name"],
        field=row["field"],
        timestamp=row["timestamp"],
        applied_sql=row["applied_sql"],
        data_type=DataType.parse(row["data_type"]),
        transaction_id=row["transaction_id"],
        note=row["note"],
        seq=row["seq"],
    )
