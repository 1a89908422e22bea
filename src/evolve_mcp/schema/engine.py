"""Schema evolution: additive columns, soft deletion, and the active-field view."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from evolve_mcp.domain.errors import StoreUnavailableError
from evolve_mcp.domain.models import DataType, MigrationRecord, MigrationType, SchemaField
from evolve_mcp.schema import sql
from evolve_mcp.schema.migrations import MigrationLog
from evolve_mcp.schema.store import SqliteStore

logger = logging.getLogger(__name__)


class FieldOutcome(str, Enum):
    OK = "ok"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    INVALID_NAME = "invalid_name"
    INVALID_TYPE = "invalid_type"
    HARD_DELETE_UNSUPPORTED = "hard_delete_unsupported"
    STORE_ERROR = "store_error"


@dataclass
class FieldChangeResult:
    outcome: FieldOutcome
    table: str
    field: str
    data_type: DataType | None = None
    soft: bool = False
    reactivated: bool = False
    migration: MigrationRecord | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is FieldOutcome.OK


class SchemaEvolutionEngine:
    """Applies schema changes and keeps the migration log in step with them.

    The physical change and its log record are written in one SQLite
    transaction: either both land or neither does.
    """

    def __init__(self, store: SqliteStore, log: MigrationLog) -> None:
        self._store = store
        self._log = log

    def add_field(
        self,
        table: str,
        field: str,
        data_type: DataType | str,
        default: object = None,
        transaction_id: str | None = None,
    ) -> FieldChangeResult:
        name_error = sql.identifier_error(table) or sql.identifier_error(field)
        if name_error:
            logger.info("Rejected field %s.%s: %s", table, field, name_error)
            return FieldChangeResult(FieldOutcome.INVALID_NAME, table, field, error=name_error)

        parsed_type = DataType.parse(data_type)
        if parsed_type is None:
            message = f'"{data_type}" is not a valid data type'
            return FieldChangeResult(FieldOutcome.INVALID_TYPE, table, field, error=message)

        try:
            columns = dict(self._store.list_columns(table))
            if field in columns:
                if self._is_active(table, field):
                    logger.info("Field %s already exists in %s", field, table)
                    return FieldChangeResult(
                        FieldOutcome.ALREADY_EXISTS, table, field, data_type=parsed_type
                    )
                return self._reactivate(table, field, parsed_type, columns[field], transaction_id)

            statement = sql.add_column(table, field, parsed_type, default)
            with self._store.transaction() as conn:
                conn.execute(statement)
                record = self._log.append(
                    conn,
                    MigrationType.ADD_FIELD,
                    table,
                    field,
                    applied_sql=statement,
                    data_type=parsed_type,
                    transaction_id=transaction_id,
                )
        except StoreUnavailableError as exc:
            logger.error("Failed to add field %s to %s: %s", field, table, exc)
            return FieldChangeResult(FieldOutcome.STORE_ERROR, table, field, error=str(exc))
        except ValueError as exc:
            return FieldChangeResult(FieldOutcome.INVALID_TYPE, table, field, error=str(exc))

        logger.info("Added field %s to %s (%s)", field, table, parsed_type.value)
        return FieldChangeResult(
            FieldOutcome.OK, table, field, data_type=parsed_type, migration=record
        )

    def _reactivate(
        self,
        table: str,
        field: str,
        requested: DataType,
        physical_type: str,
        transaction_id: str | None,
    ) -> FieldChangeResult:
        actual = DataType.parse(physical_type) or requested
        if actual is not requested:
            logger.warning(
                "Reactivating %s.%s keeps physical type %s (requested %s)",
                table,
                field,
                actual.value,
                requested.value,
            )
        with self._store.transaction() as conn:
            record = self._log.append(
                conn,
                MigrationType.ADD_FIELD,
                table,
                field,
                applied_sql="",
                data_type=actual,
                transaction_id=transaction_id,
                note="Reactivated soft-deleted field; existing data kept",
            )
        logger.info("Reactivated soft-deleted field %s in %s", field, table)
        return FieldChangeResult(
            FieldOutcome.OK, table, field, data_type=actual, reactivated=True, migration=record
        )

    def remove_field(
        self,
        table: str,
        field: str,
        soft_delete: bool = True,
        transaction_id: str | None = None,
    ) -> FieldChangeResult:
        name_error = sql.identifier_error(table) or sql.identifier_error(field)
        if name_error:
            return FieldChangeResult(FieldOutcome.INVALID_NAME, table, field, error=name_error)

        if not soft_delete:
            # Dropping a column needs a full table rebuild in SQLite.
            logger.info("Hard delete of %s.%s rejected", table, field)
            return FieldChangeResult(
                FieldOutcome.HARD_DELETE_UNSUPPORTED,
                table,
                field,
                error="Hard delete is not supported; fields are only soft-deleted",
            )

        try:
            if not self.is_active(table, field):
                logger.info("Field %s doesn't exist in %s", field, table)
                return FieldChangeResult(FieldOutcome.NOT_FOUND, table, field)
            with self._store.transaction() as conn:
                record = self._log.append(
                    conn,
                    MigrationType.SOFT_DELETE_FIELD,
                    table,
                    field,
                    applied_sql="",
                    transaction_id=transaction_id,
                    note="Field hidden but data preserved",
                )
        except StoreUnavailableError as exc:
            logger.error("Failed to soft-delete %s from %s: %s", field, table, exc)
            return FieldChangeResult(FieldOutcome.STORE_ERROR, table, field, error=str(exc))

        logger.info("Soft-deleted field %s from %s (data preserved)", field, table)
        return FieldChangeResult(FieldOutcome.OK, table, field, soft=True, migration=record)

    def field_exists(self, table: str, field: str) -> bool:
        """Physical presence, regardless of soft deletion."""
        return any(name == field for name, _ in self._store.list_columns(table))

    def is_active(self, table: str, field: str) -> bool:
        return self.field_exists(table, field) and self._is_active(table, field)

    def _is_active(self, table: str, field: str) -> bool:
        return field not in self._soft_deleted(table)

    def _soft_deleted(self, table: str) -> set[str]:
        """Fields whose newest migration record is a soft delete."""
        latest: dict[str, MigrationType] = {}
        for record in self._log.for_table(table):
            latest[record.field] = record.type
        return {
            name
            for name, migration_type in latest.items()
            if migration_type is MigrationType.SOFT_DELETE_FIELD
        }

    def list_active_fields(self, table: str) -> list[str]:
        hidden = self._soft_deleted(table)
        return [name for name, _ in self._store.list_columns(table) if name not in hidden]

    def list_fields(self, table: str) -> list[SchemaField]:
        hidden = self._soft_deleted(table)
        return [
            SchemaField(
                table=table,
                name=name,
                data_type=DataType.parse(declared),
                active=name not in hidden,
            )
            for name, declared in self._store.list_columns(table)
        ]

    def list_migrations(self) -> list[MigrationRecord]:
        return self._log.records()

    def latest_migration(self) -> MigrationRecord | None:
        return self._log.latest()

    def migrations_for_transaction(self, transaction_id: str) -> list[MigrationRecord]:
        return self._log.for_transaction(transaction_id)
