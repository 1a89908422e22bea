"""Modification orchestrator: sequences detection, backup, mutation and registration."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any
from uuid import uuid4

from evolve_mcp.backup.manager import BackupManager
from evolve_mcp.domain.errors import ErrorTag, ModificationError, StoreUnavailableError
from evolve_mcp.domain.models import (
    ArtifactRequest,
    BackupSnapshot,
    ComponentRecord,
    ComponentType,
    DataType,
    MigrationRecord,
    MigrationType,
    ModificationAction,
    ModificationIntent,
    Placement,
    SchemaField,
)
from evolve_mcp.generation.generator import ArtifactGenerator, GenerationOutcome
from evolve_mcp.generation.templates import get_template, suggest_template
from evolve_mcp.intents.detector import IntentDetector
from evolve_mcp.intents.identifiers import (
    infer_component_type,
    infer_data_type,
    to_artifact_id,
    to_field_id,
)
from evolve_mcp.notify import LoggingNotifier, Notifier
from evolve_mcp.orchestration.models import ModificationResult, ResultStatus, TransactionState
from evolve_mcp.registry.components import ComponentRegistry
from evolve_mcp.schema.engine import FieldChangeResult, FieldOutcome, SchemaEvolutionEngine
from evolve_mcp.utils.hashing import sha256_text
from evolve_mcp.utils.time import snapshot_stamp

logger = logging.getLogger(__name__)

_POLL_SECONDS = 0.25
_NOTIFY_CATEGORY = "modification"
_ABORTABLE_STATES = frozenset(
    {TransactionState.MUTATING, TransactionState.REGISTERING, TransactionState.NOTIFYING}
)
_ACTION_ALIASES = {"add_chart": ModificationAction.ADD_ARTIFACT}


@dataclass
class _Transaction:
    id: str
    action: ModificationAction
    states: list[TransactionState] = field(default_factory=list)
    snapshot: BackupSnapshot | None = None


@dataclass
class _UndoTarget:
    transaction_id: str | None
    migrations: list[MigrationRecord]
    components: list[ComponentRecord]

    @property
    def removes(self) -> bool:
        """True when the transaction soft-deleted fields (a removal or an undo)."""
        return any(m.type is MigrationType.SOFT_DELETE_FIELD for m in self.migrations)


@contextmanager
def _store_errors() -> Iterator[None]:
    try:
        yield
    except StoreUnavailableError as exc:
        raise ModificationError(ErrorTag.STORE_ERROR, str(exc)) from exc


def _new_transaction_id() -> str:
    return f"tx_{snapshot_stamp()}_{uuid4().hex[:8]}"


class ModificationOrchestrator:
    """Runs every structural change as one serialized, reversible transaction.

    A single gate admits one mutating transaction at a time. Every mutating
    transaction snapshots first; any failure after that restores the
    snapshot, so schema and registry never diverge. Read paths do not take
    the gate.
    """

    def __init__(
        self,
        detector: IntentDetector,
        engine: SchemaEvolutionEngine,
        generator: ArtifactGenerator,
        registry: ComponentRegistry,
        backups: BackupManager,
        notifier: Notifier | None = None,
        metrics_table: str = "metrics",
        lock_timeout_seconds: float = 90.0,
        generation_timeout_seconds: float = 45.0,
        backup_retention: int | None = None,
    ) -> None:
        self._detector = detector
        self._engine = engine
        self._generator = generator
        self._registry = registry
        self._backups = backups
        self._notifier = notifier or LoggingNotifier()
        self._table = metrics_table
        self._lock_timeout = lock_timeout_seconds
        self._generation_timeout = generation_timeout_seconds
        self._backup_retention = backup_retention
        self._gate = threading.Lock()
        self._state_lock = threading.Lock()
        self._abort = threading.Event()
        self._active_tx: str | None = None

    @property
    def metrics_table(self) -> str:
        return self._table

    # Entry points

    def handle_message(self, text: str) -> ModificationResult:
        states = [TransactionState.IDLE, TransactionState.DETECTING]
        intent = self._detector.detect(text)
        if intent is None:
            states.append(TransactionState.DONE)
            return ModificationResult(
                ResultStatus.NOT_DETECTED,
                "No structural modification requested",
                states=states,
            )
        if intent.action is ModificationAction.UNDO:
            return self.undo()
        return self._apply(intent, states)

    def add_metric(
        self,
        subject: str,
        component_type: ComponentType | None = None,
        template: str | None = None,
    ) -> ModificationResult:
        if not subject or not subject.strip():
            return _rejected("A metric name is required", ModificationAction.ADD_METRIC)
        intent = ModificationIntent(ModificationAction.ADD_METRIC, raw_subject=subject.strip())
        return self._apply(intent, [TransactionState.IDLE], component_type, template)

    def remove_metric(self, subject: str) -> ModificationResult:
        if not subject or not subject.strip():
            return _rejected("A metric name is required", ModificationAction.REMOVE_METRIC)
        intent = ModificationIntent(ModificationAction.REMOVE_METRIC, raw_subject=subject.strip())
        return self._apply(intent, [TransactionState.IDLE])

    def add_artifact(self, description: str) -> ModificationResult:
        if not description or not description.strip():
            return _rejected("A chart description is required", ModificationAction.ADD_ARTIFACT)
        intent = ModificationIntent(
            ModificationAction.ADD_ARTIFACT, raw_subject=description.strip()
        )
        return self._apply(intent, [TransactionState.IDLE])

    def execute(
        self,
        action: str,
        subject: str | None = None,
        component_type: str | None = None,
        template: str | None = None,
    ) -> ModificationResult:
        """Run a structured request without going through intent detection."""
        try:
            parsed_action = _ACTION_ALIASES.get(action) or ModificationAction(action)
        except ValueError:
            return _rejected(f"Unknown modification action: {action}")

        if parsed_action is ModificationAction.UNDO:
            return self.undo()
        if parsed_action is ModificationAction.ADD_ARTIFACT:
            return self.add_artifact(subject or "")
        if parsed_action is ModificationAction.REMOVE_METRIC:
            return self.remove_metric(subject or "")

        kind: ComponentType | None = None
        if component_type:
            try:
                kind = ComponentType(component_type)
            except ValueError:
                return _rejected(f"Unknown component type: {component_type}", parsed_action)
        if template and get_template(template) is None:
            return _rejected(f"Unknown component template: {template}", parsed_action)
        return self.add_metric(subject or "", kind, template)

    def undo(self) -> ModificationResult:
        tx = _Transaction(
            id=_new_transaction_id(),
            action=ModificationAction.UNDO,
            states=[TransactionState.IDLE],
        )
        if not self._acquire(tx):
            return self._lock_timeout_result(tx)
        try:
            return self._run_undo(tx)
        finally:
            self._release()

    def abort(self) -> bool:
        """Ask the in-flight transaction to stop and restore its snapshot."""
        with self._state_lock:
            if self._active_tx is None:
                return False
            self._abort.set()
            logger.warning("Abort requested for transaction %s", self._active_tx)
            return True

    # Read paths

    def list_components(self) -> list[ComponentRecord]:
        return self._registry.list_components()

    def get_component(self, name: str) -> tuple[ComponentRecord, str | None] | None:
        record = self._registry.get(name)
        if record is None:
            return None
        return record, self._registry.load_artifact_body(name)

    def list_active_fields(self, table: str | None = None) -> list[str]:
        return self._engine.list_active_fields(table or self._table)

    def list_fields(self, table: str | None = None) -> list[SchemaField]:
        return self._engine.list_fields(table or self._table)

    def list_snapshots(self) -> list[BackupSnapshot]:
        return self._backups.list_snapshots()

    def history(self) -> dict[str, Any]:
        migrations = [record.to_dict() for record in self._engine.list_migrations()]
        components = [record.to_dict() for record in self._registry.list_components()]
        return {
            "migrations": migrations,
            "components": components,
            "total": len(migrations) + len(components),
        }

    # Gate

    def _acquire(self, tx: _Transaction) -> bool:
        if not self._gate.acquire(timeout=self._lock_timeout):
            logger.warning(
                "Transaction %s could not acquire the modification gate within %ss",
                tx.id,
                self._lock_timeout,
            )
            return False
        with self._state_lock:
            self._active_tx = tx.id
            self._abort.clear()
        return True

    def _release(self) -> None:
        with self._state_lock:
            self._active_tx = None
            self._abort.clear()
        self._gate.release()

    # Transaction skeleton

    def _apply(
        self,
        intent: ModificationIntent,
        states: list[TransactionState],
        component_type: ComponentType | None = None,
        template: str | None = None,
    ) -> ModificationResult:
        tx = _Transaction(id=_new_transaction_id(), action=intent.action, states=list(states))
        if not self._acquire(tx):
            return self._lock_timeout_result(tx)
        try:
            return self._run(tx, intent, component_type, template)
        finally:
            self._release()

    def _run(
        self,
        tx: _Transaction,
        intent: ModificationIntent,
        component_type: ComponentType | None,
        template: str | None,
    ) -> ModificationResult:
        self._enter(tx, TransactionState.DERIVING)
        intent = _derive(intent)
        logger.info(
            "Transaction %s derived field=%s artifact=%s",
            tx.id,
            intent.derived_field_id,
            intent.derived_artifact_id,
        )

        self._enter(tx, TransactionState.BACKING_UP)
        try:
            tx.snapshot = self._backups.snapshot(tx.id)
        except ModificationError as exc:
            return self._fail(tx, exc, restored=False, intent=intent)

        try:
            if intent.action is ModificationAction.ADD_METRIC:
                result = self._add_metric(tx, intent, component_type, template)
            elif intent.action is ModificationAction.REMOVE_METRIC:
                result = self._remove_metric(tx, intent)
            elif intent.action is ModificationAction.ADD_ARTIFACT:
                result = self._add_chart(tx, intent)
            else:
                raise ValueError(f"Unsupported modification action: {intent.action}")
        except ModificationError as exc:
            return self._fail(tx, exc, restored=self._restore(tx), intent=intent)
        except Exception:
            logger.exception("Transaction %s raised unexpectedly; restoring snapshot", tx.id)
            self._restore(tx)
            raise

        self._prune(tx)
        return result

    def _enter(self, tx: _Transaction, state: TransactionState) -> None:
        if state in _ABORTABLE_STATES and self._abort.is_set():
            raise ModificationError(ErrorTag.ABORTED, "Transaction aborted by request")
        tx.states.append(state)
        logger.info("Transaction %s: %s", tx.id, state.value)

    def _finish(self, tx: _Transaction, notification: str) -> None:
        self._enter(tx, TransactionState.NOTIFYING)
        try:
            self._notifier.notify(notification, _NOTIFY_CATEGORY)
        except Exception as exc:
            logger.warning("Notification for transaction %s failed: %s", tx.id, exc)
        tx.states.append(TransactionState.DONE)
        logger.info("Transaction %s: done", tx.id)

    def _restore(self, tx: _Transaction) -> bool:
        if tx.snapshot is None:
            return False
        restored = self._backups.restore(tx.snapshot)
        if not restored:
            logger.error(
                "Restore of snapshot %s failed; manual recovery required", tx.snapshot.id
            )
        return restored

    def _prune(self, tx: _Transaction) -> None:
        if not self._backup_retention or tx.snapshot is None:
            return
        self._backups.prune(self._backup_retention, protect=frozenset({tx.snapshot.id}))

    def _fail(
        self,
        tx: _Transaction,
        exc: ModificationError,
        restored: bool,
        intent: ModificationIntent | None = None,
    ) -> ModificationResult:
        tx.states.append(TransactionState.FAILED)
        logger.error(
            "Transaction %s failed with %s: %s (restored=%s)",
            tx.id,
            exc.tag.value,
            exc.message,
            restored,
        )
        return ModificationResult(
            ResultStatus.FAILED,
            exc.message,
            action=tx.action,
            transaction_id=tx.id,
            field=intent.derived_field_id if intent else None,
            component=intent.derived_artifact_id if intent else None,
            snapshot_id=tx.snapshot.id if tx.snapshot else None,
            error_tag=exc.tag,
            restored=restored,
            states=tx.states,
        )

    def _benign(
        self,
        tx: _Transaction,
        status: ResultStatus,
        message: str,
        intent: ModificationIntent,
    ) -> ModificationResult:
        tx.states.append(TransactionState.DONE)
        logger.info("Transaction %s: %s (%s)", tx.id, status.value, message)
        return ModificationResult(
            status,
            message,
            action=tx.action,
            transaction_id=tx.id,
            field=intent.derived_field_id,
            component=intent.derived_artifact_id,
            snapshot_id=tx.snapshot.id if tx.snapshot else None,
            states=tx.states,
        )

    def _lock_timeout_result(self, tx: _Transaction) -> ModificationResult:
        tx.states.append(TransactionState.FAILED)
        return ModificationResult(
            ResultStatus.FAILED,
            "Another structural modification is still in progress",
            action=tx.action,
            transaction_id=tx.id,
            error_tag=ErrorTag.LOCK_TIMEOUT,
            states=tx.states,
        )

    # Mutations

    def _add_metric(
        self,
        tx: _Transaction,
        intent: ModificationIntent,
        component_type: ComponentType | None,
        template_name: str | None,
    ) -> ModificationResult:
        self._enter(tx, TransactionState.MUTATING)
        subject = intent.raw_subject
        field_id = intent.derived_field_id or to_field_id(subject)
        artifact_id = intent.derived_artifact_id or to_artifact_id(subject)

        change = self._engine.add_field(
            self._table, field_id, infer_data_type(subject), transaction_id=tx.id
        )
        if change.outcome is FieldOutcome.ALREADY_EXISTS:
            return self._benign(
                tx, ResultStatus.ALREADY_EXISTS, f'Metric "{subject}" already exists', intent
            )
        _raise_for_field(change)

        template = get_template(template_name) or suggest_template(subject)
        kind = component_type or (template.kind if template else infer_component_type(subject))
        request = ArtifactRequest(
            kind=kind,
            name=artifact_id,
            description=template.description if template else f"{subject} tracker",
            options=dict(template.options) if template else {},
        )
        code = self._generate(request)
        location = self._save_body(artifact_id, code)

        self._enter(tx, TransactionState.REGISTERING)
        self._register(
            ComponentRecord(
                name=artifact_id,
                type=kind,
                description=subject,
                storage_location=location,
                placement=Placement.DASHBOARD,
                associated_field=field_id,
                transaction_id=tx.id,
                checksum=sha256_text(code),
            )
        )
        self._finish(tx, f"Added {subject} tracking. Check the dashboard to use it.")
        return ModificationResult(
            ResultStatus.OK,
            f"Added {subject} tracker to Dashboard",
            action=tx.action,
            transaction_id=tx.id,
            field=field_id,
            component=artifact_id,
            snapshot_id=tx.snapshot.id if tx.snapshot else None,
            states=tx.states,
            details={
                "table": self._table,
                "data_type": change.data_type.value if change.data_type else None,
                "component_type": kind.value,
                "template": template.name if template else None,
                "reactivated": change.reactivated,
            },
        )

    def _remove_metric(self, tx: _Transaction, intent: ModificationIntent) -> ModificationResult:
        self._enter(tx, TransactionState.MUTATING)
        subject = intent.raw_subject
        field_id = intent.derived_field_id or to_field_id(subject)

        with _store_errors():
            components = self._registry.find_by_field(field_id)
        if not components:
            # A tracker is the registered component; a bare column is not one.
            return self._benign(
                tx, ResultStatus.NOT_FOUND, f'Metric "{subject}" not found', intent
            )
        with _store_errors():
            field_active = self._engine.is_active(self._table, field_id)

        if field_active:
            _raise_for_field(
                self._engine.remove_field(
                    self._table, field_id, soft_delete=True, transaction_id=tx.id
                )
            )
        with _store_errors():
            for component in components:
                self._registry.delete_artifact_body(component.name)
                self._registry.unregister(component.name)

        self._finish(tx, f"Removed {subject} tracker (data preserved)")
        return ModificationResult(
            ResultStatus.OK,
            f"Removed {subject} tracker from Dashboard",
            action=tx.action,
            transaction_id=tx.id,
            field=field_id,
            component=components[0].name if components else None,
            snapshot_id=tx.snapshot.id if tx.snapshot else None,
            states=tx.states,
            details={
                "table": self._table,
                "field_soft_deleted": field_active,
                "removed_components": [component.name for component in components],
                "note": "Data preserved in database",
            },
        )

    def _add_chart(self, tx: _Transaction, intent: ModificationIntent) -> ModificationResult:
        self._enter(tx, TransactionState.MUTATING)
        subject = intent.raw_subject
        artifact_id = intent.derived_artifact_id or to_artifact_id(f"{subject} chart")
        request = ArtifactRequest(
            kind=ComponentType.CHART,
            name=artifact_id,
            description=f"Chart showing {subject}",
            options={"chartDescription": subject},
        )
        code = self._generate(request)
        location = self._save_body(artifact_id, code)

        self._enter(tx, TransactionState.REGISTERING)
        self._register(
            ComponentRecord(
                name=artifact_id,
                type=ComponentType.CHART,
                description=subject,
                storage_location=location,
                placement=Placement.ANALYTICS,
                transaction_id=tx.id,
                checksum=sha256_text(code),
            )
        )
        self._finish(tx, f"Added chart: {subject}")
        return ModificationResult(
            ResultStatus.OK,
            f"Added chart: {subject}",
            action=tx.action,
            transaction_id=tx.id,
            component=artifact_id,
            snapshot_id=tx.snapshot.id if tx.snapshot else None,
            states=tx.states,
            details={"placement": Placement.ANALYTICS.value},
        )

    def _generate(self, request: ArtifactRequest) -> str:
        """Call the generator with a hard deadline; the gate is held meanwhile."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="artifact-gen")
        try:
            future = executor.submit(self._generator.generate, request)
            deadline = time.monotonic() + self._generation_timeout
            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    future.cancel()
                    raise ModificationError(
                        ErrorTag.GENERATION_FAILED,
                        f"Artifact generation timed out after {self._generation_timeout}s",
                    )
                done, _ = wait([future], timeout=min(remaining, _POLL_SECONDS))
                if done:
                    break
                if self._abort.is_set():
                    future.cancel()
                    raise ModificationError(
                        ErrorTag.ABORTED, "Transaction aborted during artifact generation"
                    )
            try:
                result = future.result()
            except Exception as exc:
                raise ModificationError(
                    ErrorTag.GENERATION_FAILED, f"Artifact generation failed: {exc}"
                ) from exc
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if result.outcome is GenerationOutcome.VALIDATION_FAILED:
            raise ModificationError(
                ErrorTag.ARTIFACT_VALIDATION_FAILED,
                f"Generated artifact rejected ({result.rule}): {result.error}",
            )
        if not result.ok or result.code is None:
            raise ModificationError(
                ErrorTag.GENERATION_FAILED, result.error or "Artifact generation failed"
            )
        return result.code

    def _save_body(self, name: str, code: str) -> str:
        with _store_errors():
            return self._registry.save_artifact_body(name, code)

    def _register(self, record: ComponentRecord) -> None:
        with _store_errors():
            registered = self._registry.register(record)
        if not registered:
            raise ModificationError(
                ErrorTag.REGISTRY_CONFLICT, f"Component {record.name} is already registered"
            )

    # Undo

    def _run_undo(self, tx: _Transaction) -> ModificationResult:
        self._enter(tx, TransactionState.DERIVING)
        try:
            target = self._undo_target()
        except StoreUnavailableError as exc:
            return self._fail(tx, ModificationError(ErrorTag.STORE_ERROR, str(exc)), False)
        if target is None:
            tx.states.append(TransactionState.DONE)
            return ModificationResult(
                ResultStatus.NOTHING_TO_UNDO,
                "No modifications to undo",
                action=tx.action,
                transaction_id=tx.id,
                states=tx.states,
            )

        self._enter(tx, TransactionState.BACKING_UP)
        try:
            tx.snapshot = self._backups.snapshot(tx.id)
        except ModificationError as exc:
            return self._fail(tx, exc, restored=False)

        try:
            self._enter(tx, TransactionState.MUTATING)
            revived = self._removed_components(target) if target.removes else []
            if revived is None:
                details = self._undo_by_restore(target)
            else:
                details = self._undo_targeted(tx, target, revived)
            self._finish(tx, "Undid the last modification")
        except ModificationError as exc:
            return self._fail(tx, exc, restored=self._restore(tx))
        except Exception:
            logger.exception("Undo %s raised unexpectedly; restoring snapshot", tx.id)
            self._restore(tx)
            raise

        self._prune(tx)
        components = [c.name for c in target.components] + details.get("restored_components", [])
        return ModificationResult(
            ResultStatus.OK,
            _undo_message(details),
            action=tx.action,
            transaction_id=tx.id,
            field=target.migrations[0].field if target.migrations else None,
            component=components[0] if components else None,
            snapshot_id=tx.snapshot.id,
            states=tx.states,
            details=details,
        )

    def _undo_target(self) -> _UndoTarget | None:
        """The newest transaction across the migration log and the registry."""
        migration = self._engine.latest_migration()
        component = self._registry.latest()
        if migration is None and component is None:
            return None

        use_component = component is not None and (
            migration is None or component.registered_at > migration.timestamp
        )
        transaction_id = component.transaction_id if use_component else migration.transaction_id
        if transaction_id is None:
            # Records written without a transaction id are reversed one at a time.
            if use_component:
                return _UndoTarget(None, [], [component])
            return _UndoTarget(None, [migration], [])
        return _UndoTarget(
            transaction_id,
            self._engine.migrations_for_transaction(transaction_id),
            self._registry.for_transaction(transaction_id),
        )

    def _removed_components(
        self, target: _UndoTarget
    ) -> list[tuple[ComponentRecord, str]] | None:
        """Components the target transaction removed, read back from its snapshot.

        None when they cannot all be recovered, in which case the undo falls
        back to restoring that snapshot wholesale.
        """
        if target.transaction_id is None:
            return None
        snapshot = self._backups.find_for_transaction(target.transaction_id)
        if snapshot is None:
            logger.warning("No snapshot recorded for transaction %s", target.transaction_id)
            return None
        captured = self._backups.read_components(snapshot)
        if captured is None:
            return None
        with _store_errors():
            live = {component.name for component in self._registry.list_components()}
        removed: list[tuple[ComponentRecord, str]] = []
        for record, body in captured:
            if record.name in live:
                continue
            if body is None:
                logger.warning(
                    "Snapshot %s has no body for %s; undo will restore it",
                    snapshot.id,
                    record.name,
                )
                return None
            removed.append((record, body))
        return removed

    def _undo_targeted(
        self,
        tx: _Transaction,
        target: _UndoTarget,
        revived: list[tuple[ComponentRecord, str]],
    ) -> dict[str, Any]:
        soft_deleted: list[str] = []
        reactivated: list[str] = []
        for migration in target.migrations:
            if migration.type is MigrationType.SOFT_DELETE_FIELD:
                if self._reactivate(tx, migration):
                    reactivated.append(migration.field)
                continue
            change = self._engine.remove_field(
                migration.table, migration.field, soft_delete=True, transaction_id=tx.id
            )
            if change.outcome is FieldOutcome.NOT_FOUND:
                continue
            if not change.ok:
                raise ModificationError(
                    ErrorTag.UNDO_FAILED,
                    f"Could not soft-delete {migration.table}.{migration.field}: "
                    f"{change.error or change.outcome.value}",
                )
            soft_deleted.append(migration.field)

        unregistered: list[str] = []
        with _store_errors():
            for component in target.components:
                self._registry.delete_artifact_body(component.name)
                if self._registry.unregister(component.name):
                    unregistered.append(component.name)

        if revived:
            self._enter(tx, TransactionState.REGISTERING)
        for record, body in revived:
            location = self._save_body(record.name, body)
            self._register(
                replace(
                    record,
                    storage_location=location,
                    registered_at="",
                    transaction_id=tx.id,
                    checksum=sha256_text(body),
                )
            )
        return {
            "mode": "targeted",
            "undone_transaction": target.transaction_id,
            "soft_deleted_fields": soft_deleted,
            "unregistered_components": unregistered,
            "reactivated_fields": reactivated,
            "restored_components": [record.name for record, _ in revived],
        }

    def _reactivate(self, tx: _Transaction, migration: MigrationRecord) -> bool:
        """Bring back a soft-deleted field; False when it is already active."""
        with _store_errors():
            columns = {item.name: item for item in self._engine.list_fields(migration.table)}
        column = columns.get(migration.field)
        if column is not None and column.active:
            return False
        data_type = (column.data_type if column else None) or migration.data_type
        change = self._engine.add_field(
            migration.table,
            migration.field,
            data_type or DataType.TEXT,
            transaction_id=tx.id,
        )
        if not change.ok:
            raise ModificationError(
                ErrorTag.UNDO_FAILED,
                f"Could not reactivate {migration.table}.{migration.field}: "
                f"{change.error or change.outcome.value}",
            )
        return True

    def _undo_by_restore(self, target: _UndoTarget) -> dict[str, Any]:
        snapshot = (
            self._backups.find_for_transaction(target.transaction_id)
            if target.transaction_id
            else None
        )
        if snapshot is None:
            raise ModificationError(
                ErrorTag.UNDO_FAILED,
                "The last change cannot be reversed and no snapshot of it is available",
            )
        if not self._backups.restore(snapshot):
            raise ModificationError(
                ErrorTag.UNDO_FAILED, f"Restore from snapshot {snapshot.id} failed"
            )
        return {
            "mode": "restore",
            "undone_transaction": target.transaction_id,
            "restored_snapshot": snapshot.id,
        }


def _derive(intent: ModificationIntent) -> ModificationIntent:
    subject = intent.raw_subject
    if intent.action is ModificationAction.ADD_METRIC:
        return replace(
            intent,
            derived_field_id=to_field_id(subject),
            derived_artifact_id=to_artifact_id(intent.label or subject),
        )
    if intent.action is ModificationAction.REMOVE_METRIC:
        return replace(intent, derived_field_id=to_field_id(subject))
    if intent.action is ModificationAction.ADD_ARTIFACT:
        return replace(intent, derived_artifact_id=to_artifact_id(f"{subject} chart"))
    return intent


def _raise_for_field(change: FieldChangeResult) -> None:
    if change.ok:
        return
    message = change.error or f"Schema change on {change.table}.{change.field} failed"
    if change.outcome in (FieldOutcome.INVALID_NAME, FieldOutcome.INVALID_TYPE):
        raise ModificationError(ErrorTag.VALIDATION_ERROR, message)
    raise ModificationError(ErrorTag.STORE_ERROR, message)


def _rejected(message: str, action: ModificationAction | None = None) -> ModificationResult:
    return ModificationResult(
        ResultStatus.FAILED,
        message,
        action=action,
        error_tag=ErrorTag.VALIDATION_ERROR,
        states=[TransactionState.IDLE, TransactionState.FAILED],
    )


def _undo_message(details: dict[str, Any]) -> str:
    if details.get("mode") == "restore":
        return f"Undid the last change by restoring snapshot {details['restored_snapshot']}"
    added = [f"field {name}" for name in details.get("soft_deleted_fields", [])]
    added += [f"component {name}" for name in details.get("unregistered_components", [])]
    removed = [f"field {name}" for name in details.get("reactivated_fields", [])]
    removed += [f"component {name}" for name in details.get("restored_components", [])]
    sentences = []
    if added:
        sentences.append("Undid addition of " + ", ".join(added))
    if removed:
        sentences.append("Brought back " + ", ".join(removed))
    return "; ".join(sentences) or "Undid the last change"
