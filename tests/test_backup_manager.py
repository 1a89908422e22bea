from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from evolve_mcp.backup.manager import MANIFEST_FILE, REGISTRY_FILE, BackupManager
from evolve_mcp.domain.errors import ErrorTag, ModificationError, StoreUnavailableError
from evolve_mcp.domain.models import ComponentRecord, ComponentType, DataType, Placement
from evolve_mcp.registry.components import ComponentRegistry
from evolve_mcp.schema.engine import SchemaEvolutionEngine
from evolve_mcp.schema.store import SqliteStore


def _register(registry: ComponentRegistry, name: str) -> None:
    location = registry.save_artifact_body(name, f"export default function {name}() {{}}")
    registry.register(
        ComponentRecord(
            name=name,
            type=ComponentType.METRIC_INPUT,
            description=name,
            storage_location=location,
            placement=Placement.DASHBOARD,
        )
    )


def test_snapshot_writes_complete_directory(
    backups: BackupManager, registry: ComponentRegistry
) -> None:
    _register(registry, "Water")

    snap = backups.snapshot("tx_1")

    snapshot_dir = Path(snap.path)
    assert (snapshot_dir / "store.db").is_file()
    assert (snapshot_dir / "registry.json").is_file()
    assert (snapshot_dir / "components" / "Water.jsx").is_file()
    manifest = json.loads((snapshot_dir / MANIFEST_FILE).read_text(encoding="utf-8"))
    assert manifest["id"] == snap.id
    assert manifest["transaction_id"] == "tx_1"
    assert set(manifest["checksums"]) == {"store.db", "registry.json", "components/Water.jsx"}
    assert not [p for p in snapshot_dir.parent.iterdir() if p.name.endswith(".partial")]


def test_restore_returns_state_to_snapshot(
    backups: BackupManager,
    store: SqliteStore,
    registry: ComponentRegistry,
    engine: SchemaEvolutionEngine,
) -> None:
    _register(registry, "Water")
    store_before = store.dump()
    registry_before = registry.dump()
    snap = backups.snapshot()

    engine.add_field("metrics", "mood", DataType.INTEGER)
    _register(registry, "Mood")
    registry.delete_artifact_body("Water")

    assert backups.restore(snap)
    assert store.dump() == store_before
    assert registry.dump() == registry_before
    assert registry.artifact_bodies() == {"Water": "export default function Water() {}"}
    assert engine.list_migrations() == []


def test_restore_refuses_tampered_snapshot(
    backups: BackupManager, store: SqliteStore, engine: SchemaEvolutionEngine
) -> None:
    snap = backups.snapshot()
    engine.add_field("metrics", "mood", DataType.INTEGER)
    live = store.dump()
    (Path(snap.path) / REGISTRY_FILE).write_text('{"components": []}', encoding="utf-8")

    assert not backups.restore(snap)
    assert store.dump() == live


def test_restore_refuses_snapshot_without_manifest(backups: BackupManager) -> None:
    snap = backups.snapshot()
    (Path(snap.path) / MANIFEST_FILE).unlink()
    assert not backups.restore(snap)


def test_read_components_returns_records_and_bodies_without_touching_live_state(
    backups: BackupManager, registry: ComponentRegistry
) -> None:
    _register(registry, "Water")
    snap = backups.snapshot("tx_1")
    registry.delete_artifact_body("Water")
    registry.unregister("Water")

    captured = backups.read_components(snap)

    assert [(record.name, body) for record, body in captured] == [
        ("Water", "export default function Water() {}")
    ]
    assert registry.get("Water") is None
    assert registry.load_artifact_body("Water") is None


def test_read_components_refuses_tampered_snapshot(
    backups: BackupManager, registry: ComponentRegistry
) -> None:
    _register(registry, "Water")
    snap = backups.snapshot()
    (Path(snap.path) / "components" / "Water.jsx").write_text("changed", encoding="utf-8")

    assert backups.read_components(snap) is None


def test_snapshot_failure_raises_snapshot_failed(backups: BackupManager, store: SqliteStore) -> None:
    with patch.object(store, "backup_to", side_effect=StoreUnavailableError("locked")):
        with pytest.raises(ModificationError) as exc_info:
            backups.snapshot("tx_1")

    assert exc_info.value.tag is ErrorTag.SNAPSHOT_FAILED
    assert backups.list_snapshots() == []


def test_list_find_and_prune(backups: BackupManager) -> None:
    first = backups.snapshot("tx_1")
    second = backups.snapshot("tx_2")
    third = backups.snapshot("tx_3")

    assert [snap.id for snap in backups.list_snapshots()] == [third.id, second.id, first.id]
    assert backups.latest().id == third.id
    assert backups.find_for_transaction("tx_2").id == second.id
    assert backups.find_for_transaction("tx_missing") is None

    deleted = backups.prune(1, protect=frozenset({first.id}))

    assert deleted == 1
    assert [snap.id for snap in backups.list_snapshots()] == [third.id, first.id]
    with pytest.raises(ValueError):
        backups.prune(0)
