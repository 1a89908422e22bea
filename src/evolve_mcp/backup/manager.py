"""Point-in-time snapshots of the store and the component registry."""

from __future__ import annotations

import json
import logging
import shutil
from pathlib import Path
from typing import Any

from evolve_mcp.domain.errors import ErrorTag, ModificationError, StoreUnavailableError
from evolve_mcp.domain.models import BackupSnapshot, ComponentRecord
from evolve_mcp.registry.artifacts import ARTIFACT_NAME_RE, ARTIFACT_SUFFIX
from evolve_mcp.registry.components import ComponentRegistry
from evolve_mcp.schema.store import SqliteStore
from evolve_mcp.utils.hashing import sha256_file
from evolve_mcp.utils.serialization import write_json_atomic
from evolve_mcp.utils.time import snapshot_stamp, utc_now_iso

logger = logging.getLogger(__name__)

STORE_FILE = "store.db"
REGISTRY_FILE = "registry.json"
COMPONENTS_DIR = "components"
MANIFEST_FILE = "manifest.json"
_PARTIAL_PREFIX = "."


class BackupManager:
    """Creates immutable snapshot directories and restores from them.

    A snapshot directory is assembled under a hidden name and renamed into
    place only once complete, so a listed snapshot is always whole. This class
    never decides when to snapshot.
    """

    def __init__(self, store: SqliteStore, registry: ComponentRegistry, backup_path: str) -> None:
        self._store = store
        self._registry = registry
        self._base = Path(backup_path)
        self._base.mkdir(parents=True, exist_ok=True)

    def snapshot(self, transaction_id: str | None = None) -> BackupSnapshot:
        snapshot_id = self._new_id()
        final_dir = self._base / snapshot_id
        work_dir = self._base / f"{_PARTIAL_PREFIX}{snapshot_id}.partial"
        try:
            work_dir.mkdir(parents=True)
            self._store.backup_to(work_dir / STORE_FILE)
            write_json_atomic(work_dir / REGISTRY_FILE, self._registry.dump())
            components_dir = work_dir / COMPONENTS_DIR
            components_dir.mkdir()
            for name, code in self._registry.artifact_bodies().items():
                (components_dir / f"{name}{ARTIFACT_SUFFIX}").write_text(code, encoding="utf-8")

            created_at = utc_now_iso()
            write_json_atomic(
                work_dir / MANIFEST_FILE,
                {
                    "id": snapshot_id,
                    "transaction_id": transaction_id,
                    "created_at": created_at,
                    "checksums": _checksums(work_dir),
                },
            )
            work_dir.rename(final_dir)
        except (OSError, StoreUnavailableError) as exc:
            shutil.rmtree(work_dir, ignore_errors=True)
            logger.error("Snapshot %s failed: %s", snapshot_id, exc)
            raise ModificationError(
                ErrorTag.SNAPSHOT_FAILED, f"Could not create snapshot: {exc}"
            ) from exc

        logger.info("Created snapshot %s (transaction %s)", snapshot_id, transaction_id)
        return _to_snapshot(final_dir, snapshot_id, created_at, transaction_id)

    def _new_id(self) -> str:
        base_id = snapshot_stamp()
        candidate = base_id
        counter = 1
        while (self._base / candidate).exists():
            candidate = f"{base_id}-{counter}"
            counter += 1
        return candidate

    def restore(self, snapshot: BackupSnapshot) -> bool:
        """Overwrite live store and registry with ``snapshot``.

        Returns False, leaving live state untouched, when the snapshot is
        incomplete or fails checksum verification.
        """
        snapshot_dir = Path(snapshot.path)
        manifest = _read_manifest(snapshot_dir)
        if manifest is None:
            logger.error("Snapshot %s has no readable manifest", snapshot.id)
            return False
        problem = _verify(snapshot_dir, manifest.get("checksums") or {})
        if problem:
            logger.error("Snapshot %s failed verification: %s", snapshot.id, problem)
            return False

        try:
            document, bodies = _load_registry(snapshot_dir)
            self._store.restore_from(snapshot_dir / STORE_FILE)
            self._registry.restore_state(document, bodies)
        except (OSError, ValueError, StoreUnavailableError) as exc:
            logger.error("Restore from snapshot %s failed: %s", snapshot.id, exc)
            return False

        logger.warning("Restored live state from snapshot %s", snapshot.id)
        return True

    def read_components(
        self, snapshot: BackupSnapshot
    ) -> list[tuple[ComponentRecord, str | None]] | None:
        """Component records captured in ``snapshot`` with their bodies.

        Live state is not touched. None when the snapshot fails verification
        or cannot be read.
        """
        snapshot_dir = Path(snapshot.path)
        manifest = _read_manifest(snapshot_dir)
        if manifest is None or _verify(snapshot_dir, manifest.get("checksums") or {}):
            logger.error("Snapshot %s is incomplete or corrupt", snapshot.id)
            return None
        try:
            document, bodies = _load_registry(snapshot_dir)
            records = [ComponentRecord.from_dict(item) for item in document["components"]]
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.error("Could not read components from snapshot %s: %s", snapshot.id, exc)
            return None
        return [(record, bodies.get(record.name)) for record in records]

    def list_snapshots(self) -> list[BackupSnapshot]:
        """Complete snapshots, newest first."""
        snapshots: list[BackupSnapshot] = []
        for entry in self._base.iterdir():
            if not entry.is_dir() or entry.name.startswith(_PARTIAL_PREFIX):
                continue
            manifest = _read_manifest(entry)
            if manifest is None:
                logger.warning("Skipping snapshot without manifest: %s", entry.name)
                continue
            snapshots.append(
                _to_snapshot(
                    entry,
                    str(manifest.get("id") or entry.name),
                    str(manifest.get("created_at") or ""),
                    manifest.get("transaction_id"),
                )
            )
        snapshots.sort(key=lambda snap: (snap.created_at, snap.id), reverse=True)
        return snapshots

    def latest(self) -> BackupSnapshot | None:
        snapshots = self.list_snapshots()
        return snapshots[0] if snapshots else None

    def find_for_transaction(self, transaction_id: str) -> BackupSnapshot | None:
        for snap in self.list_snapshots():
            if snap.transaction_id == transaction_id:
                return snap
        return None

    def prune(self, keep: int, protect: frozenset[str] = frozenset()) -> int:
        """Delete all but the newest ``keep`` snapshots; ids in ``protect`` survive."""
        if keep < 1:
            raise ValueError("keep must be at least 1")
        deleted = 0
        for snap in self.list_snapshots()[keep:]:
            if snap.id in protect:
                continue
            try:
                shutil.rmtree(snap.path)
            except OSError as exc:
                logger.warning("Failed to prune snapshot %s: %s", snap.id, exc)
                continue
            deleted += 1
            logger.info("Pruned snapshot %s", snap.id)
        return deleted


def _checksums(snapshot_dir: Path) -> dict[str, str]:
    checksums: dict[str, str] = {}
    for path in sorted(snapshot_dir.rglob("*")):
        if path.is_file() and path.name != MANIFEST_FILE:
            checksums[path.relative_to(snapshot_dir).as_posix()] = sha256_file(path)
    return checksums


def _verify(snapshot_dir: Path, checksums: dict[str, str]) -> str | None:
    for required in (STORE_FILE, REGISTRY_FILE):
        if required not in checksums:
            return f"{required} missing from manifest"
    for relative, expected in checksums.items():
        path = snapshot_dir / relative
        if not path.is_file():
            return f"{relative} is missing"
        if sha256_file(path) != expected:
            return f"{relative} checksum mismatch"
    return None


def _load_registry(snapshot_dir: Path) -> tuple[dict[str, Any], dict[str, str]]:
    with (snapshot_dir / REGISTRY_FILE).open("r", encoding="utf-8") as handle:
        document = json.load(handle)
    if not isinstance(document, dict) or not isinstance(document.get("components"), list):
        raise ValueError("Registry document has no component list")
    bodies = {
        path.stem: path.read_text(encoding="utf-8")
        for path in sorted((snapshot_dir / COMPONENTS_DIR).glob(f"*{ARTIFACT_SUFFIX}"))
        if ARTIFACT_NAME_RE.match(path.stem)
    }
    return document, bodies


def _read_manifest(snapshot_dir: Path) -> dict[str, Any] | None:
    try:
        with (snapshot_dir / MANIFEST_FILE).open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except (OSError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _to_snapshot(
    snapshot_dir: Path, snapshot_id: str, created_at: str, transaction_id: str | None
) -> BackupSnapshot:
    return BackupSnapshot(
        id=snapshot_id,
        created_at=created_at,
        path=str(snapshot_dir),
        store_snapshot_ref=str(snapshot_dir / STORE_FILE),
        registry_snapshot_ref=str(snapshot_dir / REGISTRY_FILE),
        artifacts_snapshot_ref=str(snapshot_dir / COMPONENTS_DIR),
        transaction_id=transaction_id,
    )
