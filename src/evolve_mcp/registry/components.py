"""Registry of active generated components, persisted as one JSON document."""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from evolve_mcp.domain.errors import StoreUnavailableError
from evolve_mcp.domain.models import ComponentRecord
from evolve_mcp.registry.artifacts import ArtifactBodyStore
from evolve_mcp.utils.serialization import write_json_atomic
from evolve_mcp.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

REGISTRY_FORMAT_VERSION = "1.0.0"


class ComponentRegistry:
    """Single writer-of-record for component state.

    Every mutation rewrites the whole document atomically under one lock and
    bumps ``last_modified``. The document is re-read on each call, so a file
    restored from a snapshot is picked up without a reload step.
    """

    def __init__(self, registry_path: str, bodies: ArtifactBodyStore) -> None:
        self._path = Path(registry_path)
        self._bodies = bodies
        self._lock = threading.RLock()
        with self._lock:
            if not self._path.exists():
                self._write(_empty_document())

    @property
    def path(self) -> Path:
        return self._path

    @property
    def bodies(self) -> ArtifactBodyStore:
        return self._bodies

    def _read(self) -> dict[str, Any]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                data = json.load(handle)
        except FileNotFoundError:
            return _empty_document()
        except (OSError, ValueError) as exc:
            raise StoreUnavailableError(f"Component registry unreadable: {exc}") from exc
        if not isinstance(data, dict) or not isinstance(data.get("components"), list):
            raise StoreUnavailableError("Component registry document is malformed")
        return data

    def _write(self, document: dict[str, Any]) -> None:
        try:
            write_json_atomic(self._path, document)
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to write component registry: {exc}") from exc

    def register(self, record: ComponentRecord) -> bool:
        """Add ``record``; False when the name is already registered."""
        with self._lock:
            document = self._read()
            if any(item.get("name") == record.name for item in document["components"]):
                logger.info("Component %s already registered", record.name)
                return False
            if not record.registered_at:
                record.registered_at = utc_now_iso()
            document["components"].append(record.to_dict())
            document["last_modified"] = utc_now_iso()
            self._write(document)
        logger.info("Registered component %s", record.name)
        return True

    def unregister(self, name: str) -> bool:
        with self._lock:
            document = self._read()
            remaining = [item for item in document["components"] if item.get("name") != name]
            if len(remaining) == len(document["components"]):
                logger.info("Component %s not found", name)
                return False
            document["components"] = remaining
            document["last_modified"] = utc_now_iso()
            self._write(document)
        logger.info("Unregistered component %s", name)
        return True

    def get(self, name: str) -> ComponentRecord | None:
        with self._lock:
            for item in self._read()["components"]:
                if item.get("name") == name:
                    return ComponentRecord.from_dict(item)
        return None

    def list_components(self) -> list[ComponentRecord]:
        """Registered components in registration order."""
        with self._lock:
            return [ComponentRecord.from_dict(item) for item in self._read()["components"]]

    def find_by_field(self, field_name: str) -> list[ComponentRecord]:
        return [
            record
            for record in self.list_components()
            if record.associated_field == field_name
        ]

    def for_transaction(self, transaction_id: str) -> list[ComponentRecord]:
        return [
            record
            for record in self.list_components()
            if record.transaction_id == transaction_id
        ]

    def latest(self) -> ComponentRecord | None:
        records = self.list_components()
        if not records:
            return None
        # Stable sort keeps registration order for equal timestamps.
        return sorted(records, key=lambda record: record.registered_at)[-1]

    @property
    def last_modified(self) -> str | None:
        with self._lock:
            return self._read().get("last_modified")

    def dump(self) -> dict[str, Any]:
        with self._lock:
            return self._read()

    def save_artifact_body(self, name: str, code: str) -> str:
        with self._lock:
            location, _ = self._bodies.write(name, code)
        logger.info("Saved component body %s", location)
        return location

    def load_artifact_body(self, name: str) -> str | None:
        return self._bodies.read(name)

    def delete_artifact_body(self, name: str) -> bool:
        with self._lock:
            return self._bodies.delete(name)

    def artifact_bodies(self) -> dict[str, str]:
        """Every stored body by component name, registered or not."""
        with self._lock:
            bodies: dict[str, str] = {}
            for name in self._bodies.list_names():
                code = self._bodies.read(name)
                if code is not None:
                    bodies[name] = code
            return bodies

    def restore_state(self, document: dict[str, Any], bodies: dict[str, str]) -> None:
        """Replace the registry document and the full set of artifact bodies."""
        if not isinstance(document.get("components"), list):
            raise ValueError("Registry document has no component list")
        with self._lock:
            for name in self._bodies.list_names():
                if name not in bodies:
                    self._bodies.delete(name)
            for name, code in bodies.items():
                self._bodies.write(name, code)
            self._write(document)
        logger.info("Registry restored (%d components)", len(document["components"]))


def _empty_document() -> dict[str, Any]:
    return {"version": REGISTRY_FORMAT_VERSION, "components": [], "last_modified": None}
