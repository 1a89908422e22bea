"""Data models shared by the self-modification subsystem."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class DataType(str, Enum):
    TEXT = "TEXT"
    INTEGER = "INTEGER"
    REAL = "REAL"
    BOOLEAN = "BOOLEAN"
    DATETIME = "DATETIME"

    @classmethod
    def parse(cls, value: object) -> DataType | None:
        """Return the matching type (case-insensitive) or None."""
        if isinstance(value, DataType):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


class ModificationAction(str, Enum):
    ADD_METRIC = "add_metric"
    REMOVE_METRIC = "remove_metric"
    ADD_ARTIFACT = "add_artifact"
    UNDO = "undo"


class MigrationType(str, Enum):
    ADD_FIELD = "add_field"
    SOFT_DELETE_FIELD = "soft_delete_field"


class ComponentType(str, Enum):
    METRIC_INPUT = "metric_input"
    EMOJI_SELECT = "emoji_select"
    CHART = "chart"


class Placement(str, Enum):
    DASHBOARD = "dashboard"
    ANALYTICS = "analytics"


@dataclass(frozen=True)
class ModificationIntent:
    """A structural change recognised in a user message.

    ``label`` is the full noun phrase when the matching rule captured one
    ("mood tracking"); artifact ids prefer it over ``raw_subject``.
    """

    action: ModificationAction
    raw_subject: str
    label: str | None = None
    rule: str | None = None
    derived_field_id: str | None = None
    derived_artifact_id: str | None = None
    raw_message: str = ""


@dataclass(frozen=True)
class SchemaField:
    table: str
    name: str
    data_type: DataType | None
    active: bool


@dataclass
class MigrationRecord:
    id: str
    type: MigrationType
    table: str
    field: str
    timestamp: str
    applied_sql: str
    data_type: DataType | None = None
    transaction_id: str | None = None
    note: str | None = None
    seq: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["data_type"] = self.data_type.value if self.data_type else None
        return data


@dataclass
class ComponentRecord:
    name: str
    type: ComponentType
    description: str
    storage_location: str
    placement: Placement
    associated_field: str | None = None
    active: bool = True
    registered_at: str = ""
    transaction_id: str | None = None
    checksum: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["type"] = self.type.value
        data["placement"] = self.placement.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ComponentRecord:
        return cls(
            name=str(data["name"]),
            type=ComponentType(data["type"]),
            description=str(data.get("description", "")),
            storage_location=str(data.get("storage_location", "")),
            placement=Placement(data.get("placement", Placement.DASHBOARD.value)),
            associated_field=data.get("associated_field"),
            active=bool(data.get("active", True)),
            registered_at=str(data.get("registered_at", "")),
            transaction_id=data.get("transaction_id"),
            checksum=data.get("checksum"),
        )


@dataclass(frozen=True)
class BackupSnapshot:
    id: str
    created_at: str
    path: str
    store_snapshot_ref: str
    registry_snapshot_ref: str
    artifacts_snapshot_ref: str
    transaction_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ArtifactRequest:
    kind: ComponentType
    name: str
    description: str
    options: dict[str, Any] = field(default_factory=dict)
