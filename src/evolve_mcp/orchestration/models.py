"""Result and state types for modification transactions."""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dc_field
from enum import Enum
from typing import Any

from evolve_mcp.domain.errors import ErrorTag
from evolve_mcp.domain.models import ModificationAction


class TransactionState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    DERIVING = "deriving"
    BACKING_UP = "backing_up"
    MUTATING = "mutating"
    REGISTERING = "registering"
    NOTIFYING = "notifying"
    DONE = "done"
    FAILED = "failed"


class ResultStatus(str, Enum):
    OK = "ok"
    NOT_DETECTED = "not_detected"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    NOTHING_TO_UNDO = "nothing_to_undo"
    FAILED = "failed"


@dataclass
class ModificationResult:
    """Outcome of one orchestrator call.

    Benign statuses (``ALREADY_EXISTS``, ``NOT_FOUND`` and so on) mean the
    request was understood but there was nothing to do; only ``FAILED``
    carries an ``error_tag``.
    """

    status: ResultStatus
    message: str
    action: ModificationAction | None = None
    transaction_id: str | None = None
    field: str | None = None
    component: str | None = None
    snapshot_id: str | None = None
    error_tag: ErrorTag | None = None
    restored: bool = False
    states: list[TransactionState] = dc_field(default_factory=list)
    details: dict[str, Any] = dc_field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status is ResultStatus.OK

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status.value,
            "message": self.message,
            "action": self.action.value if self.action else None,
            "transaction_id": self.transaction_id,
            "field": self.field,
            "component": self.component,
            "snapshot_id": self.snapshot_id,
            "error_tag": self.error_tag.value if self.error_tag else None,
            "restored": self.restored,
            "states": [state.value for state in self.states],
            "details": self.details,
        }
