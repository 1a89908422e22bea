"""Error taxonomy for structural modifications."""

from __future__ import annotations

from enum import Enum


class ErrorTag(str, Enum):
    VALIDATION_ERROR = "ValidationError"
    STORE_ERROR = "StoreError"
    GENERATION_FAILED = "GenerationFailed"
    ARTIFACT_VALIDATION_FAILED = "ArtifactValidationFailed"
    REGISTRY_CONFLICT = "RegistryConflict"
    SNAPSHOT_FAILED = "SnapshotFailed"
    UNDO_FAILED = "UndoFailed"
    ABORTED = "Aborted"
    LOCK_TIMEOUT = "LockTimeout"


class ModificationError(RuntimeError):
    """Raised by a failing transaction step; the orchestrator rolls back on it."""

    def __init__(self, tag: ErrorTag, message: str) -> None:
        super().__init__(message)
        self.tag = tag
        self.message = message

    def __str__(self) -> str:
        return f"{self.tag.value}: {self.message}"


class StoreUnavailableError(RuntimeError):
    """The persistent store could not be read or altered."""
