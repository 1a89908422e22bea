"""Derivation of field and artifact identifiers from free-text subjects.

Field ids feed straight into SQL, so ``to_field_id`` always yields a name the
schema engine accepts. Artifact ids live in their own namespace and only need
to be legible PascalCase names.
"""

from __future__ import annotations

import re

from evolve_mcp.domain.models import ComponentType, DataType
from evolve_mcp.schema import sql

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")

DEFAULT_FIELD_ID = "metric"
DEFAULT_ARTIFACT_ID = "Component"
MAX_ARTIFACT_ID_LENGTH = 80
_RESERVED_SUFFIX = "_value"

# Checked in order; the first keyword found decides.
_DATA_TYPE_KEYWORDS: tuple[tuple[tuple[str, ...], DataType], ...] = (
    (("mood", "stress", "level"), DataType.INTEGER),
    (("note", "comment", "description"), DataType.TEXT),
    (("weight", "temp", "rate"), DataType.REAL),
    (("done", "completed", "check"), DataType.BOOLEAN),
)


def to_field_id(subject: str) -> str:
    candidate = _NON_ALNUM_RE.sub("_", subject.lower()).strip("_")
    if not candidate:
        candidate = DEFAULT_FIELD_ID
    if candidate[0].isdigit():
        candidate = f"_{candidate}"
    if candidate.startswith("sqlite_"):
        candidate = f"f_{candidate}"
    if candidate in sql.RESERVED_WORDS:
        candidate = f"{candidate}{_RESERVED_SUFFIX}"
    return candidate[: sql.MAX_IDENTIFIER_LENGTH].rstrip("_")


def to_artifact_id(subject: str) -> str:
    words = [word for word in _NON_ALNUM_RE.split(subject.lower()) if word]
    candidate = "".join(word[0].upper() + word[1:] for word in words)
    if not candidate:
        return DEFAULT_ARTIFACT_ID
    if candidate[0].isdigit():
        candidate = f"Metric{candidate}"
    return candidate[:MAX_ARTIFACT_ID_LENGTH]


def infer_data_type(subject: str) -> DataType:
    """Best-effort keyword guess; defaults to INTEGER for most metrics."""
    lowered = subject.lower()
    for keywords, data_type in _DATA_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return data_type
    return DataType.INTEGER


def infer_component_type(subject: str) -> ComponentType:
    if "mood" in subject.lower():
        return ComponentType.EMOJI_SELECT
    return ComponentType.METRIC_INPUT
