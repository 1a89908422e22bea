"""JSON serialization utilities."""

from __future__ import annotations

import dataclasses
import datetime
import enum
import json
import os
from pathlib import Path


def json_default(obj: object) -> object:
    """JSON serializer for objects not serializable by default json code."""
    if isinstance(obj, (datetime.date, datetime.datetime)):
        return obj.isoformat()
    if isinstance(obj, enum.Enum):
        return obj.value
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    return str(obj)


def dumps(payload: object) -> str:
    return json.dumps(payload, ensure_ascii=True, indent=2, default=json_default)


def write_json_atomic(path: Path, payload: object) -> None:
    """Write JSON next to ``path`` and rename it into place.

    Readers never observe a half-written document.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(f".{path.name}.tmp")
    with tmp_path.open("w", encoding="utf-8") as handle:
        handle.write(dumps(payload))
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(tmp_path, path)
