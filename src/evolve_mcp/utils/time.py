"""Time helpers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat(timespec="microseconds")


def snapshot_stamp() -> str:
    """Filesystem-safe, lexically sortable timestamp for snapshot ids."""
    return utc_now().strftime("%Y%m%dT%H%M%S%fZ")
