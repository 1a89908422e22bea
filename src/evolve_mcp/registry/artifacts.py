"""Durable storage for generated artifact bodies, keyed by component name."""

from __future__ import annotations

import os
import re
from pathlib import Path

from evolve_mcp.domain.errors import StoreUnavailableError
from evolve_mcp.utils.hashing import sha256_text

ARTIFACT_NAME_RE = re.compile(r"^[A-Z][A-Za-z0-9]{0,79}$")
ARTIFACT_SUFFIX = ".jsx"


class ArtifactBodyStore:
    def __init__(self, base_path: str) -> None:
        self._base = Path(base_path)
        self._base.mkdir(parents=True, exist_ok=True)

    @property
    def base(self) -> Path:
        return self._base

    def path_for(self, name: str) -> Path:
        if not ARTIFACT_NAME_RE.match(name):
            raise ValueError(f"Invalid artifact name: {name!r}")
        path = (self._base / f"{name}{ARTIFACT_SUFFIX}").resolve()
        # Names are already restricted; this guards against a tampered base.
        if not path.is_relative_to(self._base.resolve()):
            raise ValueError(f"Path is outside base directory: {name}")
        return path

    def write(self, name: str, code: str) -> tuple[str, str]:
        """Overwrite the body for ``name``; returns ``(location, checksum)``."""
        path = self.path_for(name)
        tmp_path = path.with_name(f".{path.name}.tmp")
        try:
            tmp_path.write_text(code, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to write artifact {name}: {exc}") from exc
        return str(path), sha256_text(code)

    def read(self, name: str) -> str | None:
        path = self.path_for(name)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to read artifact {name}: {exc}") from exc

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise StoreUnavailableError(f"Failed to delete artifact {name}: {exc}") from exc
        return True

    def list_names(self) -> list[str]:
        return sorted(
            path.stem
            for path in self._base.glob(f"*{ARTIFACT_SUFFIX}")
            if ARTIFACT_NAME_RE.match(path.stem)
        )
