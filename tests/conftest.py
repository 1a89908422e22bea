from __future__ import annotations

import asyncio
import contextlib
import re
import threading
from pathlib import Path

import pytest

from evolve_mcp.app import AppContext
from evolve_mcp.backup.manager import BackupManager
from evolve_mcp.config import GenerationSettings, Settings, StorageSettings
from evolve_mcp.generation.generator import ArtifactGenerator
from evolve_mcp.generation.oracle import OracleError, OracleResponse
from evolve_mcp.generation.validator import ArtifactValidator
from evolve_mcp.intents.detector import IntentDetector
from evolve_mcp.orchestration.orchestrator import ModificationOrchestrator
from evolve_mcp.registry.artifacts import ArtifactBodyStore
from evolve_mcp.registry.components import ComponentRegistry
from evolve_mcp.schema.engine import SchemaEvolutionEngine
from evolve_mcp.schema.migrations import MigrationLog
from evolve_mcp.schema.store import SqliteStore

_NAME_RE = re.compile(r"COMPONENT NAME: (\w+)")
_TYPE_RE = re.compile(r"COMPONENT TYPE: (\w+)")


class FakeOracle:
    """Returns a minimal valid component for whatever name it is asked for."""

    def __init__(self) -> None:
        self.calls: list[str] = []
        self.code: str | None = None
        self.error: str | None = None
        self.block: threading.Event | None = None

    def complete(self, system_context: str, instructions: str) -> OracleResponse:
        self.calls.append(instructions)
        if self.block is not None:
            self.block.wait(5)
        if self.error:
            raise OracleError(self.error)
        if self.code is not None:
            return OracleResponse(text=self.code, token_usage=3)
        match = _NAME_RE.search(instructions)
        name = match.group(1) if match else "Component"
        kind = _TYPE_RE.search(instructions)
        prop = "data" if kind and kind.group(1) == "chart" else "onSave"
        return OracleResponse(
            text=(
                "```jsx\n"
                f"export default function {name}({{ {prop} }}) {{\n"
                "  return null;\n"
                "}\n"
                "```"
            ),
            token_usage=42,
        )


class FakeNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.messages: list[tuple[str, str]] = []
        self.fail = fail

    def notify(self, message: str, category: str) -> None:
        if self.fail:
            raise RuntimeError("notification sink down")
        self.messages.append((message, category))


@pytest.fixture(autouse=True)
def _close_default_event_loop() -> None:
    yield
    policy = asyncio.get_event_loop_policy()
    local = getattr(policy, "_local", None)
    loop = getattr(local, "_loop", None) if local is not None else None
    if loop is not None and not loop.is_running() and not loop.is_closed():
        with contextlib.suppress(Exception):
            loop.close()
    if loop is not None:
        with contextlib.suppress(Exception):
            policy.set_event_loop(None)


@pytest.fixture
def store(tmp_path: Path) -> SqliteStore:
    sqlite_store = SqliteStore(str(tmp_path / "evolve.sqlite"))
    sqlite_store.ensure_table("metrics")
    yield sqlite_store
    sqlite_store.close()


@pytest.fixture
def migration_log(store: SqliteStore) -> MigrationLog:
    return MigrationLog(store)


@pytest.fixture
def engine(store: SqliteStore, migration_log: MigrationLog) -> SchemaEvolutionEngine:
    return SchemaEvolutionEngine(store, migration_log)


@pytest.fixture
def bodies(tmp_path: Path) -> ArtifactBodyStore:
    return ArtifactBodyStore(str(tmp_path / "components" / "custom"))


@pytest.fixture
def registry(tmp_path: Path, bodies: ArtifactBodyStore) -> ComponentRegistry:
    return ComponentRegistry(str(tmp_path / "components" / "active.json"), bodies)


@pytest.fixture
def backups(tmp_path: Path, store: SqliteStore, registry: ComponentRegistry) -> BackupManager:
    return BackupManager(store, registry, str(tmp_path / "backups"))


@pytest.fixture
def oracle() -> FakeOracle:
    return FakeOracle()


@pytest.fixture
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def generator(oracle: FakeOracle) -> ArtifactGenerator:
    return ArtifactGenerator(oracle, ArtifactValidator(20_000, ("react", "recharts")))


@pytest.fixture
def orchestrator(
    engine: SchemaEvolutionEngine,
    generator: ArtifactGenerator,
    registry: ComponentRegistry,
    backups: BackupManager,
    notifier: FakeNotifier,
) -> ModificationOrchestrator:
    return ModificationOrchestrator(
        detector=IntentDetector(),
        engine=engine,
        generator=generator,
        registry=registry,
        backups=backups,
        notifier=notifier,
        lock_timeout_seconds=1.0,
        generation_timeout_seconds=2.0,
    )


@pytest.fixture
def app_context(
    tmp_path: Path,
    store: SqliteStore,
    engine: SchemaEvolutionEngine,
    registry: ComponentRegistry,
    backups: BackupManager,
    generator: ArtifactGenerator,
    orchestrator: ModificationOrchestrator,
) -> AppContext:
    settings = Settings(
        storage=StorageSettings(
            sqlite_path=str(tmp_path / "evolve.sqlite"),
            registry_path=str(tmp_path / "components" / "active.json"),
            artifact_path=str(tmp_path / "components" / "custom"),
            backup_path=str(tmp_path / "backups"),
        ),
        generation=GenerationSettings(api_key="test-key"),
    )
    return AppContext(
        settings=settings,
        store=store,
        engine=engine,
        registry=registry,
        backups=backups,
        detector=IntentDetector(),
        generator=generator,
        orchestrator=orchestrator,
    )
