"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from evolve_mcp.backup.manager import BackupManager
from evolve_mcp.config import Settings, load_settings
from evolve_mcp.generation.generator import ArtifactGenerator
from evolve_mcp.generation.oracle import AnthropicOracle
from evolve_mcp.generation.validator import ArtifactValidator
from evolve_mcp.intents.detector import IntentDetector
from evolve_mcp.intents.loader import load_intent_rules
from evolve_mcp.intents.rules import DEFAULT_RULES
from evolve_mcp.notify import LoggingNotifier, Notifier, WebhookNotifier
from evolve_mcp.orchestration.orchestrator import ModificationOrchestrator
from evolve_mcp.registry.artifacts import ArtifactBodyStore
from evolve_mcp.registry.components import ComponentRegistry
from evolve_mcp.schema.engine import SchemaEvolutionEngine
from evolve_mcp.schema.migrations import MigrationLog
from evolve_mcp.schema.store import SqliteStore


@dataclass
class AppContext:
    """Application-wide dependency container.

    Initialized once at startup and cached for the lifetime of the process.
    """

    settings: Settings
    store: SqliteStore
    engine: SchemaEvolutionEngine
    registry: ComponentRegistry
    backups: BackupManager
    detector: IntentDetector
    generator: ArtifactGenerator
    orchestrator: ModificationOrchestrator


def build_app_context(settings: Settings) -> AppContext:
    """Wire every service from ``settings``."""
    store = SqliteStore(settings.storage.sqlite_path, wal=settings.storage.sqlite_wal)
    store.ensure_table(settings.modification.metrics_table)
    engine = SchemaEvolutionEngine(store, MigrationLog(store))

    bodies = ArtifactBodyStore(settings.storage.artifact_path)
    registry = ComponentRegistry(settings.storage.registry_path, bodies)
    backups = BackupManager(store, registry, settings.storage.backup_path)

    rules_path = settings.modification.intent_rules_path
    detector = IntentDetector(load_intent_rules(rules_path) if rules_path else DEFAULT_RULES)

    generation = settings.generation
    oracle = AnthropicOracle(
        base_url=generation.base_url,
        model=generation.model,
        api_key=generation.api_key,
        timeout_seconds=generation.timeout_seconds,
        max_tokens=generation.max_tokens,
    )
    validator = ArtifactValidator(generation.max_artifact_chars, generation.allowed_imports)
    generator = ArtifactGenerator(oracle, validator)

    notifier: Notifier
    if settings.notify.webhook_url:
        notifier = WebhookNotifier(
            settings.notify.webhook_url, timeout_seconds=settings.notify.timeout_seconds
        )
    else:
        notifier = LoggingNotifier()

    orchestrator = ModificationOrchestrator(
        detector=detector,
        engine=engine,
        generator=generator,
        registry=registry,
        backups=backups,
        notifier=notifier,
        metrics_table=settings.modification.metrics_table,
        lock_timeout_seconds=settings.modification.lock_timeout_seconds,
        # Above the oracle HTTP timeout so the oracle reports its own timeout first.
        generation_timeout_seconds=generation.timeout_seconds + 5.0,
        backup_retention=settings.storage.backup_retention,
    )

    return AppContext(
        settings=settings,
        store=store,
        engine=engine,
        registry=registry,
        backups=backups,
        detector=detector,
        generator=generator,
        orchestrator=orchestrator,
    )


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the cached application context."""
    return build_app_context(load_settings())
