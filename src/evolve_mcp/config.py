"""Configuration management for the self-evolving backend."""

from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator

_config_logger = logging.getLogger(__name__)

_DEFAULT_ORACLE_URL = "https://api.anthropic.com"


class LoggingSettings(BaseModel):
    level: str = Field(default="INFO", description="Python logging level name")
    file: str | None = Field(default=None, description="Optional log file path")


class StorageSettings(BaseModel):
    sqlite_path: str = Field(default="./data/evolve.sqlite")
    sqlite_wal: bool = Field(default=True)
    registry_path: str = Field(default="./data/components/active.json")
    artifact_path: str = Field(default="./data/components/custom")
    backup_path: str = Field(default="./data/backups")
    backup_retention: int | None = Field(
        default=None,
        ge=1,
        description="Keep only the newest N snapshots. None keeps every snapshot.",
    )


class GenerationSettings(BaseModel):
    base_url: str = Field(default=_DEFAULT_ORACLE_URL)
    model: str = Field(default="claude-sonnet-4-20250514")
    api_key: str | None = Field(default=None)
    timeout_seconds: float = Field(default=45.0, ge=5, le=120)
    max_tokens: int = Field(default=2000, ge=100, le=16_000)
    max_artifact_chars: int = Field(default=20_000, ge=500, le=200_000)
    allowed_imports: tuple[str, ...] = Field(default=("react", "recharts"))

    @field_validator("allowed_imports")
    @classmethod
    def _normalize_imports(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(item.strip() for item in value if item.strip())


class ModificationSettings(BaseModel):
    metrics_table: str = Field(default="metrics", pattern=r"^[a-z_][a-z0-9_]*$")
    lock_timeout_seconds: float = Field(default=90.0, ge=1, le=600)
    intent_rules_path: str | None = Field(
        default=None,
        description="Optional YAML file replacing the built-in intent rule table",
    )


class NotifySettings(BaseModel):
    webhook_url: str | None = Field(default=None)
    timeout_seconds: float = Field(default=5.0, ge=0.5, le=60)


class ServerSettings(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000, ge=1024, le=65535)
    instructions: str = Field(
        default=(
            "Use these tools to extend the app when the user asks for new trackers "
            "or charts, to remove trackers, and to undo the last structural change."
        )
    )
    transport_mode: Literal["stdio", "http"] = Field(default="stdio")


class Settings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    generation: GenerationSettings = Field(default_factory=GenerationSettings)
    modification: ModificationSettings = Field(default_factory=ModificationSettings)
    notify: NotifySettings = Field(default_factory=NotifySettings)


ENV_KEYS = {
    "host": "EVOLVE_HOST",
    "port": "EVOLVE_PORT",
    "instructions": "EVOLVE_INSTRUCTIONS",
    "transport_mode": "TRANSPORT_MODE",
    "log_level": "LOG_LEVEL",
    "log_file": "LOG_FILE",
    "sqlite_path": "SQLITE_PATH",
    "registry_path": "REGISTRY_PATH",
    "artifact_path": "ARTIFACT_PATH",
    "backup_path": "BACKUP_PATH",
    "backup_retention": "BACKUP_RETENTION",
    "metrics_table": "METRICS_TABLE",
    "oracle_url": "ORACLE_BASE_URL",
    "oracle_model": "ORACLE_MODEL",
    "oracle_api_key": "ANTHROPIC_API_KEY",
    "generation_timeout": "GENERATION_TIMEOUT_SECONDS",
    "generation_max_tokens": "GENERATION_MAX_TOKENS",
    "max_artifact_chars": "MAX_ARTIFACT_CHARACTERS",
    "allowed_imports": "ARTIFACT_ALLOWED_IMPORTS",
    "lock_timeout": "MODIFICATION_LOCK_TIMEOUT_SECONDS",
    "intent_rules_path": "INTENT_RULES_PATH",
    "notify_webhook": "NOTIFY_WEBHOOK_URL",
}

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def _split_csv_preserve_case(value: str | None) -> list[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _project_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _resolve_path(path: str) -> str:
    candidate = Path(path)
    root = _project_root().resolve()
    if candidate.is_absolute():
        resolved = candidate.resolve()
    else:
        resolved = (root / candidate).resolve()
    if not resolved.is_relative_to(root):
        raise ValueError(f"Path traversal detected: '{path}' resolves outside project root")
    return str(resolved)


def _env_bool(key: str, default: bool) -> bool:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(key: str, default: int | None) -> int | None:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        _config_logger.warning(
            "Invalid integer value for %s: %r, using default %s", key, value, default
        )
        return default


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        _config_logger.warning(
            "Invalid float value for %s: %r, using default %s", key, value, default
        )
        return default


def load_settings() -> Settings:
    """Load configuration and cache the result."""

    return _load_settings_cached()


@lru_cache(maxsize=1)
def _load_settings_cached() -> Settings:
    load_dotenv(dotenv_path=_project_root() / ".env")
    log_file_env = os.getenv(ENV_KEYS["log_file"])
    rules_path_env = os.getenv(ENV_KEYS["intent_rules_path"])
    allowed_imports_env = _split_csv_preserve_case(os.getenv(ENV_KEYS["allowed_imports"]))

    settings_data: dict[str, object] = {
        "server": {
            "host": os.getenv(ENV_KEYS["host"], ServerSettings().host),
            "port": _env_int(ENV_KEYS["port"], ServerSettings().port),
            "instructions": os.getenv(ENV_KEYS["instructions"], ServerSettings().instructions),
            "transport_mode": os.getenv(
                ENV_KEYS["transport_mode"], ServerSettings().transport_mode
            ),
        },
        "logging": {
            "level": os.getenv(ENV_KEYS["log_level"], LoggingSettings().level),
            "file": _resolve_path(log_file_env) if log_file_env else None,
        },
        "storage": {
            "sqlite_path": _resolve_path(
                os.getenv(ENV_KEYS["sqlite_path"], StorageSettings().sqlite_path)
            ),
            "sqlite_wal": _env_bool("SQLITE_WAL", StorageSettings().sqlite_wal),
            "registry_path": _resolve_path(
                os.getenv(ENV_KEYS["registry_path"], StorageSettings().registry_path)
            ),
            "artifact_path": _resolve_path(
                os.getenv(ENV_KEYS["artifact_path"], StorageSettings().artifact_path)
            ),
            "backup_path": _resolve_path(
                os.getenv(ENV_KEYS["backup_path"], StorageSettings().backup_path)
            ),
            "backup_retention": _env_int(
                ENV_KEYS["backup_retention"], StorageSettings().backup_retention
            ),
        },
        "generation": {
            "base_url": os.getenv(ENV_KEYS["oracle_url"], GenerationSettings().base_url),
            "model": os.getenv(ENV_KEYS["oracle_model"], GenerationSettings().model),
            "api_key": os.getenv(ENV_KEYS["oracle_api_key"]) or None,
            "timeout_seconds": _env_float(
                ENV_KEYS["generation_timeout"], GenerationSettings().timeout_seconds
            ),
            "max_tokens": _env_int(
                ENV_KEYS["generation_max_tokens"], GenerationSettings().max_tokens
            ),
            "max_artifact_chars": _env_int(
                ENV_KEYS["max_artifact_chars"], GenerationSettings().max_artifact_chars
            ),
            "allowed_imports": tuple(allowed_imports_env)
            or GenerationSettings().allowed_imports,
        },
        "modification": {
            "metrics_table": os.getenv(
                ENV_KEYS["metrics_table"], ModificationSettings().metrics_table
            ),
            "lock_timeout_seconds": _env_float(
                ENV_KEYS["lock_timeout"], ModificationSettings().lock_timeout_seconds
            ),
            "intent_rules_path": _resolve_path(rules_path_env) if rules_path_env else None,
        },
        "notify": {
            "webhook_url": os.getenv(ENV_KEYS["notify_webhook"], "").strip() or None,
            "timeout_seconds": _env_float(
                "NOTIFY_TIMEOUT_SECONDS", NotifySettings().timeout_seconds
            ),
        },
    }

    try:
        settings = Settings.model_validate(settings_data)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid configuration: {exc}") from exc

    Path(settings.storage.artifact_path).mkdir(parents=True, exist_ok=True)
    Path(settings.storage.backup_path).mkdir(parents=True, exist_ok=True)
    Path(settings.storage.sqlite_path).parent.mkdir(parents=True, exist_ok=True)
    Path(settings.storage.registry_path).parent.mkdir(parents=True, exist_ok=True)

    return settings
