from __future__ import annotations

import pytest

from evolve_mcp import config


@pytest.fixture
def fresh_settings(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(config, "load_dotenv", lambda **_: None)
    for key in config.ENV_KEYS.values():
        monkeypatch.delenv(key, raising=False)
    config._load_settings_cached.cache_clear()
    yield
    config._load_settings_cached.cache_clear()


def test_split_csv_preserve_case() -> None:
    assert config._split_csv_preserve_case(" react, Recharts ,,d3 ") == ["react", "Recharts", "d3"]
    assert config._split_csv_preserve_case(None) == []


def test_resolve_path_relative_inside_project() -> None:
    root = config._project_root().resolve()
    assert config._resolve_path("./data/evolve.sqlite") == str(root / "data" / "evolve.sqlite")


def test_resolve_path_outside_project_rejected() -> None:
    with pytest.raises(ValueError, match="Path traversal detected"):
        config._resolve_path("/tmp/evolve.sqlite")
    with pytest.raises(ValueError, match="Path traversal detected"):
        config._resolve_path("../../outside.sqlite")


@pytest.mark.parametrize(("raw", "expected"), [("1", True), ("YES", True), ("off", False)])
def test_env_bool(monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("TEST_BOOL_VALUE", raw)
    assert config._env_bool("TEST_BOOL_VALUE", not expected) is expected


def test_env_int_invalid_value_returns_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_INT_INVALID", "lots")
    assert config._env_int("TEST_INT_INVALID", 42) == 42
    monkeypatch.setenv("TEST_INT_INVALID", "")
    assert config._env_int("TEST_INT_INVALID", None) is None


def test_env_float_invalid_value_returns_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEST_FLOAT_INVALID", "soon")
    assert config._env_float("TEST_FLOAT_INVALID", 2.5) == 2.5


def test_defaults(fresh_settings) -> None:
    settings = config.load_settings()

    assert settings.server.transport_mode == "stdio"
    assert settings.modification.metrics_table == "metrics"
    assert settings.generation.allowed_imports == ("react", "recharts")
    assert settings.storage.backup_retention is None
    assert settings.notify.webhook_url is None
    assert settings.storage.sqlite_path.endswith("evolve.sqlite")


def test_environment_overrides(fresh_settings, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRANSPORT_MODE", "http")
    monkeypatch.setenv("METRICS_TABLE", "daily_log")
    monkeypatch.setenv("ARTIFACT_ALLOWED_IMPORTS", "react, recharts, date-fns")
    monkeypatch.setenv("BACKUP_RETENTION", "5")
    monkeypatch.setenv("NOTIFY_WEBHOOK_URL", " https://hooks.example.com/evolve ")

    settings = config.load_settings()

    assert settings.server.transport_mode == "http"
    assert settings.modification.metrics_table == "daily_log"
    assert settings.generation.allowed_imports == ("react", "recharts", "date-fns")
    assert settings.storage.backup_retention == 5
    assert settings.notify.webhook_url == "https://hooks.example.com/evolve"


def test_settings_are_cached(fresh_settings) -> None:
    assert config.load_settings() is config.load_settings()


@pytest.mark.parametrize(
    ("key", "value"),
    [
        ("METRICS_TABLE", "Bad-Name"),
        ("MODIFICATION_LOCK_TIMEOUT_SECONDS", "0"),
        ("TRANSPORT_MODE", "carrier-pigeon"),
    ],
)
def test_invalid_configuration_raises_runtime_error(
    fresh_settings, monkeypatch: pytest.MonkeyPatch, key: str, value: str
) -> None:
    monkeypatch.setenv(key, value)

    with pytest.raises(RuntimeError, match="Invalid configuration"):
        config.load_settings()
