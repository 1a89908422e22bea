from __future__ import annotations

import pytest

from evolve_mcp.domain.models import ComponentType, DataType
from evolve_mcp.intents.identifiers import (
    infer_component_type,
    infer_data_type,
    to_artifact_id,
    to_field_id,
)
from evolve_mcp.schema.sql import identifier_error


@pytest.mark.parametrize(
    ("subject", "expected"),
    [
        ("mood", "mood"),
        ("Water Intake", "water_intake"),
        ("  sleep--quality!! ", "sleep_quality"),
        ("123 steps", "_123_steps"),
        ("select", "select_value"),
        ("sqlite stats", "f_sqlite_stats"),
        ("!!!", "metric"),
        ("", "metric"),
    ],
)
def test_to_field_id(subject: str, expected: str) -> None:
    assert to_field_id(subject) == expected


@pytest.mark.parametrize(
    "subject",
    ["Hydration (ml)", "ÜBER focus", "order", "a" * 80, "2024 goals", "DROP TABLE metrics;--"],
)
def test_field_ids_always_pass_schema_validation(subject: str) -> None:
    assert identifier_error(to_field_id(subject)) is None


@pytest.mark.parametrize(
    ("subject", "expected"),
    [
        ("mood tracking", "MoodTracking"),
        ("water", "Water"),
        ("sleep quality chart", "SleepQualityChart"),
        ("5k runs", "Metric5kRuns"),
        ("", "Component"),
    ],
)
def test_to_artifact_id(subject: str, expected: str) -> None:
    assert to_artifact_id(subject) == expected


def test_artifact_id_is_bounded() -> None:
    assert len(to_artifact_id("word " * 40)) == 80


@pytest.mark.parametrize(
    ("subject", "expected"),
    [
        ("mood", DataType.INTEGER),
        ("stress level", DataType.INTEGER),
        ("daily notes", DataType.TEXT),
        ("body weight", DataType.REAL),
        ("workout done", DataType.BOOLEAN),
        ("steps", DataType.INTEGER),
    ],
)
def test_infer_data_type(subject: str, expected: DataType) -> None:
    assert infer_data_type(subject) is expected


def test_infer_component_type() -> None:
    assert infer_component_type("Mood") is ComponentType.EMOJI_SELECT
    assert infer_component_type("water") is ComponentType.METRIC_INPUT
