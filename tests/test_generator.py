from __future__ import annotations

from unittest.mock import MagicMock

from evolve_mcp.domain.models import ArtifactRequest, ComponentType
from evolve_mcp.generation.generator import (
    ArtifactGenerator,
    GenerationOutcome,
    build_instructions,
    strip_code_fences,
)
from evolve_mcp.generation.oracle import OracleError, OracleResponse
from evolve_mcp.generation.validator import (
    RULE_COMPONENT_PROPS,
    RULE_DYNAMIC_EVAL,
    ArtifactValidator,
)


def _request(kind: ComponentType = ComponentType.METRIC_INPUT) -> ArtifactRequest:
    return ArtifactRequest(kind=kind, name="WaterIntake", description="water intake tracker")


def _validator() -> ArtifactValidator:
    return ArtifactValidator(20_000, ("react", "recharts"))


def test_generate_returns_clean_validated_code(oracle) -> None:
    result = ArtifactGenerator(oracle, _validator()).generate(_request())

    assert result.ok
    assert result.code.startswith("export default function WaterIntake(")
    assert "```" not in result.code
    assert result.metadata["name"] == "WaterIntake"
    assert result.metadata["type"] == "metric_input"
    assert result.metadata["tokens_used"] == 42


def test_generate_reports_oracle_failure() -> None:
    failing = MagicMock()
    failing.complete.side_effect = OracleError("rate limited")

    result = ArtifactGenerator(failing, _validator()).generate(_request())

    assert result.outcome is GenerationOutcome.GENERATION_FAILED
    assert result.code is None
    assert "rate limited" in result.error


def test_generate_rejects_unsafe_code() -> None:
    unsafe = MagicMock()
    unsafe.complete.return_value = OracleResponse(
        text="export default function WaterIntake() { eval('x'); }"
    )

    result = ArtifactGenerator(unsafe, _validator()).generate(_request())

    assert result.outcome is GenerationOutcome.VALIDATION_FAILED
    assert result.rule == RULE_DYNAMIC_EVAL
    assert result.code is None


def test_strip_code_fences() -> None:
    assert strip_code_fences("```jsx\nexport default function A() {}\n```") == (
        "export default function A() {}"
    )
    assert strip_code_fences("export default function A() {}") == "export default function A() {}"


def test_instructions_carry_name_kind_and_props() -> None:
    chart = build_instructions(
        ArtifactRequest(
            kind=ComponentType.CHART,
            name="SleepQualityChart",
            description="Chart showing sleep quality",
            options={"chartDescription": "sleep quality"},
        )
    )
    assert "COMPONENT NAME: SleepQualityChart" in chart
    assert "export default function SleepQualityChart({ data })" in chart
    assert '"chartDescription": "sleep quality"' in chart

    tracker = build_instructions(_request())
    assert "export default function WaterIntake({ onSave })" in tracker


def test_generate_rejects_component_with_wrong_props_for_kind() -> None:
    tracker_shaped = MagicMock()
    tracker_shaped.complete.return_value = OracleResponse(
        text="export default function WaterIntake({ onSave }) { return null; }"
    )

    result = ArtifactGenerator(tracker_shaped, _validator()).generate(
        _request(ComponentType.CHART)
    )

    assert result.outcome is GenerationOutcome.VALIDATION_FAILED
    assert result.rule == RULE_COMPONENT_PROPS


def test_generate_chart_from_fake_oracle_takes_data(oracle) -> None:
    result = ArtifactGenerator(oracle, _validator()).generate(_request(ComponentType.CHART))

    assert result.ok
    assert result.code.startswith("export default function WaterIntake({ data })")
