from __future__ import annotations

import pytest

from evolve_mcp.domain.models import ComponentType
from evolve_mcp.generation import validator as rules
from evolve_mcp.generation.validator import ArtifactValidator

VALID = """export default function MoodTracking({ onSave }) {
  const [value, setValue] = React.useState(3);
  return <button onClick={() => onSave('mood', value)}>Save</button>;
}
"""


def _component(params: str) -> str:
    return f"export default function MoodTracking({params}) {{ return null; }}"


@pytest.fixture
def gate() -> ArtifactValidator:
    return ArtifactValidator(max_chars=2_000, allowed_imports=("react", "recharts"))


def test_accepts_valid_component(gate: ArtifactValidator) -> None:
    report = gate.validate(VALID, "MoodTracking")
    assert report.valid
    assert report.rule is None


def test_accepts_allowed_leading_imports(gate: ArtifactValidator) -> None:
    code = "import React, { useState } from 'react';\nimport { LineChart } from \"recharts\";\n" + VALID
    assert gate.validate(code, "MoodTracking").valid


@pytest.mark.parametrize(
    ("code", "rule"),
    [
        ("   ", rules.RULE_EMPTY),
        ("x" * 2_001, rules.RULE_SIZE),
        ("function MoodTracking() {}", rules.RULE_EXPORT_SHAPE),
        ("export default function OtherName() {}", rules.RULE_EXPORT_SHAPE),
        ("const a = 1;\n" + VALID, rules.RULE_EXPORT_SHAPE),
        (VALID + "eval('1 + 1');", rules.RULE_DYNAMIC_EVAL),
        (VALID + "const f = new Function('return 1');", rules.RULE_DYNAMIC_EVAL),
        (VALID + "setTimeout('alert(1)', 10);", rules.RULE_DYNAMIC_EVAL),
        (VALID + "import('./other');", rules.RULE_DYNAMIC_EVAL),
        (VALID + "const x = (0, eval)('alert(1)');", rules.RULE_DYNAMIC_EVAL),
        (VALID + "const run = eval;\nrun('alert(1)');", rules.RULE_DYNAMIC_EVAL),
        (VALID + "window['eval']('x');", rules.RULE_DYNAMIC_EVAL),
        (VALID + "[].constructor.constructor('alert(1)')();", rules.RULE_DYNAMIC_EVAL),
        (VALID + "(() => {}).constructor('return 1')();", rules.RULE_DYNAMIC_EVAL),
        (VALID + "const C = {}[\"constructor\"];", rules.RULE_DYNAMIC_EVAL),
        (VALID + "const F = Function;", rules.RULE_DYNAMIC_EVAL),
        (VALID + "fetch('https://example.com');", rules.RULE_FORBIDDEN_API),
        (VALID + "const fs = require('fs');", rules.RULE_FORBIDDEN_API),
        (VALID + "new WebSocket('ws://x');", rules.RULE_FORBIDDEN_API),
        (VALID + "<div dangerouslySetInnerHTML={{ __html: x }} />", rules.RULE_UNSAFE_DOM),
        ("import axios from 'axios';\n" + VALID, rules.RULE_IMPORT_ALLOWLIST),
        ('import {readFileSync}from"fs";\n' + VALID, rules.RULE_IMPORT_ALLOWLIST),
        ("import'child-module';\n" + VALID, rules.RULE_IMPORT_ALLOWLIST),
        (VALID + "export * from 'fs';", rules.RULE_IMPORT_ALLOWLIST),
        (VALID + 'export { readFileSync }from"fs";', rules.RULE_IMPORT_ALLOWLIST),
    ],
)
def test_rejects_unsafe_code(gate: ArtifactValidator, code: str, rule: str) -> None:
    report = gate.validate(code, "MoodTracking")
    assert not report.valid
    assert report.rule == rule
    assert report.detail


def test_accepts_compact_allowed_imports(gate: ArtifactValidator) -> None:
    code = (
        'import React,{useState}from"react";\n'
        'import {\n  LineChart,\n}from "recharts";\n' + VALID
    )
    assert gate.validate(code, "MoodTracking").valid


def test_reexport_of_allowed_module_is_accepted(gate: ArtifactValidator) -> None:
    assert gate.validate(VALID + "export { useState } from 'react';", "MoodTracking").valid


@pytest.mark.parametrize(
    ("code", "kind"),
    [
        (VALID, ComponentType.EMOJI_SELECT),
        (VALID, ComponentType.METRIC_INPUT),
        (VALID, None),
        (_component("{ data = [], height: h = 200 }"), ComponentType.CHART),
        (_component("{ onSave = () => {}, initial }"), ComponentType.METRIC_INPUT),
    ],
)
def test_accepts_props_for_kind(
    gate: ArtifactValidator, code: str, kind: ComponentType | None
) -> None:
    assert gate.validate(code, "MoodTracking", kind).valid


@pytest.mark.parametrize(
    ("code", "kind"),
    [
        (VALID, ComponentType.CHART),
        (_component("{ data }"), ComponentType.EMOJI_SELECT),
        (_component("props"), ComponentType.METRIC_INPUT),
        (_component(""), ComponentType.CHART),
        (_component("{ onSaveLater }"), ComponentType.EMOJI_SELECT),
    ],
)
def test_rejects_props_that_do_not_match_kind(
    gate: ArtifactValidator, code: str, kind: ComponentType
) -> None:
    report = gate.validate(code, "MoodTracking", kind)
    assert not report.valid
    assert report.rule == rules.RULE_COMPONENT_PROPS
    assert kind.value in report.detail


def test_word_containing_eval_is_not_flagged(gate: ArtifactValidator) -> None:
    code = VALID + "const medievalEvaluation = 'Medieval';"
    assert gate.validate(code, "MoodTracking").valid
