"""Artifact generation: prompt the oracle, clean the reply, run the safety gate."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from evolve_mcp.domain.models import ArtifactRequest, ComponentType
from evolve_mcp.generation.oracle import OracleError, TextOracle
from evolve_mcp.generation.templates import THEME_COLORS
from evolve_mcp.generation.validator import PROP_BY_KIND, ArtifactValidator
from evolve_mcp.utils.time import utc_now_iso

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"^```[a-zA-Z]*[ \t]*\r?\n?|^```[ \t]*$", re.MULTILINE)


class GenerationOutcome(str, Enum):
    OK = "ok"
    GENERATION_FAILED = "generation_failed"
    VALIDATION_FAILED = "validation_failed"


@dataclass
class GenerationResult:
    outcome: GenerationOutcome
    code: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    rule: str | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is GenerationOutcome.OK


class ArtifactGenerator:
    def __init__(self, oracle: TextOracle, validator: ArtifactValidator) -> None:
        self._oracle = oracle
        self._validator = validator

    def generate(self, request: ArtifactRequest) -> GenerationResult:
        logger.info("Generating component %s (%s)", request.name, request.kind.value)
        try:
            response = self._oracle.complete(
                system_context=build_system_context(),
                instructions=build_instructions(request),
            )
        except OracleError as exc:
            logger.warning("Component generation failed for %s: %s", request.name, exc)
            return GenerationResult(GenerationOutcome.GENERATION_FAILED, error=str(exc))

        code = strip_code_fences(response.text)
        report = self._validator.validate(code, request.name, request.kind)
        if not report.valid:
            logger.warning(
                "Generated component %s rejected by rule %s: %s",
                request.name,
                report.rule,
                report.detail,
            )
            return GenerationResult(
                GenerationOutcome.VALIDATION_FAILED, error=report.detail, rule=report.rule
            )

        logger.info("Generated component %s (%d chars)", request.name, len(code))
        return GenerationResult(
            GenerationOutcome.OK,
            code=code,
            metadata={
                "name": request.name,
                "type": request.kind.value,
                "description": request.description,
                "generated_at": utc_now_iso(),
                "tokens_used": response.token_usage,
            },
        )


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text.strip()).strip()


def build_system_context() -> str:
    colors = "\n".join(f"- {key.title()}: {value}" for key, value in THEME_COLORS.items())
    return (
        "You generate self-contained React components for a personal metrics app.\n"
        "Dark woodsy theme, direct minimal UI, mobile-first layout.\n\n"
        f"THEME COLORS:\n{colors}"
    )


def build_instructions(request: ArtifactRequest) -> str:
    props = "{ " + PROP_BY_KIND.get(request.kind, "onSave") + " }"
    callback = (
        "Render the `data` prop (an array of daily metric rows) with recharts."
        if request.kind is ComponentType.CHART
        else "Call onSave(fieldName, value) when the user records a value."
    )
    return (
        f"Generate a React component for: {request.description}\n\n"
        f"COMPONENT TYPE: {request.kind.value}\n"
        f"COMPONENT NAME: {request.name}\n"
        f"OPTIONS: {json.dumps(request.options, ensure_ascii=False)}\n\n"
        "REQUIREMENTS:\n"
        "1. Functional component using React hooks (useState, useEffect)\n"
        "2. Inline styles using the theme colors, no external CSS\n"
        f"3. {callback}\n"
        "4. Input validation where appropriate\n"
        "5. Touch targets at least 44px\n"
        "6. No network access, no eval, no dynamic imports\n\n"
        "FORMAT:\n"
        f"export default function {request.name}({props}) {{ ... }}\n\n"
        "Return ONLY the component code. No explanation, no markdown fences."
    )
