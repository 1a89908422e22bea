"""Preset component templates and the UI theme sent to the generator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from evolve_mcp.domain.models import ComponentType

THEME_COLORS: dict[str, str] = {
    "background": "#000000",
    "card": "rgba(26, 47, 26, 0.5)",
    "primary": "#4A9E4A",
    "gold": "#D4AF37",
    "text": "#F5DEB3",
    "accent": "#9ACD32",
    "sage": "#8F9779",
    "red": "#FF6B6B",
    "amber": "#FFB84D",
}


@dataclass(frozen=True)
class ComponentTemplate:
    name: str
    kind: ComponentType
    description: str
    options: dict[str, Any] = field(default_factory=dict)


TEMPLATES: dict[str, ComponentTemplate] = {
    "mood_tracker": ComponentTemplate(
        name="mood_tracker",
        kind=ComponentType.EMOJI_SELECT,
        description="Mood tracking with 5 emoji options",
        options={
            "emojis": ["😊", "🙂", "😐", "😕", "😢"],
            "values": [5, 4, 3, 2, 1],
            "labels": ["Great", "Good", "Okay", "Bad", "Terrible"],
        },
    ),
    "stress_level": ComponentTemplate(
        name="stress_level",
        kind=ComponentType.METRIC_INPUT,
        description="Stress level tracker (1-10 scale)",
        options={"min": 1, "max": 10, "step": 1, "label": "Stress Level"},
    ),
    "focus_score": ComponentTemplate(
        name="focus_score",
        kind=ComponentType.METRIC_INPUT,
        description="Focus/concentration score (1-10 scale)",
        options={"min": 1, "max": 10, "step": 1, "label": "Focus Score"},
    ),
    "water_intake": ComponentTemplate(
        name="water_intake",
        kind=ComponentType.METRIC_INPUT,
        description="Water intake tracker in ounces",
        options={"min": 0, "max": 200, "step": 8, "label": "Water (oz)", "icon": "💧"},
    ),
}

_TEMPLATE_KEYWORDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("mood",), "mood_tracker"),
    (("stress",), "stress_level"),
    (("focus", "concentration"), "focus_score"),
    (("water",), "water_intake"),
)


def get_template(name: str | None) -> ComponentTemplate | None:
    if not name:
        return None
    return TEMPLATES.get(name)


def suggest_template(subject: str) -> ComponentTemplate | None:
    lowered = subject.lower()
    for keywords, template_name in _TEMPLATE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return TEMPLATES[template_name]
    return None
