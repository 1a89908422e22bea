"""Intent rule models and the built-in rule table."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from evolve_mcp.domain.models import ModificationAction


class IntentRule(BaseModel):
    name: str = Field(min_length=1)
    action: ModificationAction
    pattern: str = Field(min_length=1)
    priority: int = Field(ge=0, description="Lower values are tried first")
    description: str = Field(default="")


class IntentRuleSet(BaseModel):
    version: int = Field(default=1)
    rules: list[IntentRule] = Field(default_factory=list)

    @field_validator("rules", mode="before")
    @classmethod
    def _validate_rules(cls, v: Any) -> list:
        if v is None:
            return []
        return v

    @model_validator(mode="after")
    def _check_unique(self) -> IntentRuleSet:
        names = [rule.name for rule in self.rules]
        if len(names) != len(set(names)):
            raise ValueError("Intent rule names must be unique")
        priorities = [rule.priority for rule in self.rules]
        if len(priorities) != len(set(priorities)):
            # Ties would leave the winner to list position.
            raise ValueError("Intent rule priorities must be unique")
        return self

    def ordered(self) -> list[IntentRule]:
        return sorted(self.rules, key=lambda rule: rule.priority)

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> IntentRuleSet:
        return cls.model_validate(data)


# Most specific first: chart requests before removals (both may mention
# "tracking"), removals before additions ("i don't track coffee" contains
# "track coffee"), the generic remove after the tracker-worded removals, and
# undo last.
DEFAULT_RULES = IntentRuleSet(
    rules=[
        IntentRule(
            name="add_chart",
            action=ModificationAction.ADD_ARTIFACT,
            priority=10,
            pattern=(
                r"\b(?:add|create|make|show\s+me)\s+(?:an?\s+)?chart\s+"
                r"(?:for|of|showing)\s+(?:my\s+)?(?P<subject>.+)"
            ),
            description="add a chart for sleep quality",
        ),
        IntentRule(
            name="remove_tracker",
            action=ModificationAction.REMOVE_METRIC,
            priority=20,
            pattern=(
                r"\b(?:remove|delete)\s+(?:the\s+|my\s+)?(?P<subject>.+?)\s+"
                r"(?:tracker|tracking|metric)\b"
            ),
            description="remove the steps tracker",
        ),
        IntentRule(
            name="stop_tracking",
            action=ModificationAction.REMOVE_METRIC,
            priority=30,
            pattern=r"\bstop\s+tracking\s+(?:my\s+)?(?P<subject>.+)",
            description="stop tracking caffeine",
        ),
        IntentRule(
            name="no_longer_used",
            action=ModificationAction.REMOVE_METRIC,
            priority=40,
            pattern=r"\bi\s+(?:don'?t|do\s+not)\s+(?:use|need|track)\s+(?:my\s+)?(?P<subject>.+)",
            description="i don't need water anymore",
        ),
        IntentRule(
            name="remove_generic",
            action=ModificationAction.REMOVE_METRIC,
            priority=50,
            pattern=r"\b(?:remove|delete)\s+(?:the\s+|my\s+)?(?P<subject>.+)",
            description="remove water intake",
        ),
        IntentRule(
            name="add_tracker",
            action=ModificationAction.ADD_METRIC,
            priority=60,
            pattern=(
                r"\badd\s+(?:an?\s+)?(?P<label>(?P<subject>.+?)\s+(?:tracker|tracking))\b"
            ),
            description="add mood tracking",
        ),
        IntentRule(
            name="track_request",
            action=ModificationAction.ADD_METRIC,
            priority=70,
            pattern=r"\b(?:can|could)\s+you\s+track\s+(?:my\s+)?(?P<subject>.+)",
            description="could you track my sleep",
        ),
        IntentRule(
            name="track",
            action=ModificationAction.ADD_METRIC,
            priority=80,
            pattern=r"\btrack\s+(?:my\s+)?(?P<subject>.+)",
            description="track my steps",
        ),
        IntentRule(
            name="undo_last",
            action=ModificationAction.UNDO,
            priority=90,
            pattern=r"\bundo\s+(?:that|it|the\s+last\s+change|(?:the\s+)?last\s+modification)\b",
            description="undo that",
        ),
        IntentRule(
            name="rollback",
            action=ModificationAction.UNDO,
            priority=100,
            pattern=r"\b(?:rollback|roll\s+back|revert|go\s+back)\b",
            description="revert",
        ),
    ]
)
