"""Pattern-based detection of structural modification requests."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from evolve_mcp.domain.models import ModificationAction, ModificationIntent
from evolve_mcp.intents.rules import DEFAULT_RULES, IntentRule, IntentRuleSet

logger = logging.getLogger(__name__)

_MAX_RULE_REGEX_LENGTH = 256
_MAX_MESSAGE_LENGTH = 2000
_BACKREFERENCE_PATTERN = re.compile(r"\\[1-9]")
_NESTED_QUANTIFIER_PATTERN = re.compile(
    r"\((?:[^()\\]|\\.)*[+*](?:[^()\\]|\\.)*\)\s*(?:[+*]|\{\d+(?:,\d*)?\})"
)
_LOOKBEHIND_TOKENS = ("(?<=", "(?<!")
_SUBJECT_TRIM = " \t\r\n.,;:!?\"'`"


@dataclass(frozen=True)
class _CompiledRule:
    rule: IntentRule
    regex: re.Pattern[str]


class IntentDetector:
    """First-match-wins detector over an explicitly prioritised rule table.

    ``detect`` is pure: it never raises and never touches storage. Identifier
    derivation is left to the caller.
    """

    def __init__(self, rules: IntentRuleSet | None = None) -> None:
        self._rules = self._compile_rules(rules or DEFAULT_RULES)

    @property
    def rule_names(self) -> list[str]:
        return [compiled.rule.name for compiled in self._rules]

    @classmethod
    def _compile_rules(cls, rule_set: IntentRuleSet) -> list[_CompiledRule]:
        compiled: list[_CompiledRule] = []
        for rule in rule_set.ordered():
            cls._validate_pattern_safety(rule.pattern, rule.name)
            try:
                regex = re.compile(rule.pattern, re.IGNORECASE)
            except re.error as exc:
                raise ValueError(
                    f"Invalid regex in intent rule '{rule.name}': {exc}"
                ) from exc
            if rule.action is not ModificationAction.UNDO and "subject" not in regex.groupindex:
                raise ValueError(
                    f"Intent rule '{rule.name}' must capture a named 'subject' group"
                )
            compiled.append(_CompiledRule(rule=rule, regex=regex))
        return compiled

    @staticmethod
    def _validate_pattern_safety(pattern: str, label: str) -> None:
        if len(pattern) > _MAX_RULE_REGEX_LENGTH:
            raise ValueError(
                f"Unsafe regex in intent rule '{label}': exceeds "
                f"{_MAX_RULE_REGEX_LENGTH} characters"
            )
        if any(token in pattern for token in _LOOKBEHIND_TOKENS):
            raise ValueError(f"Unsafe regex in intent rule '{label}': look-behind is not allowed")
        if _BACKREFERENCE_PATTERN.search(pattern):
            raise ValueError(
                f"Unsafe regex in intent rule '{label}': backreferences are not allowed"
            )
        if _NESTED_QUANTIFIER_PATTERN.search(pattern):
            raise ValueError(
                f"Unsafe regex in intent rule '{label}': nested quantifiers are not allowed"
            )

    def detect(self, text: str) -> ModificationIntent | None:
        if not isinstance(text, str):
            return None
        message = text.strip()[:_MAX_MESSAGE_LENGTH]
        if not message:
            return None

        for compiled in self._rules:
            match = compiled.regex.search(message)
            if match is None:
                continue
            rule = compiled.rule
            if rule.action is ModificationAction.UNDO:
                intent = ModificationIntent(
                    action=rule.action, raw_subject="", rule=rule.name, raw_message=text
                )
            else:
                subject = _clean(match.group("subject"))
                if not subject:
                    continue
                label = _clean(match.groupdict().get("label") or "") or None
                intent = ModificationIntent(
                    action=rule.action,
                    raw_subject=subject,
                    label=label,
                    rule=rule.name,
                    raw_message=text,
                )
            logger.info(
                "Modification detected: %s via rule %s (subject=%r)",
                intent.action.value,
                rule.name,
                intent.raw_subject,
            )
            return intent
        return None


def _clean(value: str) -> str:
    return " ".join(value.split()).strip(_SUBJECT_TRIM)
