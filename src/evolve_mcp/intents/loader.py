"""Loader for a custom intent rule table in YAML."""

from __future__ import annotations

from pathlib import Path

import yaml

from evolve_mcp.intents.rules import IntentRuleSet


def load_intent_rules(path: str) -> IntentRuleSet:
    rules_path = Path(path)
    if not rules_path.exists():
        raise FileNotFoundError(f"Intent rules file not found: {rules_path}")
    with rules_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return IntentRuleSet.from_yaml(data)
