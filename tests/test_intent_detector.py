from __future__ import annotations

import pytest

from evolve_mcp.domain.models import ModificationAction
from evolve_mcp.intents.detector import IntentDetector
from evolve_mcp.intents.rules import DEFAULT_RULES, IntentRule, IntentRuleSet


@pytest.fixture
def detector() -> IntentDetector:
    return IntentDetector()


@pytest.mark.parametrize(
    ("message", "action", "subject"),
    [
        ("add mood tracking", ModificationAction.ADD_METRIC, "mood"),
        ("Add a water tracker please", ModificationAction.ADD_METRIC, "water"),
        ("I want to track my water intake", ModificationAction.ADD_METRIC, "water intake"),
        ("could you track my sleep?", ModificationAction.ADD_METRIC, "sleep"),
        ("stop tracking water", ModificationAction.REMOVE_METRIC, "water"),
        ("remove the steps tracker", ModificationAction.REMOVE_METRIC, "steps"),
        ("delete caffeine", ModificationAction.REMOVE_METRIC, "caffeine"),
        ("add a chart for sleep quality", ModificationAction.ADD_ARTIFACT, "sleep quality"),
    ],
)
def test_detects_structural_requests(
    detector: IntentDetector, message: str, action: ModificationAction, subject: str
) -> None:
    intent = detector.detect(message)
    assert intent is not None
    assert intent.action is action
    assert intent.raw_subject == subject
    assert intent.raw_message == message


@pytest.mark.parametrize("message", ["undo that", "please revert", "Undo the last change"])
def test_detects_undo(detector: IntentDetector, message: str) -> None:
    intent = detector.detect(message)
    assert intent is not None
    assert intent.action is ModificationAction.UNDO
    assert intent.raw_subject == ""


@pytest.mark.parametrize(
    "message",
    ["", "   ", "Hello, how are you?", "I slept well today", "tracking is fun"],
)
def test_ordinary_chat_is_not_detected(detector: IntentDetector, message: str) -> None:
    assert detector.detect(message) is None


@pytest.mark.parametrize(
    "message",
    [
        "add mood tracking",
        "stop tracking water",
        "add a chart for sleep quality",
        "undo that",
        "hi",
    ],
)
def test_detection_is_repeatable_and_side_effect_free(
    detector: IntentDetector, message: str
) -> None:
    first = detector.detect(message)
    second = detector.detect(message)

    assert first == second
    assert IntentDetector().detect(message) == first


def test_non_string_input_is_not_detected(detector: IntentDetector) -> None:
    assert detector.detect(None) is None  # type: ignore[arg-type]


def test_add_tracker_captures_label(detector: IntentDetector) -> None:
    intent = detector.detect("add mood tracking")
    assert intent.label == "mood tracking"
    assert intent.rule == "add_tracker"


def test_chart_rule_wins_over_tracker_rule(detector: IntentDetector) -> None:
    intent = detector.detect("add a chart for mood tracking")
    assert intent.action is ModificationAction.ADD_ARTIFACT
    assert intent.raw_subject == "mood tracking"


def test_removal_wins_over_track(detector: IntentDetector) -> None:
    intent = detector.detect("i don't track coffee")
    assert intent.action is ModificationAction.REMOVE_METRIC
    assert intent.rule == "no_longer_used"
    assert intent.raw_subject == "coffee"


def test_track_request_wins_over_generic_track(detector: IntentDetector) -> None:
    assert detector.detect("can you track my steps").rule == "track_request"


def test_rules_are_tried_in_priority_order() -> None:
    detector = IntentDetector(DEFAULT_RULES)
    priorities = {rule.name: rule.priority for rule in DEFAULT_RULES.rules}
    names = detector.rule_names
    assert [priorities[name] for name in names] == sorted(priorities.values())
    assert names[0] == "add_chart"


def test_custom_rules_require_subject_group() -> None:
    rules = IntentRuleSet(
        rules=[IntentRule(name="bad", action=ModificationAction.ADD_METRIC, pattern="add", priority=1)]
    )
    with pytest.raises(ValueError, match="subject"):
        IntentDetector(rules)


@pytest.mark.parametrize("pattern", [r"(a+)+(?P<subject>x)", r"(?<=x)(?P<subject>y)", r"(a)\1(?P<subject>b)"])
def test_unsafe_patterns_are_rejected(pattern: str) -> None:
    rules = IntentRuleSet(
        rules=[IntentRule(name="r", action=ModificationAction.ADD_METRIC, pattern=pattern, priority=1)]
    )
    with pytest.raises(ValueError, match="Unsafe regex"):
        IntentDetector(rules)
