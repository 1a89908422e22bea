"""JSON Schema definitions for the evolve tools and HTTP request bodies."""

from __future__ import annotations

from evolve_mcp.domain.models import ComponentType
from evolve_mcp.generation.templates import TEMPLATES

EXECUTE_ACTIONS = ("add_metric", "remove_metric", "add_chart", "add_artifact", "undo")

MESSAGE_SCHEMA = {
    "type": "object",
    "properties": {
        "text": {
            "type": "string",
            "minLength": 1,
            "maxLength": 2000,
            "description": (
                "The user's chat message. Structural requests such as "
                "'add mood tracking', 'stop tracking water' or 'undo that' are "
                "applied; anything else is reported as not_detected."
            ),
        },
    },
    "required": ["text"],
    "additionalProperties": False,
}

EXECUTE_SCHEMA = {
    "type": "object",
    "properties": {
        "action": {
            "type": "string",
            "enum": list(EXECUTE_ACTIONS),
            "description": "Modification to run. 'add_chart' is an alias of 'add_artifact'.",
        },
        "metric": {
            "type": "string",
            "minLength": 1,
            "maxLength": 200,
            "description": (
                "Metric name for add_metric/remove_metric, chart description for "
                "add_chart. Ignored by undo."
            ),
        },
        "componentType": {
            "type": "string",
            "enum": [kind.value for kind in ComponentType],
            "description": "Override the inferred component kind (add_metric only).",
        },
        "template": {
            "type": "string",
            "enum": sorted(TEMPLATES),
            "description": "Use a predefined component template (add_metric only).",
        },
    },
    "required": ["action"],
    "additionalProperties": False,
}

EMPTY_SCHEMA = {
    "type": "object",
    "properties": {},
    "additionalProperties": False,
}

GET_COMPONENT_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {
            "type": "string",
            "pattern": "^[A-Z][A-Za-z0-9]{0,79}$",
            "description": "Registered component name, e.g. 'MoodTracking'.",
        },
    },
    "required": ["name"],
    "additionalProperties": False,
}

LIST_FIELDS_SCHEMA = {
    "type": "object",
    "properties": {
        "table": {
            "type": "string",
            "pattern": "^[a-z_][a-z0-9_]*$",
            "maxLength": 50,
            "description": "Table to inspect. Defaults to the metrics table.",
        },
        "includeInactive": {
            "type": "boolean",
            "default": False,
            "description": "Also list soft-deleted fields.",
        },
    },
    "additionalProperties": False,
}
