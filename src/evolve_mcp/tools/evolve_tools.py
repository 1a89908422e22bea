"""MCP tools for the self-modification subsystem.

- evolve_message: detect and apply a structural change from a chat message
- evolve_execute: run a structured modification without intent detection
- evolve_undo: reverse the newest structural transaction
- evolve_list_components / evolve_get_component: inspect the registry
- evolve_list_fields: inspect the evolving schema
- evolve_history: migration log plus registered components
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from evolve_mcp.app import AppContext, get_app_context
from evolve_mcp.domain.models import SchemaField
from evolve_mcp.mcp_runtime import ToolResult, ToolSpec
from evolve_mcp.tools._schemas import (
    EMPTY_SCHEMA,
    EXECUTE_SCHEMA,
    GET_COMPONENT_SCHEMA,
    LIST_FIELDS_SCHEMA,
    MESSAGE_SCHEMA,
)
from evolve_mcp.tools.base import result_from_payload, validate_or_raise

P = ParamSpec("P")
T = TypeVar("T")


async def _run_blocking(
    ctx: AppContext,
    func: Callable[P, T],
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    # Transactions hold a lock and may wait on the oracle; keep them off the event loop.
    if ctx.settings.server.transport_mode == "http":
        return await asyncio.to_thread(func, *args, **kwargs)
    return func(*args, **kwargs)


def field_to_dict(field: SchemaField) -> dict[str, object]:
    return {
        "table": field.table,
        "name": field.name,
        "data_type": field.data_type.value if field.data_type else None,
        "active": field.active,
    }


async def handle_message(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(MESSAGE_SCHEMA, payload)
    ctx = get_app_context()
    result = await _run_blocking(ctx, ctx.orchestrator.handle_message, str(payload["text"]))
    return result_from_payload(result.to_dict())


async def execute_modification(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(EXECUTE_SCHEMA, payload)
    ctx = get_app_context()
    metric = payload.get("metric")
    component_type = payload.get("componentType")
    template = payload.get("template")
    result = await _run_blocking(
        ctx,
        ctx.orchestrator.execute,
        str(payload["action"]),
        str(metric) if metric is not None else None,
        str(component_type) if component_type is not None else None,
        str(template) if template is not None else None,
    )
    return result_from_payload(result.to_dict())


async def undo_last(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(EMPTY_SCHEMA, payload)
    ctx = get_app_context()
    result = await _run_blocking(ctx, ctx.orchestrator.undo)
    return result_from_payload(result.to_dict())


def list_components(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(EMPTY_SCHEMA, payload)
    ctx = get_app_context()
    components = [record.to_dict() for record in ctx.orchestrator.list_components()]
    return result_from_payload({"count": len(components), "components": components})


def get_component(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(GET_COMPONENT_SCHEMA, payload)
    ctx = get_app_context()
    name = str(payload["name"])
    found = ctx.orchestrator.get_component(name)
    if found is None:
        raise ValueError(f"Component not found: {name}")
    record, code = found
    return result_from_payload({"component": record.to_dict(), "code": code})


def list_fields(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(LIST_FIELDS_SCHEMA, payload)
    ctx = get_app_context()
    raw_table = payload.get("table")
    table = str(raw_table) if raw_table else ctx.orchestrator.metrics_table
    fields = ctx.orchestrator.list_fields(table)
    if not payload.get("includeInactive", False):
        fields = [field for field in fields if field.active]
    return result_from_payload(
        {"table": table, "count": len(fields), "fields": [field_to_dict(f) for f in fields]}
    )


def modification_history(payload: dict[str, object]) -> ToolResult:
    validate_or_raise(EMPTY_SCHEMA, payload)
    ctx = get_app_context()
    return result_from_payload(ctx.orchestrator.history())


message_tool = ToolSpec(
    name="evolve_message",
    description=(
        "Apply a structural change requested in a chat message. "
        "Required: 'text' (string). "
        "Examples: call(text='add mood tracking'), call(text='stop tracking water'), "
        "call(text='undo that'). Messages without a structural request return "
        "status 'not_detected' and change nothing."
    ),
    input_schema=MESSAGE_SCHEMA,
    handler=handle_message,
)

execute_tool = ToolSpec(
    name="evolve_execute",
    description=(
        "Run a structured modification without intent detection. "
        "Required: 'action' (add_metric/remove_metric/add_chart/undo). "
        "Optional: 'metric' (string), 'componentType' (metric_input/emoji_select/chart), "
        "'template' (predefined tracker template). "
        "Example: call(action='add_metric', metric='water intake', template='water_intake')"
    ),
    input_schema=EXECUTE_SCHEMA,
    handler=execute_modification,
)

undo_tool = ToolSpec(
    name="evolve_undo",
    description=(
        "Reverse the most recent structural modification. "
        "Returns status 'nothing_to_undo' when there is none."
    ),
    input_schema=EMPTY_SCHEMA,
    handler=undo_last,
)

list_components_tool = ToolSpec(
    name="evolve_list_components",
    description="List the registered generated components.",
    input_schema=EMPTY_SCHEMA,
    handler=list_components,
)

get_component_tool = ToolSpec(
    name="evolve_get_component",
    description=(
        "Get a registered component and its source. "
        "Required: 'name' (string). Example: call(name='MoodTracking')"
    ),
    input_schema=GET_COMPONENT_SCHEMA,
    handler=get_component,
)

list_fields_tool = ToolSpec(
    name="evolve_list_fields",
    description=(
        "List the fields of an evolving table. "
        "Optional: 'table' (defaults to the metrics table), 'includeInactive' (bool)."
    ),
    input_schema=LIST_FIELDS_SCHEMA,
    handler=list_fields,
)

history_tool = ToolSpec(
    name="evolve_history",
    description="Show the schema migration log and the registered components.",
    input_schema=EMPTY_SCHEMA,
    handler=modification_history,
)
