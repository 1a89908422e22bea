"""Tool registration helpers."""

from __future__ import annotations

from evolve_mcp.logging_utils import get_logger
from evolve_mcp.mcp_runtime import MCPServer, ToolSpec
from evolve_mcp.tools.evolve_tools import (
    execute_tool,
    get_component_tool,
    history_tool,
    list_components_tool,
    list_fields_tool,
    message_tool,
    undo_tool,
)

__all__ = ["get_tool_registry", "get_tool_specs", "register_tools"]


def get_tool_specs() -> list[ToolSpec]:
    return [
        message_tool,
        execute_tool,
        undo_tool,
        list_components_tool,
        get_component_tool,
        list_fields_tool,
        history_tool,
    ]


def get_tool_registry() -> dict[str, ToolSpec]:
    return {tool.name: tool for tool in get_tool_specs()}


def register_tools(server: MCPServer) -> None:
    """Register the evolve tools with the MCP server."""
    logger = get_logger(__name__)
    specs = get_tool_specs()
    for tool in specs:
        server.add_tool(tool)
    logger.info("Registered %d tools: %s", len(specs), ", ".join(t.name for t in specs))
