"""HTTP JSON-RPC handler for MCP tools."""

from __future__ import annotations

import inspect
import json
import logging

from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from evolve_mcp import __version__
from evolve_mcp.config import load_settings
from evolve_mcp.mcp_runtime import ToolResult
from evolve_mcp.tools import get_tool_registry
from evolve_mcp.utils.serialization import json_default

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOL_VERSIONS = ("2025-03-26", "2025-06-18", "2025-11-25")
DEFAULT_PROTOCOL_VERSION = "2025-03-26"
MAX_BATCH_REQUESTS = 50


async def handle_mcp_request(request: Request) -> Response:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, ValueError, UnicodeDecodeError):
        return _error_response(None, "Invalid JSON", protocol_version=_protocol_version(request))

    if isinstance(payload, list):
        return await _handle_batch(payload, request)
    if not isinstance(payload, dict):
        return _error_response(
            None,
            "Invalid JSON-RPC request",
            code="invalid_request",
            protocol_version=_protocol_version(request),
        )

    result = await _handle_single(payload)
    headers = {"MCP-Protocol-Version": _protocol_version(request)}
    if result is None:
        return Response(status_code=202, headers=headers)
    return _json_response(result, headers=headers)


async def _handle_batch(payloads: list[object], request: Request) -> Response:
    if not payloads or len(payloads) > MAX_BATCH_REQUESTS:
        return _error_response(
            None,
            f"Batch must hold between 1 and {MAX_BATCH_REQUESTS} requests",
            code="invalid_request",
            protocol_version=_protocol_version(request),
        )

    responses: list[dict[str, object]] = []
    for item in payloads:
        if not isinstance(item, dict):
            responses.append(
                _error_body(None, "Invalid JSON-RPC batch entry", code="invalid_request")
            )
            continue
        response = await _handle_single(item)
        if response is not None:
            responses.append(response)

    headers = {"MCP-Protocol-Version": _protocol_version(request)}
    if not responses:
        return Response(status_code=202, headers=headers)
    return _json_response(responses, headers=headers)


async def _handle_single(payload: dict[str, object]) -> dict[str, object] | None:
    request_id = payload.get("id")
    method = payload.get("method")
    params = payload.get("params", {})
    params_dict = params if isinstance(params, dict) else {}

    # Notifications and client responses get no reply.
    if request_id is None:
        return None
    if not isinstance(method, str):
        return _error_body(request_id, "Invalid JSON-RPC method", code="invalid_request")

    if method == "initialize":
        requested_version = params_dict.get("protocolVersion")
        if isinstance(requested_version, str) and requested_version in SUPPORTED_PROTOCOL_VERSIONS:
            negotiated = requested_version
        else:
            negotiated = SUPPORTED_PROTOCOL_VERSIONS[-1]
        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": {
                "protocolVersion": negotiated,
                "serverInfo": {"name": "evolve-mcp", "version": __version__},
                "instructions": load_settings().server.instructions,
                "capabilities": {"tools": {"listChanged": False}},
            },
        }

    if method == "tools/list":
        tools = [
            {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.input_schema,
            }
            for tool in get_tool_registry().values()
        ]
        return {"jsonrpc": "2.0", "id": request_id, "result": {"tools": tools}}

    if method == "tools/call":
        name = params_dict.get("name")
        if not isinstance(name, str):
            return _error_body(request_id, "Invalid tool name")
        arguments = params_dict.get("arguments", {})
        if not isinstance(arguments, dict):
            return _error_body(request_id, "Invalid tool arguments", code="invalid_params")
        tool = get_tool_registry().get(name)
        if tool is None:
            return _error_body(request_id, f"Unknown tool: {name}")
        try:
            result = tool.handler(arguments)
            if inspect.isawaitable(result):
                result = await result
            if not isinstance(result, ToolResult):
                raise TypeError("Tool handler did not return ToolResult")
        except ValueError as exc:
            return _error_body(request_id, str(exc), code="invalid_params")
        except Exception:
            logger.exception("Tool handler error: %s", name)
            return _error_body(request_id, "Internal tool error")

        return {
            "jsonrpc": "2.0",
            "id": request_id,
            "result": {
                "content": result.content,
                "structuredContent": result.structured_content,
            },
        }

    return _error_body(request_id, f"Unsupported method: {method[:256]}")


def _error_response(
    request_id: object,
    message: str,
    status_code: int = 400,
    code: str | int = -32000,
    protocol_version: str | None = None,
) -> JSONResponse:
    return JSONResponse(
        _error_body(request_id, message, code=code),
        status_code=status_code,
        headers={"MCP-Protocol-Version": protocol_version or DEFAULT_PROTOCOL_VERSION},
    )


def _error_body(
    request_id: object,
    message: str,
    code: str | int = -32000,
) -> dict[str, object]:
    return {
        "jsonrpc": "2.0",
        "id": request_id,
        "error": {"code": code, "message": message},
    }


def _json_response(
    payload: object,
    status_code: int = 200,
    headers: dict[str, str] | None = None,
) -> Response:
    body = json.dumps(payload, default=json_default, ensure_ascii=False)
    return Response(
        content=body,
        status_code=status_code,
        media_type="application/json",
        headers=headers,
    )


def _protocol_version(request: Request) -> str:
    version = request.headers.get("MCP-Protocol-Version")
    if version in SUPPORTED_PROTOCOL_VERSIONS:
        return version
    return DEFAULT_PROTOCOL_VERSION
