"""Starlette HTTP server: JSON API over the modification orchestrator."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from evolve_mcp.app import AppContext, get_app_context
from evolve_mcp.tools._schemas import EXECUTE_SCHEMA, MESSAGE_SCHEMA
from evolve_mcp.tools.base import validate_or_raise
from evolve_mcp.tools.evolve_tools import field_to_dict
from evolve_mcp.utils.serialization import json_default

logger = logging.getLogger(__name__)

_TABLE_RE = re.compile(r"^[a-z_][a-z0-9_]{0,49}$")

Handler = Callable[[Request], Awaitable[Response]]


def create_http_app(context: AppContext | None = None) -> Starlette:
    """Create the HTTP application.

    ``context`` overrides the process-wide application context.
    """

    def ctx() -> AppContext:
        return context if context is not None else get_app_context()

    async def health_handler(request: Request) -> Response:
        return JSONResponse({"status": "healthy"})

    async def ready_handler(request: Request) -> Response:
        return JSONResponse({"status": "ready"})

    async def list_components_handler(request: Request) -> Response:
        records = await asyncio.to_thread(ctx().orchestrator.list_components)
        components = [record.to_dict() for record in records]
        return _json_response({"count": len(components), "components": components})

    async def get_component_handler(request: Request) -> Response:
        name = request.path_params["name"]
        found = await asyncio.to_thread(ctx().orchestrator.get_component, name)
        if found is None:
            return _error_response(f"Component not found: {name}", status_code=404)
        record, code = found
        return _json_response({"component": record.to_dict(), "code": code})

    async def list_fields_handler(request: Request) -> Response:
        table = request.path_params["table"]
        if not _TABLE_RE.match(table):
            return _error_response(f"Invalid table name: {table}", status_code=400)
        fields = await asyncio.to_thread(ctx().orchestrator.list_fields, table)
        return _json_response(
            {
                "table": table,
                "active": [field.name for field in fields if field.active],
                "fields": [field_to_dict(field) for field in fields],
            }
        )

    async def history_handler(request: Request) -> Response:
        return _json_response(await asyncio.to_thread(ctx().orchestrator.history))

    async def message_handler(request: Request) -> Response:
        payload = await _read_json(request)
        validate_or_raise(MESSAGE_SCHEMA, payload)
        result = await asyncio.to_thread(ctx().orchestrator.handle_message, payload["text"])
        return _json_response(result.to_dict())

    async def execute_handler(request: Request) -> Response:
        payload = await _read_json(request)
        validate_or_raise(EXECUTE_SCHEMA, payload)
        result = await asyncio.to_thread(
            ctx().orchestrator.execute,
            payload["action"],
            payload.get("metric"),
            payload.get("componentType"),
            payload.get("template"),
        )
        return _json_response(result.to_dict())

    async def undo_handler(request: Request) -> Response:
        result = await asyncio.to_thread(ctx().orchestrator.undo)
        return _json_response(result.to_dict())

    async def mcp_handler(request: Request) -> Response:
        from evolve_mcp.transport.mcp_handler import handle_mcp_request

        return await handle_mcp_request(request)

    routes = [
        Route("/mcp", endpoint=mcp_handler, methods=["POST"]),
        Route("/health", endpoint=health_handler, methods=["GET"]),
        Route("/ready", endpoint=ready_handler, methods=["GET"]),
        Route("/api/components", endpoint=_guarded(list_components_handler), methods=["GET"]),
        Route(
            "/api/components/{name}",
            endpoint=_guarded(get_component_handler),
            methods=["GET"],
        ),
        Route(
            "/api/schema/fields/{table}",
            endpoint=_guarded(list_fields_handler),
            methods=["GET"],
        ),
        Route(
            "/api/modifications/history",
            endpoint=_guarded(history_handler),
            methods=["GET"],
        ),
        Route(
            "/api/modifications/message",
            endpoint=_guarded(message_handler),
            methods=["POST"],
        ),
        Route(
            "/api/modifications/execute",
            endpoint=_guarded(execute_handler),
            methods=["POST"],
        ),
        Route("/api/modifications/undo", endpoint=_guarded(undo_handler), methods=["POST"]),
    ]

    @asynccontextmanager
    async def lifespan(app: Starlette):
        logger.info("Starting evolve HTTP server...")
        # Opens the store and ensures the metrics table before the first request.
        await asyncio.to_thread(ctx)
        logger.info("Evolve HTTP server started")
        try:
            yield
        finally:
            logger.info("Stopping evolve HTTP server...")

    return Starlette(routes=routes, lifespan=lifespan)


def _guarded(handler: Handler) -> Handler:
    async def _wrapped(request: Request) -> Response:
        try:
            return await handler(request)
        except ValueError as exc:
            return _error_response(str(exc), status_code=400)
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return _error_response("Internal server error", status_code=500)

    _wrapped.__name__ = handler.__name__
    return _wrapped


async def _read_json(request: Request) -> dict[str, object]:
    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise ValueError("Invalid JSON body") from exc
    if not isinstance(payload, dict):
        raise ValueError("Request body must be a JSON object")
    return payload


def _error_response(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def _json_response(payload: object, status_code: int = 200) -> Response:
    body = json.dumps(payload, default=json_default, ensure_ascii=False)
    return Response(content=body, status_code=status_code, media_type="application/json")
