"""Entrypoint for the evolve MCP server."""

from __future__ import annotations

import logging
import threading

from evolve_mcp import __version__
from evolve_mcp.config import load_settings
from evolve_mcp.logging_utils import configure_logging
from evolve_mcp.mcp_runtime import MCPServer
from evolve_mcp.tools import register_tools


def _is_http_transport(mode: str) -> bool:
    return mode == "http"


def build_server() -> MCPServer:
    """Create and configure the MCP server instance."""

    settings = load_settings()

    server = MCPServer(
        name="evolve-mcp",
        version=__version__,
        instructions=settings.server.instructions,
    )

    # FastMCP installs its own handlers; re-apply ours afterwards.
    configure_logging()

    logging.info("Initializing evolve MCP server v%s", __version__)
    logging.info("Log file configured at: %s", settings.logging.file)
    register_tools(server)
    return server


def run_entrypoint() -> None:
    """Run the server based on transport settings."""
    settings = load_settings()
    if _is_http_transport(settings.server.transport_mode):
        _run_http()
        return
    get_server().run()


def _run_http() -> None:
    import uvicorn

    from evolve_mcp.transport.http_server import create_http_app

    settings = load_settings()
    configure_logging()
    app = create_http_app()
    uvicorn.run(
        app,
        host=settings.server.host,
        port=settings.server.port,
        ws="none",
        log_config=None,
    )


_server: MCPServer | None = None
_server_lock = threading.Lock()


def get_server() -> MCPServer:
    """Lazily initialise and return the module-level server instance."""
    global _server
    if _server is not None:
        return _server
    with _server_lock:
        if _server is None:
            _server = build_server()
        return _server


if __name__ == "__main__":  # pragma: no cover
    run_entrypoint()
