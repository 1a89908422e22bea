"""Self-evolving application backend exposed as MCP tools and an HTTP API."""

__version__ = "0.3.0"
