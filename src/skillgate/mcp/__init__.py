"""MCP transport adapter built on FastMCP."""

from __future__ import annotations

from skillgate.mcp.server import DisclosureServer, create_server

__all__ = ["DisclosureServer", "create_server"]
