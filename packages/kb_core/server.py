"""
MCP server for the knowledge base.

Exposes the query tools via Model Context Protocol for agent consumption.
Every tool is dispatched through `kb_core.tools.call_tool` against a single
KnowledgeBase handle.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, List

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .retrieval import KnowledgeBase
from .tools import TOOLS, call_tool

_log = logging.getLogger(__name__)

SERVER_NAME = "kb-search"


def tool_definitions() -> List[Tool]:
    """MCP tool definitions, one per registered tool."""
    return [
        Tool(
            name=entry.name,
            description=entry.description,
            inputSchema=entry.input_schema(),
        )
        for entry in TOOLS.values()
    ]


def run_tool(kb: KnowledgeBase, name: str, arguments: dict[str, Any] | None) -> List[TextContent]:
    """Execute a tool and return its result as JSON text content."""
    result = call_tool(kb, name, arguments)
    return [TextContent(type="text", text=json.dumps(result, indent=2, ensure_ascii=False, default=str))]


def create_server(kb: KnowledgeBase) -> Server:
    """Build an MCP server whose tools query `kb`."""
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return tool_definitions()

    @server.call_tool()
    async def handle_call_tool(name: str, arguments: dict) -> list[TextContent]:
        _log.info("Tool call %s %s", name, arguments)
        return run_tool(kb, name, arguments)

    return server


async def serve(db_path: Path) -> None:
    """Run the MCP server over stdio until the client disconnects."""
    kb = KnowledgeBase.from_path(db_path)
    server = create_server(kb)
    _log.info("Serving %s over stdio", db_path)
    try:
        async with stdio_server() as (read, write):
            await server.run(read, write, server.create_initialization_options())
    finally:
        kb.close()


__all__ = ["SERVER_NAME", "create_server", "run_tool", "serve", "tool_definitions"]
