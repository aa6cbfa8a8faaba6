"""MCP stdio binding for the dispatcher.

Run with: polydb-mcp (or python -m polydb.server)
"""
from __future__ import annotations

import asyncio
import sys
from typing import Any, Dict, List, Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from polydb.bootstrap import create_dispatcher
from polydb.config.settings import load_settings
from polydb.logging.logger import get_logger, init_logging
from polydb.tools.dispatcher import Dispatcher

log = get_logger("server")

SERVER_NAME = "polydb-mcp"


class ToolCallFailed(Exception):
    """Carries an error envelope's text out through the SDK, which marks the result isError."""


def build_server(dispatcher: Dispatcher) -> Server:
    server = Server(SERVER_NAME)
    tools = [
        Tool(name=t["name"], description=t["description"], inputSchema=t["inputSchema"])
        for t in dispatcher.list_tools()
    ]

    @server.list_tools()
    async def list_tools() -> List[Tool]:
        return tools

    # arguments are validated by the dispatcher so schema failures get the usual "Error: " envelope
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[TextContent]:
        response = await asyncio.to_thread(dispatcher.dispatch, name, arguments or {})
        if response.is_error:
            raise ToolCallFailed(response.text)
        return [TextContent(type="text", text=response.text)]

    return server


async def serve(dispatcher: Dispatcher) -> None:
    server = build_server(dispatcher)
    log.info("Database MCP server running on stdio", extra={"tools": len(dispatcher.catalog)})
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


def main() -> None:
    try:
        settings = load_settings()
        init_logging(settings.log_level, settings.log_file)
        adapter, dispatcher = create_dispatcher(settings)
    except Exception as e:
        init_logging()
        log.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)

    try:
        asyncio.run(serve(dispatcher))
    except KeyboardInterrupt:
        log.info("Shutting down")
    except Exception as e:
        log.error("Fatal error: %s", e, exc_info=True)
        sys.exit(1)
    finally:
        adapter.close()


if __name__ == "__main__":
    main()
