"""
MCP Server - How the assistant talks to the agent core.

MCP (Model Context Protocol) is the phone line between the coding
assistant and this process. We speak it over stdio, so stdout belongs
to the protocol and all logging goes to stderr.

Tools (see eclipse_core/requests.py for arguments):

    begin_task, end_task, checkpoint, update_task, task_resume
    memory_save, memory_search, memory_update, memory_forget
    memory_link, memory_stats, memory_maintain
    decision_log, decision_search, profile_info
"""

import asyncio
import logging

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from eclipse_core.config import load_settings
from eclipse_core.context import CoreContext
from eclipse_core.dispatcher import ToolDispatcher
from eclipse_core.errors import EclipseError
from eclipse_core.logs import setup_logging
from eclipse_core.requests import TOOL_REQUESTS, tool_schema

logger = logging.getLogger("eclipse_core.server")

# Create the MCP server
server = Server("eclipse-agent-core")

# Built on first use (or by serve() at startup)
_dispatcher: ToolDispatcher | None = None


def get_dispatcher() -> ToolDispatcher:
    """Get the tool dispatcher, creating the context if needed."""
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = ToolDispatcher(CoreContext.create(load_settings()))
    return _dispatcher


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================

def build_tools() -> list[Tool]:
    return [
        Tool(name=name, description=model.description, inputSchema=tool_schema(model))
        for name, model in TOOL_REQUESTS.items()
    ]


@server.list_tools()
async def list_tools() -> list[Tool]:
    """Tell the assistant what tools are available."""
    return build_tools()


@server.call_tool()
async def call_tool(name: str, arguments: dict) -> list[TextContent]:
    """Handle tool calls from the assistant."""
    result = await get_dispatcher().dispatch(name, arguments)

    # Raising makes the MCP layer flag the response as an error
    if result.is_error:
        raise EclipseError(result.text)

    return [TextContent(type="text", text=result.text)]


# =============================================================================
# SERVER STARTUP
# =============================================================================

def serve():
    """Start the MCP server on stdio.

    The profile and stores are opened before the first request, so an
    unwritable data directory stops the process right here.
    """
    settings = load_settings()
    setup_logging(settings.log_level)

    global _dispatcher
    _dispatcher = ToolDispatcher(CoreContext.create(settings))

    async def main():
        async with stdio_server() as (read_stream, write_stream):
            await server.run(
                read_stream,
                write_stream,
                server.create_initialization_options()
            )

    asyncio.run(main())


if __name__ == "__main__":
    serve()
