"""Rally MCP Server - Expose Rally user stories, defects and tasks to AI assistants."""
import sys
import asyncio
import logging
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from rally_core.config import get_settings
from rally_core.diagnostics import ClassifierState, OperationContext
from rally_core.error_classifier import ErrorClassifier
from rally_core.exceptions import ConfigurationError
from rally_core.rally_client import RallyClient
from rally_core.security import get_auth_headers, validate_api_key

from . import tools
from . import handlers


settings = get_settings()

# Configure logging to stderr; stdout carries the MCP protocol
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("rally-mcp")

# One classifier per server process so counters and history span all calls
classifier = ErrorClassifier(
    ClassifierState(max_history=settings.error_history_size),
    include_stack_traces=settings.include_stack_traces,
)

# MCP Server instance
app = Server("rally-mcp")


def create_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.api_base_url,
        timeout=settings.request_timeout_seconds,
        headers=get_auth_headers(settings),
    )


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools for Rally artifact management."""
    return tools.get_tools()


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls by delegating to shared handlers."""
    async with create_http_client() as http:
        return await handlers.execute_tool(name, arguments or {}, RallyClient(http), classifier)


async def verify_connection() -> None:
    """Fail startup on a bad key or unreachable Rally.

    Raises:
        SystemExit: If the API key is malformed or authentication fails
    """
    try:
        validate_api_key(settings.rally_api_key)
        async with create_http_client() as http:
            await RallyClient(http).authenticate()
    except (ConfigurationError, httpx.HTTPError) as e:
        record = classifier.classify(e, OperationContext(operation="authenticate", endpoint=settings.api_base_url))
        handlers.log_diagnostic(record)
        logger.error(f"Rally MCP server cannot start: {record.message}")
        raise SystemExit(1) from e


async def main():
    """Run the MCP server over stdio."""
    logger.info(f"MCP Server starting with Rally API: {settings.api_base_url}")
    await verify_connection()
    async with stdio_server() as (read_stream, write_stream):
        await app.run(
            read_stream,
            write_stream,
            app.create_initialization_options()
        )


def run():
    asyncio.run(main())


if __name__ == "__main__":
    run()
