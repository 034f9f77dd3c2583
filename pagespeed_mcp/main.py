# pagespeed_mcp/main.py
import asyncio
import sys
from typing import Any, Dict, List, Optional

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.stdio import stdio_server

from pagespeed_mcp.core.config import SERVER_NAME, SERVER_VERSION, Settings, get_settings
from pagespeed_mcp.core.logging import configure_logging, get_logger
from pagespeed_mcp.errors import ConfigurationError
from pagespeed_mcp.models import ContentBlock, ResourceContent, ToolResponse
from pagespeed_mcp.services.cache import ResponseCache
from pagespeed_mcp.services.orchestrator import PageSpeedTools
from pagespeed_mcp.services.pagespeed_service import PageSpeedClient
from pagespeed_mcp.tools import ToolRegistry, build_registry

logger = get_logger(__name__)


class ToolCallFailed(Exception):
    """Raised inside the MCP handler so the SDK replies with isError=True."""


def to_mcp_content(block: ContentBlock):
    if isinstance(block, ResourceContent):
        return types.EmbeddedResource(
            type="resource",
            resource=types.TextResourceContents(
                uri=block.uri, mimeType=block.mime_type, text=block.text, name=block.name
            ),
        )
    return types.TextContent(type="text", text=block.text)


def create_server(registry: ToolRegistry) -> Server:
    """Builds the MCP server exposing every registered tool."""
    server = Server(SERVER_NAME, version=SERVER_VERSION)

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [
            types.Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema())
            for tool in registry.list_tools()
        ]

    # argument validation is done by the registry so every violation is reported at once
    @server.call_tool(validate_input=False)
    async def call_tool(name: str, arguments: Optional[Dict[str, Any]]):
        response: ToolResponse = await registry.call(name, arguments)
        if response.is_error:
            raise ToolCallFailed(response.first_text)
        return [to_mcp_content(block) for block in response.content]

    return server


async def serve(settings: Settings) -> None:
    cache = ResponseCache(default_ttl=settings.CACHE_TTL)
    client = PageSpeedClient(settings, cache)
    registry = build_registry(PageSpeedTools(client, cache))
    server = create_server(registry)

    cache.start()
    logger.info("server_started", name=SERVER_NAME, version=SERVER_VERSION, tools=len(registry.list_tools()))
    try:
        async with stdio_server() as (read_stream, write_stream):
            await server.run(read_stream, write_stream, server.create_initialization_options())
    finally:
        await cache.stop()
        await client.aclose()
        logger.info("server_stopped")


def main() -> None:
    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"Server failed to start: {e}", file=sys.stderr)
        sys.exit(1)

    configure_logging(settings)
    asyncio.run(serve(settings))


if __name__ == "__main__":
    main()
