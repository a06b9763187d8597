"""MCP stdio client exposing an external browser server as a BrowserBackend."""

import base64
import binascii
from contextlib import AsyncExitStack
from typing import Any

from mcp import ClientSession, StdioServerParameters
from mcp.client.stdio import stdio_client

from autobrowser.errors import BackendUnavailableError
from autobrowser.models.tools import ImageContent, TextContent, ToolContent, ToolDescriptor, ToolResult
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


def convert_mcp_content(items: list[Any]) -> list[ToolContent]:
    """Convert MCP result content into tool result items.

    Content kinds other than text and image are summarized as text.
    """
    converted: list[ToolContent] = []
    for item in items:
        item_type = getattr(item, "type", None)
        if item_type == "text":
            converted.append(TextContent(text=item.text))
        elif item_type == "image":
            try:
                data = base64.b64decode(item.data, validate=True)
            except (binascii.Error, ValueError):
                logger.warning(f"Image content with mime type {item.mimeType} is not valid base64")
                data = item.data.encode("utf-8")
            converted.append(ImageContent(mime_type=item.mimeType, data=data))
        else:
            converted.append(TextContent(text=f"[{item_type or 'unknown'} content]"))
    return converted


class MCPBrowserBackend:
    """Browser backend reached over MCP on a child process's stdio.

    Use as an async context manager; the child process and the session are
    released on exit.
    """

    def __init__(self, command: str, args: list[str] | None = None, env: dict[str, str] | None = None):
        self.server_params = StdioServerParameters(command=command, args=args or [], env=env)
        self._stack: AsyncExitStack | None = None
        self.session: ClientSession | None = None

    async def __aenter__(self) -> "MCPBrowserBackend":
        stack = AsyncExitStack()
        try:
            read, write = await stack.enter_async_context(stdio_client(self.server_params))
            self.session = await stack.enter_async_context(ClientSession(read, write))
            await self.session.initialize()
        except Exception as e:
            await stack.aclose()
            raise BackendUnavailableError(f"Failed to start MCP server {self.server_params.command}: {e}") from e

        self._stack = stack
        logger.info(f"Connected to MCP server {self.server_params.command}")
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
            self.session = None
            logger.info("MCP server connection closed")

    def _require_session(self) -> ClientSession:
        if self.session is None:
            raise BackendUnavailableError("MCP backend is not connected")
        return self.session

    async def list_tools(self) -> list[ToolDescriptor]:
        result = await self._require_session().list_tools()
        return [
            ToolDescriptor(name=tool.name, description=tool.description or "", input_schema=tool.inputSchema)
            for tool in result.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        result = await self._require_session().call_tool(name, arguments=arguments)
        return ToolResult(content=convert_mcp_content(result.content), is_error=bool(result.isError))
