"""Browser backend boundary."""

from typing import Any, Protocol

from autobrowser.models.tools import ToolDescriptor, ToolResult


class BrowserBackend(Protocol):
    """Interface for anything that exposes browser-control tools."""

    async def list_tools(self) -> list[ToolDescriptor]:
        """Return the tools the backend offers."""
        ...

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Invoke a tool and return its raw result."""
        ...
