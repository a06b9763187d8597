"""Tools registry for the built-in browser backend."""

from typing import Any

from pydantic import ValidationError

from autobrowser.models.tools import ToolDescriptor, ToolResult
from autobrowser.tools.base import ToolDefinition
from autobrowser.tools.interaction import (
    create_choose_option_tool,
    create_click_button_tool,
    create_click_link_tool,
    create_click_tool,
    create_select_dropdown_tool,
    create_type_text_tool,
)
from autobrowser.tools.navigation import create_navigate_tool, create_refresh_page_tool, create_screenshot_tool
from autobrowser.tools.page import BrowserPage
from autobrowser.tools.snapshot import create_aria_snapshot_tool
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


class ToolsRegistry:
    """Registry of browser tools bound to one page."""

    def __init__(self, page: BrowserPage):
        """Initialize tools registry for a page."""
        self.page = page
        self._tools: dict[str, ToolDefinition] = {}
        self._register_default_tools()

    def _register_default_tools(self) -> None:
        """Register the default set of browser tools."""
        tools = [
            create_navigate_tool(),
            create_click_tool(),
            create_screenshot_tool(),
            create_aria_snapshot_tool(),
            create_type_text_tool(),
            create_click_button_tool(),
            create_click_link_tool(),
            create_select_dropdown_tool(),
            create_choose_option_tool(),
            create_refresh_page_tool(),
        ]

        for tool in tools:
            self.register_tool(tool)

    def register_tool(self, tool: ToolDefinition) -> None:
        """Register a new tool in the registry."""
        self._tools[tool.name] = tool

    def get_descriptors(self) -> list[ToolDescriptor]:
        return [tool.to_descriptor() for tool in self._tools.values()]

    def get_tool_names(self) -> list[str]:
        """Get list of all registered tool names."""
        return list(self._tools.keys())

    def has_tool(self, name: str) -> bool:
        """Check if a tool is registered."""
        return name in self._tools

    async def call(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        """Validate arguments and run a tool.

        Unknown tools and invalid arguments are reported as error results.
        """
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult.text(f"Unknown tool: {name}", is_error=True)

        try:
            params = tool.parse_input(arguments)
        except ValidationError as e:
            logger.warning(f"Invalid arguments for {name}: {e}")
            return ToolResult.text(f"Invalid arguments for {name}: {e}", is_error=True)

        return await tool.handler(params, self.page)
