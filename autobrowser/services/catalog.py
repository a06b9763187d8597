"""Tool catalog adapter.

Converts backend tool descriptors into the function-call schema the model
service accepts. Backends are allowed to omit parts of a schema; the model
service is not, so missing pieces are filled in here.
"""

import copy
from typing import Any

from autobrowser.backends.base import BrowserBackend
from autobrowser.clients.anthropic import AnthropicTool, CacheControl
from autobrowser.errors import ToolNotFoundError
from autobrowser.models.tools import ToolDescriptor
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

BROWSER_TOOL_PREFIXES = (
    "browser_navigate",
    "browser_click",
    "browser_type",
    "browser_snapshot",
    "mcp_browser",
)

# Tool names of the built-in CDP backend
BUILTIN_BROWSER_TOOLS = frozenset(
    {
        "navigate",
        "click",
        "screenshot",
        "aria_snapshot",
        "type_text",
        "click_button",
        "click_link",
        "select_dropdown",
        "choose_option",
        "refresh_page",
    }
)


def normalize_schema(schema: dict[str, Any] | None) -> dict[str, Any]:
    """Return a schema that always declares an object type and a properties mapping."""
    normalized = copy.deepcopy(schema) if schema else {}
    normalized.setdefault("type", "object")
    if not isinstance(normalized.get("properties"), dict):
        normalized["properties"] = {}
    return normalized


def describe_tool(descriptor: ToolDescriptor) -> str:
    return descriptor.description or f"Use this tool to {descriptor.name}"


def is_browser_tool(name: str) -> bool:
    """Whether a tool name looks like a browser-control tool."""
    return name in BUILTIN_BROWSER_TOOLS or name.startswith(BROWSER_TOOL_PREFIXES)


def filter_browser_tools(descriptors: list[ToolDescriptor]) -> list[ToolDescriptor]:
    return [d for d in descriptors if is_browser_tool(d.name)]


class ToolCatalog:
    """Immutable set of tools available to a session, keyed by exact name."""

    def __init__(self, descriptors: list[ToolDescriptor]):
        self._tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in self._tools:
                logger.warning(f"Duplicate tool name {descriptor.name} in catalog, keeping the first")
                continue
            self._tools[descriptor.name] = descriptor

    @classmethod
    async def from_backend(cls, backend: BrowserBackend) -> "ToolCatalog":
        """Fetch the tool list from a backend."""
        descriptors = await backend.list_tools()
        logger.info(f"Backend offers {len(descriptors)} tools")
        return cls(descriptors)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get(self, name: str) -> ToolDescriptor:
        """Look up a tool by exact, case-sensitive name.

        Raises:
            ToolNotFoundError: If no tool has this name
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    @property
    def descriptors(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def get_tool_names(self) -> list[str]:
        return list(self._tools.keys())

    def browser_tools(self) -> list[ToolDescriptor]:
        return filter_browser_tools(self.descriptors)

    def to_anthropic_tools(self, cache: bool = True) -> list[AnthropicTool]:
        """Convert every descriptor into a model-service tool definition.

        Args:
            cache: Mark the last tool for prompt caching so the whole tool
                block is cached across iterations

        Returns:
            Tool definitions in catalog order
        """
        tools = [
            AnthropicTool(
                name=descriptor.name,
                description=describe_tool(descriptor),
                input_schema=normalize_schema(descriptor.input_schema),
            )
            for descriptor in self._tools.values()
        ]
        if cache and tools:
            tools[-1].cache_control = CacheControl()
        return tools
