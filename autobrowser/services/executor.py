"""Tool executor: dispatch a named call to the backend and normalize its result."""

from typing import Any

from autobrowser.errors import BackendExecutionError
from autobrowser.models.ledger import Invocation
from autobrowser.models.session import BrowserSession
from autobrowser.models.tools import ExecutionResult, ImageContent, TextContent, ToolContent
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


def render_content(content: list[ToolContent]) -> str:
    """Render result items as text, one item per line."""
    parts: list[str] = []
    for item in content:
        match item:
            case TextContent(text=text):
                parts.append(text)
            case ImageContent(mime_type=mime_type, data=data):
                parts.append(f"[Image: {mime_type}, {len(data)} bytes]")
    return "\n".join(parts)


class ToolExecutor:
    """Executes tool calls against the session's backend."""

    def __init__(self, session: BrowserSession):
        self.session = session

    async def execute(self, tool_name: str, arguments: dict[str, Any], record: bool = True) -> ExecutionResult:
        """Execute one tool call.

        A call that completes without the backend's error flag is appended to
        the session ledger when ``record`` is set.

        Raises:
            ToolNotFoundError: The tool is not in the session catalog
            BackendExecutionError: The backend raised
        """
        self.session.catalog.get(tool_name)

        logger.info(f"Executing tool {tool_name}")
        logger.debug(f"Arguments for {tool_name}: {arguments}")
        try:
            result = await self.session.backend.call_tool(tool_name, arguments)
        except Exception as e:
            logger.error(f"Backend failed executing {tool_name}: {e}")
            raise BackendExecutionError(tool_name, str(e)) from e

        text = render_content(result.content)
        if result.is_error:
            logger.warning(f"Tool {tool_name} reported an error: {text}")
        elif record:
            self.session.ledger.record(Invocation(tool_name=tool_name, arguments=arguments, result=text))

        return ExecutionResult(tool_name=tool_name, arguments=arguments, text=text, is_error=result.is_error)
