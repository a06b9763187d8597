"""Edge logic and routing for the conversation graph."""

from typing import Literal

from autobrowser.graphs.state import DriverState
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


def route_agent_output(state: DriverState) -> Literal["tools", "end"]:
    """Route from agent node: run pending tool calls, or finish."""
    if state.pending_tool_calls:
        logger.debug(f"Routing {len(state.pending_tool_calls)} tool calls to tools node")
        return "tools"
    return "end"


def route_tool_output(state: DriverState) -> Literal["agent", "limit"]:
    """Route from tool execution node.

    Returns to the agent unless the iteration ceiling has been reached.
    """
    if state.iteration >= state.max_iterations:
        logger.warning(f"Max iterations ({state.max_iterations}) reached")
        return "limit"
    return "agent"
