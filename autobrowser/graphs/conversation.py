"""Conversation driver graph."""

from typing import Any

from langgraph.graph import END, StateGraph

from autobrowser.graphs.edges import route_agent_output, route_tool_output
from autobrowser.graphs.nodes import agent_node, iteration_limit_node, tools_node
from autobrowser.graphs.state import DriverPhase, DriverRuntime, DriverState
from autobrowser.models.llm import ConversationMessage, ConversationResult, LLMUsage, validate_tool_messages
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an assistant that helps users navigate and control a browser using MCP tools. "
    "You MUST use the browser tools provided to you when the user asks for anything related to browsing. "
    "Don't just describe what you would do - actually use the tools."
)

DEFAULT_TASK = (
    "Navigate to a website about artificial intelligence, take a screenshot of the page, "
    "and describe what you see."
)

TOOL_HINT = " (Please use the browser tools provided to help with this task)"


def create_conversation_graph():
    """Create the conversation driver graph.

    agent -> tools -> agent ... until the model stops calling tools, or
    tools -> limit once the iteration ceiling is reached.

    Returns:
        Compiled LangGraph workflow
    """
    workflow = StateGraph(DriverState)

    workflow.add_node("agent", agent_node)
    workflow.add_node("tools", tools_node)
    workflow.add_node("limit", iteration_limit_node)

    workflow.set_entry_point("agent")

    workflow.add_conditional_edges(
        "agent",
        route_agent_output,
        {
            "tools": "tools",
            "end": END,
        },
    )

    workflow.add_conditional_edges(
        "tools",
        route_tool_output,
        {
            "agent": "agent",
            "limit": "limit",
        },
    )

    workflow.add_edge("limit", END)

    return workflow.compile()


def build_task_prompt(steps: str | None) -> str:
    """Wrap a task description for the first user message.

    Args:
        steps: Contents of the task file (numbered steps), or None for the
            default demo task

    Returns:
        User message text
    """
    if not steps or not steps.strip():
        return DEFAULT_TASK + TOOL_HINT

    return (
        "Here's a document that contains a numbered sequence of steps between {steps} and {/steps} "
        "delimiters, that require to be automated.\n\n"
        f"{{steps}}{steps}{{/steps}}\n\n"
        "Analyze one step at a time and return the next step to be performed. Think step by step. "
        "Restrict the tools to the list provided in the request.\n" + TOOL_HINT
    )


def create_initial_state(task: str, max_iterations: int) -> dict[str, Any]:
    """Create initial driver state with the system and task messages."""
    return {
        "messages": [ConversationMessage.system(SYSTEM_PROMPT), ConversationMessage.user(task)],
        "transcript": [],
        "pending_tool_calls": [],
        "phase": DriverPhase.AWAITING_MODEL,
        "iteration": 0,
        "max_iterations": max_iterations,
    }


class ConversationDriver:
    """Runs the tool-calling loop for one task."""

    def __init__(self, runtime: DriverRuntime):
        self.runtime = runtime
        self.graph = create_conversation_graph()

    async def run(self, task: str) -> ConversationResult:
        """Drive the model until it stops calling tools or the iteration ceiling is hit.

        Raises:
            ModelServiceError: A non-retryable model failure, or rate limits
                on every retry
        """
        max_iterations = self.runtime.config.max_iterations
        logger.info(f"Starting conversation for session {self.runtime.session.session_id}")

        config = {
            "configurable": {"runtime": self.runtime},
            # agent + tools per iteration, plus the limit node
            "recursion_limit": max_iterations * 2 + 5,
        }
        result = await self.graph.ainvoke(create_initial_state(task, max_iterations), config)
        final = result if isinstance(result, DriverState) else DriverState.model_validate(result)

        validate_tool_messages(final.messages)

        logger.info(
            f"Conversation finished after {final.iteration} iterations, phase {final.phase}, "
            f"tokens in/out {final.total_input_tokens}/{final.total_output_tokens}"
        )
        return ConversationResult(
            messages=final.messages,
            transcript=["Tool Execution Flow:", *final.transcript],
            iterations=final.iteration,
            truncated=final.truncated,
            phase=final.phase,
            usage=LLMUsage(
                input_tokens=final.total_input_tokens,
                output_tokens=final.total_output_tokens,
                total_tokens=final.total_input_tokens + final.total_output_tokens,
                cache_creation_input_tokens=final.cache_creation_tokens,
                cache_read_input_tokens=final.cache_read_tokens,
            ),
        )
