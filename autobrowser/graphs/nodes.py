"""Node implementations for the conversation graph."""

import asyncio
import json
from typing import Any
from urllib.parse import urlparse

from langchain_core.runnables import RunnableConfig
from rich.markup import escape

from autobrowser.errors import BackendExecutionError, ModelServiceError, RateLimitedError, ToolNotFoundError
from autobrowser.graphs.state import DriverPhase, DriverRuntime, DriverState
from autobrowser.models.llm import ConversationMessage, ModelReply, ToolCall
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

ITERATION_LIMIT_NOTICE = "Reached maximum number of iterations. Stopping."
MANUAL_STEP_PROMPT = "Complete any manual steps in the browser (for example logging in), then press Enter to continue"


def get_runtime(config: RunnableConfig) -> DriverRuntime:
    return config["configurable"]["runtime"]


async def agent_node(state: DriverState, config: RunnableConfig) -> dict[str, Any]:
    """Ask the model for the next step.

    This node:
    1. Waits the inter-iteration delay (not before the first request)
    2. Submits the full history and tool catalog, retrying rate limits
    3. Appends the assistant message and hands its tool calls to routing
    """
    runtime = get_runtime(config)
    iteration = state.iteration + 1

    if state.iteration > 0 and runtime.config.iteration_delay > 0:
        await asyncio.sleep(runtime.config.iteration_delay)

    logger.info(f"Iteration {iteration}/{state.max_iterations}")
    if runtime.config.debug:
        logger.debug(
            "Model request: "
            + json.dumps(
                {
                    "messages": [m.model_dump(exclude_none=True) for m in state.messages],
                    "tools": [t.model_dump(exclude_none=True) for t in runtime.tools],
                    "temperature": runtime.config.temperature,
                    "tool_choice": "auto",
                },
                indent=2,
            )
        )

    reply = await _request_with_retries(runtime, state.messages)

    if runtime.config.debug:
        logger.debug(
            "Model response: "
            + json.dumps(
                {
                    "content": reply.content,
                    "tool_calls": [c.model_dump() for c in reply.tool_calls],
                    "stop_reason": reply.stop_reason,
                },
                indent=2,
            )
        )

    transcript: list[str] = []
    if reply.content:
        runtime.console.print(f"\n[bold green]Assistant:[/bold green] {escape(reply.content)}")
        transcript.append(f"Assistant: {reply.content}")

    updates: dict[str, Any] = {
        "messages": [reply.to_message()],
        "transcript": transcript,
        "pending_tool_calls": reply.tool_calls,
        "iteration": iteration,
        "phase": DriverPhase.PROCESSING_TOOL_CALLS if reply.tool_calls else DriverPhase.DONE,
    }
    if reply.usage:
        updates["total_input_tokens"] = state.total_input_tokens + reply.usage.input_tokens
        updates["total_output_tokens"] = state.total_output_tokens + reply.usage.output_tokens
        updates["cache_read_tokens"] = state.cache_read_tokens + reply.usage.cache_read_input_tokens
        updates["cache_creation_tokens"] = state.cache_creation_tokens + reply.usage.cache_creation_input_tokens

    if reply.tool_calls:
        logger.info(f"Agent requesting {len(reply.tool_calls)} tool calls")
    else:
        logger.info("Agent finished without tool calls")
    return updates


async def _request_with_retries(runtime: DriverRuntime, messages: list[ConversationMessage]) -> ModelReply:
    """Submit one model request, retrying rate limits with linear backoff.

    Any other model-service error propagates and ends the run.
    """
    max_retries = max(1, runtime.config.max_retries)
    for attempt in range(1, max_retries + 1):
        try:
            return await runtime.model.create_message(
                messages=messages,
                tools=runtime.tools,
                temperature=runtime.config.temperature,
                tool_choice="auto",
            )
        except RateLimitedError as e:
            if attempt == max_retries:
                logger.error(f"Rate limited on all {max_retries} attempts")
                raise
            wait_time = runtime.config.retry_backoff * attempt
            logger.warning(f"Rate limited (attempt {attempt}/{max_retries}), retrying in {wait_time:.1f}s: {e}")
            runtime.console.print(f"[yellow]Rate limited, retrying in {wait_time:.1f}s[/yellow]")
            await asyncio.sleep(wait_time)

    raise ModelServiceError(f"Failed to complete request after {max_retries} attempts")


async def tools_node(state: DriverState, config: RunnableConfig) -> dict[str, Any]:
    """Execute the pending tool calls strictly in order.

    Every call gets exactly one tool message carrying its call id. Failed
    calls are reported to the model as error text and the run continues.
    """
    runtime = get_runtime(config)
    executed_before = sum(1 for m in state.messages if m.role == "tool")
    intervention_done = state.intervention_done

    messages: list[ConversationMessage] = []
    transcript: list[str] = []

    for offset, call in enumerate(state.pending_tool_calls, start=1):
        number = executed_before + offset
        arguments_json = json.dumps(call.arguments)
        runtime.console.print(f"\n[bold cyan]Tool {number}:[/bold cyan] {escape(call.name)}")
        runtime.console.print(escape(f"Arguments: {arguments_json}"))
        transcript += [f"Tool {number}: {call.name}", f"Arguments: {arguments_json}"]

        try:
            result = await runtime.executor.execute(call.name, call.arguments)
            content, is_error = result.text, result.is_error
        except (ToolNotFoundError, BackendExecutionError) as e:
            logger.error(f"Tool {call.name} failed: {e}")
            content, is_error = f"Error executing {call.name}: {e}", True

        style = "red" if is_error else "white"
        runtime.console.print(f"[{style}]{escape(f'Result: {content}')}[/{style}]")
        transcript.append(f"Result: {content}")
        messages.append(ConversationMessage.tool(call.id, content, is_error=is_error))

        if not intervention_done and not is_error and is_target_navigation(call, runtime.config.target_origin):
            await _pause_for_operator(runtime)
            intervention_done = True

    return {
        "messages": messages,
        "transcript": transcript,
        "pending_tool_calls": [],
        "phase": DriverPhase.AWAITING_MODEL,
        "intervention_done": intervention_done,
    }


def iteration_limit_node(state: DriverState, config: RunnableConfig) -> dict[str, Any]:
    """Stop the run at the iteration ceiling."""
    runtime = get_runtime(config)
    runtime.console.print(f"\n[bold yellow]{ITERATION_LIMIT_NOTICE}[/bold yellow]")
    return {
        "transcript": [ITERATION_LIMIT_NOTICE],
        "truncated": True,
        "phase": DriverPhase.DONE,
    }


def origin_of(url: str) -> str | None:
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}"


def is_target_navigation(call: ToolCall, target_origin: str | None) -> bool:
    """Whether a call navigates to the configured target origin."""
    if not target_origin or not call.name.endswith("navigate"):
        return False
    url = call.arguments.get("url")
    if not isinstance(url, str):
        return False
    target = origin_of(target_origin)
    return target is not None and origin_of(url) == target


async def _pause_for_operator(runtime: DriverRuntime) -> None:
    if runtime.wait_for_operator is None:
        logger.warning("Reached target origin but no operator prompt is configured, continuing")
        return
    logger.info("Pausing for manual operator steps")
    await runtime.wait_for_operator(MANUAL_STEP_PROMPT)
