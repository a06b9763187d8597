"""Tests for the conversation driver graph."""

from unittest.mock import AsyncMock, call, patch

import pytest
from fakes import FakeBackend, FakeModelService, browser_tools, make_runtime, open_session, text_reply, tool_reply

from autobrowser.config import AgentConfig
from autobrowser.errors import ModelServiceError, RateLimitedError
from autobrowser.graphs.conversation import (
    DEFAULT_TASK,
    SYSTEM_PROMPT,
    TOOL_HINT,
    ConversationDriver,
    build_task_prompt,
)
from autobrowser.graphs.edges import route_agent_output, route_tool_output
from autobrowser.graphs.nodes import (
    ITERATION_LIMIT_NOTICE,
    MANUAL_STEP_PROMPT,
    _request_with_retries,
    agent_node,
    is_target_navigation,
)
from autobrowser.graphs.state import DriverPhase, DriverState
from autobrowser.models.llm import ConversationMessage, ToolCall, validate_tool_messages

SEARCH_SCRIPT = [
    tool_reply("call_1", "navigate", url="https://example.com"),
    tool_reply("call_2", "type_text", selector="Search", text="hello"),
    tool_reply("call_3", "click_button", selector="Search"),
    text_reply("Search results for hello are shown."),
]


async def run_driver(
    script, config, console, backend=None, wait_for_operator=None, task="Search example.com for hello"
):
    backend = backend or FakeBackend(browser_tools())
    session = await open_session(backend)
    model = FakeModelService(script)
    runtime = make_runtime(session, model, config, console, wait_for_operator=wait_for_operator)
    result = await ConversationDriver(runtime).run(task)
    return result, model, session


class TestConversationLoop:
    """Tests for the agent/tools loop."""

    @pytest.mark.asyncio
    async def test_three_step_search(self, fast_config, console):
        """Test a run where the model navigates, types, clicks and then answers."""
        result, model, session = await run_driver(SEARCH_SCRIPT, fast_config, console)

        assert len(model.requests) == 4
        assert result.final_text == "Search results for hello are shown."
        assert result.iterations == 4
        assert not result.truncated
        assert result.phase == DriverPhase.DONE

        tool_messages = [m for m in result.messages if m.role == "tool"]
        assert [m.tool_call_id for m in tool_messages] == ["call_1", "call_2", "call_3"]
        assert tool_messages[1].content == "Typed 'hello' into Search"
        validate_tool_messages(result.messages)

        assert [i.tool_name for i in session.ledger] == ["navigate", "type_text", "click_button"]

    @pytest.mark.asyncio
    async def test_first_request(self, fast_config, console):
        """Test the system prompt, task, tools and temperature of the first request."""
        _, model, session = await run_driver([text_reply("Nothing to do.")], fast_config, console)

        request = model.requests[0]
        assert [m.role for m in request["messages"]] == ["system", "user"]
        assert request["messages"][0].content == SYSTEM_PROMPT
        assert request["messages"][1].content == "Search example.com for hello"
        assert [t.name for t in request["tools"]] == session.catalog.get_tool_names()
        assert request["temperature"] == 0.2
        assert request["tool_choice"] == "auto"

    @pytest.mark.asyncio
    async def test_history_grows_between_requests(self, fast_config, console):
        """Test that each request carries the full history so far."""
        _, model, _ = await run_driver(SEARCH_SCRIPT, fast_config, console)

        sizes = [len(r["messages"]) for r in model.requests]
        assert sizes == [2, 4, 6, 8]
        last = model.requests[-1]["messages"]
        assert [m.role for m in last[2:]] == ["assistant", "tool"] * 3

    @pytest.mark.asyncio
    async def test_parallel_calls_run_in_order(self, fast_config, console):
        """Test that several calls in one reply are executed in order with one result each."""
        reply = tool_reply("call_a", "navigate", url="https://example.com")
        reply.tool_calls.append(ToolCall(id="call_b", name="click_button", arguments={"selector": "Search"}))
        backend = FakeBackend(browser_tools())

        result, _, _ = await run_driver([reply, text_reply("Done.")], fast_config, console, backend=backend)

        assert [name for name, _ in backend.calls] == ["navigate", "click_button"]
        assert [m.tool_call_id for m in result.messages if m.role == "tool"] == ["call_a", "call_b"]
        assert result.iterations == 2

    @pytest.mark.asyncio
    async def test_transcript(self, fast_config, console):
        """Test the human-readable transcript."""
        result, _, _ = await run_driver(SEARCH_SCRIPT[2:], fast_config, console)

        assert result.transcript == [
            "Tool Execution Flow:",
            "Tool 1: click_button",
            'Arguments: {"selector": "Search"}',
            "Result: Clicked button Search",
            "Assistant: Search results for hello are shown.",
        ]

    @pytest.mark.asyncio
    async def test_unknown_tool_reported_to_model(self, fast_config, console):
        """Test that a call to an unknown tool becomes an error result and the run continues."""
        script = [tool_reply("call_1", "scroll", direction="down"), text_reply("I cannot scroll.")]

        result, model, session = await run_driver(script, fast_config, console)

        tool_message = [m for m in result.messages if m.role == "tool"][0]
        assert tool_message.content == "Error executing scroll: tool not found: scroll"
        assert tool_message.is_error
        assert len(model.requests) == 2
        assert len(session.ledger) == 0

    @pytest.mark.asyncio
    async def test_iteration_ceiling(self, console):
        """Test that the run stops after the configured number of iterations."""
        config = AgentConfig(max_iterations=2, iteration_delay=0)
        script = [
            tool_reply("call_1", "navigate", url="https://example.com"),
            tool_reply("call_2", "click_button", selector="Next"),
        ]

        result, model, _ = await run_driver(script, config, console)

        assert len(model.requests) == 2
        assert result.truncated
        assert result.iterations == 2
        assert result.phase == DriverPhase.DONE
        assert result.transcript[-1] == ITERATION_LIMIT_NOTICE
        validate_tool_messages(result.messages)


class TestModelFailures:
    """Tests for model-service error handling."""

    @pytest.mark.asyncio
    async def test_rate_limit_recovers(self, console):
        """Test that rate-limited requests are retried until one succeeds."""
        config = AgentConfig(iteration_delay=0, retry_backoff=0)
        script = [RateLimitedError("429"), RateLimitedError("429"), text_reply("Done.")]

        result, model, _ = await run_driver(script, config, console)

        assert len(model.requests) == 3
        assert result.final_text == "Done."
        assert [m.role for m in result.messages] == ["system", "user", "assistant"]

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted(self, console):
        """Test that rate limits on every attempt end the run."""
        config = AgentConfig(iteration_delay=0, retry_backoff=0, max_retries=3)

        with pytest.raises(RateLimitedError):
            await run_driver([RateLimitedError("429")] * 3, config, console)

    @pytest.mark.asyncio
    async def test_fatal_error_propagates(self, fast_config, console):
        """Test that a non-rate-limit failure is not retried."""
        model_error = ModelServiceError("invalid request")

        with pytest.raises(ModelServiceError, match="invalid request"):
            await run_driver([model_error, text_reply("unreachable")], fast_config, console)

    @pytest.mark.asyncio
    async def test_linear_backoff(self, fast_config, console):
        """Test that retry waits grow linearly with the attempt number."""
        session = await open_session(FakeBackend(browser_tools()))
        model = FakeModelService([RateLimitedError("429"), RateLimitedError("429"), text_reply("ok")])
        runtime = make_runtime(session, model, fast_config, console)

        with patch("autobrowser.graphs.nodes.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            reply = await _request_with_retries(runtime, [ConversationMessage.user("hi")])

        assert reply.content == "ok"
        assert mock_sleep.await_args_list == [call(2.0), call(4.0)]


class TestAgentNode:
    """Tests for the agent node in isolation."""

    @pytest.mark.asyncio
    async def test_delay_between_iterations(self, console):
        """Test that the delay applies before every request except the first."""
        session = await open_session(FakeBackend(browser_tools()))
        model = FakeModelService([text_reply("a"), text_reply("b")])
        runtime = make_runtime(session, model, AgentConfig(iteration_delay=2.0), console)
        config = {"configurable": {"runtime": runtime}}

        with patch("autobrowser.graphs.nodes.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            first = await agent_node(DriverState(iteration=0), config)
            mock_sleep.assert_not_awaited()
            await agent_node(DriverState(iteration=1), config)

        mock_sleep.assert_awaited_once_with(2.0)
        assert first["iteration"] == 1
        assert first["phase"] == DriverPhase.DONE

    def test_routing(self):
        """Test graph routing decisions."""
        pending = [ToolCall(id="c1", name="navigate")]

        assert route_agent_output(DriverState(pending_tool_calls=pending)) == "tools"
        assert route_agent_output(DriverState()) == "end"
        assert route_tool_output(DriverState(iteration=5, max_iterations=5)) == "limit"
        assert route_tool_output(DriverState(iteration=4, max_iterations=5)) == "agent"


class TestManualIntervention:
    """Tests for the one-time pause at the target origin."""

    @pytest.mark.asyncio
    async def test_pause_once(self, console):
        """Test that only the first successful navigation to the target pauses."""
        config = AgentConfig(iteration_delay=0, target_origin="https://example.com")
        wait = AsyncMock()
        script = [
            tool_reply("call_1", "navigate", url="https://example.com/login"),
            tool_reply("call_2", "navigate", url="https://example.com/account"),
            text_reply("Done."),
        ]

        await run_driver(script, config, console, wait_for_operator=wait)

        wait.assert_awaited_once_with(MANUAL_STEP_PROMPT)

    @pytest.mark.asyncio
    async def test_other_origin_does_not_pause(self, console):
        """Test that navigation elsewhere does not pause."""
        config = AgentConfig(iteration_delay=0, target_origin="https://example.com")
        wait = AsyncMock()
        script = [tool_reply("call_1", "navigate", url="https://other.example.org/"), text_reply("Done.")]

        await run_driver(script, config, console, wait_for_operator=wait)

        wait.assert_not_awaited()

    def test_target_navigation_matching(self):
        """Test origin comparison for navigation calls."""
        target = "https://Example.com"

        assert is_target_navigation(ToolCall(id="1", name="browser_navigate", arguments={"url": "https://example.com/x"}), target)
        assert not is_target_navigation(ToolCall(id="1", name="navigate", arguments={"url": "http://example.com/"}), target)
        assert not is_target_navigation(ToolCall(id="1", name="click", arguments={"url": "https://example.com/"}), target)
        assert not is_target_navigation(ToolCall(id="1", name="navigate", arguments={"url": "https://example.com/"}), None)


class TestTaskPrompt:
    """Tests for building the first user message."""

    def test_default_task(self):
        """Test the task used when no file is given."""
        assert build_task_prompt(None) == DEFAULT_TASK + TOOL_HINT
        assert build_task_prompt("  \n") == DEFAULT_TASK + TOOL_HINT

    def test_steps_wrapped(self):
        """Test that task file contents are wrapped in step delimiters."""
        prompt = build_task_prompt("1. Open example.com\n2. Click Search")

        assert "{steps}1. Open example.com\n2. Click Search{/steps}" in prompt
        assert prompt.endswith(TOOL_HINT)
