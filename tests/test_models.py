"""Tests for data models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from autobrowser.models.ledger import Invocation, LedgerDocument
from autobrowser.models.llm import ConversationMessage, LLMUsage, ModelReply, ToolCall, validate_tool_messages
from autobrowser.models.tools import ImageContent, TextContent, ToolContent, ToolResult


class TestConversationMessage:
    """Tests for ConversationMessage validation."""

    def test_tool_message_requires_call_id(self):
        """Test that a tool message without a call id is rejected."""
        with pytest.raises(ValidationError, match="tool_call_id"):
            ConversationMessage(role="tool", content="ok")

    def test_tool_calls_only_on_assistant(self):
        """Test that tool calls are rejected on user messages."""
        with pytest.raises(ValidationError, match="assistant"):
            ConversationMessage(role="user", content="hi", tool_calls=[ToolCall(id="c1", name="navigate")])

    def test_call_id_only_on_tool(self):
        """Test that a call id is rejected on non-tool messages."""
        with pytest.raises(ValidationError):
            ConversationMessage(role="assistant", content="hi", tool_call_id="c1")

    def test_constructors(self):
        """Test the convenience constructors."""
        message = ConversationMessage.tool("c1", "Element not found", is_error=True)

        assert message.role == "tool"
        assert message.tool_call_id == "c1"
        assert message.is_error
        assert ConversationMessage.system("s").role == "system"

    def test_reply_to_message(self):
        """Test that a reply becomes an assistant message."""
        reply = ModelReply(content="", tool_calls=[ToolCall(id="c1", name="refresh_page")])

        message = reply.to_message()

        assert message.role == "assistant"
        assert message.content is None
        assert message.tool_calls[0].id == "c1"


class TestToolMessageOrdering:
    """Tests for matching tool results with tool calls."""

    def history(self, *tool_ids):
        assistant = ConversationMessage(
            role="assistant",
            tool_calls=[ToolCall(id="c1", name="navigate"), ToolCall(id="c2", name="click")],
        )
        return [ConversationMessage.user("go"), assistant, *(ConversationMessage.tool(i, "ok") for i in tool_ids)]

    def test_matching_results(self):
        """Test that results answering the preceding calls are accepted."""
        validate_tool_messages(self.history("c1", "c2"))

    def test_unknown_call_id(self):
        """Test that a result for a call that was never made is rejected."""
        with pytest.raises(ValueError, match="c3"):
            validate_tool_messages(self.history("c1", "c3"))

    def test_duplicate_result(self):
        """Test that a call cannot be answered twice."""
        with pytest.raises(ValueError):
            validate_tool_messages(self.history("c1", "c1"))

    def test_result_before_any_call(self):
        """Test that a tool message with no preceding assistant message is rejected."""
        with pytest.raises(ValueError):
            validate_tool_messages([ConversationMessage.user("go"), ConversationMessage.tool("c1", "ok")])


class TestToolResult:
    """Tests for tool result content."""

    def test_content_discriminator(self):
        """Test that content items are parsed by their type field."""
        adapter = TypeAdapter(list[ToolContent])

        items = adapter.validate_python(
            [{"type": "text", "text": "hi"}, {"type": "image", "mime_type": "image/png", "data": b"\x89PNG"}]
        )

        assert isinstance(items[0], TextContent)
        assert isinstance(items[1], ImageContent)

    def test_text_constructor(self):
        """Test the single-text result constructor."""
        result = ToolResult.text("Navigated", is_error=True)

        assert result.is_error
        assert result.content == [TextContent(text="Navigated")]


class TestLedgerModels:
    """Tests for ledger document models."""

    def test_document_parse(self):
        """Test parsing a ledger document written by an earlier session."""
        document = LedgerDocument.model_validate_json(
            '{"commands": [{"tool_name": "navigate", "arguments": {"url": "https://example.com"},'
            ' "result": "Navigated to https://example.com", "timestamp": "2024-05-01T10:00:00Z"}]}'
        )

        assert document.commands[0] == Invocation(
            tool_name="navigate",
            arguments={"url": "https://example.com"},
            result="Navigated to https://example.com",
            timestamp="2024-05-01T10:00:00Z",
        )

    def test_invocation_requires_result(self):
        """Test that an invocation without a result is rejected."""
        with pytest.raises(ValidationError):
            Invocation.model_validate({"tool_name": "navigate"})


class TestLLMUsage:
    """Tests for usage accounting."""

    def test_cache_hit_rate(self):
        """Test cache hit rate over all input tokens."""
        usage = LLMUsage(input_tokens=50, cache_read_input_tokens=150)

        assert usage.cache_hit_rate == 75.0
        assert LLMUsage().cache_hit_rate == 0.0
