"""LLM-related data models and types (provider-agnostic)."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator


# Content block types
class TextBlock(BaseModel):
    """Text content block."""

    type: Literal["text"] = "text"
    text: str

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


class ToolUseBlock(BaseModel):
    """Tool use content block."""

    type: Literal["tool_use"] = "tool_use"
    id: str
    name: str
    input: dict[str, Any]

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


class ToolResultBlock(BaseModel):
    """Tool result content block."""

    type: Literal["tool_result"] = "tool_result"
    tool_use_id: str
    content: str
    is_error: bool = False

    class Config:
        extra = "ignore"  # Ignore any additional fields from Anthropic


ContentBlock = TextBlock | ToolUseBlock | ToolResultBlock


class ToolCall(BaseModel):
    """A tool invocation requested by the model."""

    id: str
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class ConversationMessage(BaseModel):
    """One entry of the append-only conversation history."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str | None = None
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    is_error: bool = False

    @model_validator(mode="after")
    def _check_role_fields(self) -> "ConversationMessage":
        if self.tool_calls and self.role != "assistant":
            raise ValueError("tool_calls are only allowed on assistant messages")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool messages require a tool_call_id")
        if self.role != "tool" and self.tool_call_id:
            raise ValueError("tool_call_id is only allowed on tool messages")
        return self

    @classmethod
    def system(cls, content: str) -> "ConversationMessage":
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "ConversationMessage":
        return cls(role="user", content=content)

    @classmethod
    def tool(cls, tool_call_id: str, content: str, is_error: bool = False) -> "ConversationMessage":
        return cls(role="tool", content=content, tool_call_id=tool_call_id, is_error=is_error)


def validate_tool_messages(messages: list[ConversationMessage]) -> None:
    """Check that every tool message answers a call of the nearest preceding assistant message.

    Raises:
        ValueError: If a tool message has no matching tool call
    """
    open_calls: set[str] | None = None
    for index, message in enumerate(messages):
        if message.role == "assistant":
            open_calls = {call.id for call in message.tool_calls or []}
        elif message.role == "tool":
            if open_calls is None or message.tool_call_id not in open_calls:
                raise ValueError(f"Message {index} answers unknown tool call {message.tool_call_id}")
            open_calls.discard(message.tool_call_id)


class DriverPhase(StrEnum):
    """Phase of the conversation driver."""

    AWAITING_MODEL = "awaiting_model"
    PROCESSING_TOOL_CALLS = "processing_tool_calls"
    DONE = "done"


@dataclass
class LLMUsage:
    """Token/resource usage information from LLM provider."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0

    @property
    def cache_hit_rate(self) -> float:
        """Calculate cache hit rate as percentage."""
        total_input = self.input_tokens + self.cache_read_input_tokens + self.cache_creation_input_tokens
        if total_input == 0:
            return 0.0
        return (self.cache_read_input_tokens / total_input) * 100


@dataclass
class ModelReply:
    """Provider-agnostic reply to one model request."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    stop_reason: str | None = None
    usage: LLMUsage | None = None
    model: str = ""

    def to_message(self) -> ConversationMessage:
        """Convert the reply into the assistant message appended to the history."""
        return ConversationMessage(
            role="assistant",
            content=self.content or None,
            tool_calls=list(self.tool_calls) or None,
        )


@dataclass
class ConversationResult:
    """Result from running the conversation driver."""

    messages: list[ConversationMessage]
    transcript: list[str]
    iterations: int
    truncated: bool
    usage: LLMUsage
    phase: DriverPhase

    @property
    def final_text(self) -> str:
        """Text of the last assistant message, if any."""
        for message in reversed(self.messages):
            if message.role == "assistant" and message.content:
                return message.content
        return ""

    @property
    def tool_calls(self) -> list[ToolCall]:
        """All tool calls emitted during the run, in order."""
        return [call for m in self.messages if m.role == "assistant" for call in m.tool_calls or []]
