"""State definitions for the LangGraph conversation driver."""

import operator
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated

from pydantic import BaseModel, Field
from rich.console import Console

from autobrowser.config import AgentConfig
from autobrowser.models.llm import ConversationMessage, DriverPhase, ToolCall

if TYPE_CHECKING:
    from autobrowser.clients.anthropic import AnthropicTool
    from autobrowser.models.session import BrowserSession
    from autobrowser.services.executor import ToolExecutor
    from autobrowser.services.llm import ModelService

OperatorWait = Callable[[str], Awaitable[None]]


class DriverState(BaseModel):
    """Conversation state passed through all nodes of the graph."""

    # Append-only history; nodes return only the new messages
    messages: Annotated[list[ConversationMessage], operator.add] = Field(default_factory=list)
    transcript: Annotated[list[str], operator.add] = Field(default_factory=list)

    pending_tool_calls: list[ToolCall] = Field(default_factory=list)
    phase: DriverPhase = DriverPhase.AWAITING_MODEL

    iteration: int = 0
    max_iterations: int = 5
    truncated: bool = False
    intervention_done: bool = False

    # Token usage tracking
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0


@dataclass
class DriverRuntime:
    """Collaborators the graph nodes use, passed in the run config."""

    session: "BrowserSession"
    model: "ModelService"
    executor: "ToolExecutor"
    tools: list["AnthropicTool"]
    config: AgentConfig
    console: Console = field(default_factory=Console)
    wait_for_operator: OperatorWait | None = None
