"""LLM service boundary and single-shot helpers built on it."""

import json
import re
from typing import Any, Literal, Protocol

from autobrowser.clients.anthropic import AnthropicTool, get_anthropic_client
from autobrowser.models.llm import ConversationMessage, ModelReply
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

REPAIR_SYSTEM_PROMPT = (
    "Analyze the content of the current command snapshot and the previous command's updated snapshot. "
    "The failed command was recorded against the previous snapshot and no longer works on the current page. "
    "Work out the arguments the failed command needs now. "
    "Return ONLY a JSON dictionary with the new arguments for the failed command, with no explanation."
)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)


class ModelService(Protocol):
    """Interface for the language-model service."""

    async def create_message(
        self,
        messages: list[ConversationMessage],
        tools: list[AnthropicTool] | None = None,
        temperature: float | None = None,
        tool_choice: Literal["auto", "none"] = "auto",
    ) -> ModelReply:
        """Submit the conversation and return the model's reply."""
        ...


def parse_argument_mapping(text: str) -> dict[str, Any]:
    """Parse a model answer that should be a JSON object.

    Raises:
        ValueError: If the answer is not a JSON object
    """
    candidate = text.strip()
    fenced = _CODE_FENCE.match(candidate)
    if fenced:
        candidate = fenced.group(1)

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ValueError(f"Model answer is not valid JSON: {e}") from e

    if not isinstance(parsed, dict):
        raise ValueError(f"Model answer is a {type(parsed).__name__}, expected a JSON object")
    return parsed


class LLMService:
    """High-level LLM operations that are not part of the tool-calling loop."""

    def __init__(self, client: ModelService | None = None, temperature: float = 0.2):
        """Initialize LLM service.

        Args:
            client: Model service (defaults to the global Anthropic client)
            temperature: Sampling temperature for single-shot requests
        """
        self.client = client or get_anthropic_client()
        self.temperature = temperature

    async def suggest_arguments(
        self,
        tool_name: str,
        failed_arguments: dict[str, Any],
        previous_snapshot: str,
        current_snapshot: str,
    ) -> dict[str, Any]:
        """Ask the model for replacement arguments for a failing replayed call.

        Args:
            tool_name: Name of the tool that failed
            failed_arguments: Arguments that no longer work
            previous_snapshot: Result of the preceding step in the current replay
            current_snapshot: Result originally recorded for the failing step

        Returns:
            Replacement arguments

        Raises:
            ModelServiceError: The model request failed
            ValueError: The answer was not a JSON object
        """
        user_content = (
            f"Previous command updated snapshot: {previous_snapshot}\n"
            f"Failed command: {tool_name}\n"
            f"Current tool snapshot: {current_snapshot}\n"
            f"Current tool arguments: {json.dumps(failed_arguments)}"
        )
        messages = [
            ConversationMessage.system(REPAIR_SYSTEM_PROMPT),
            ConversationMessage.user(user_content),
        ]

        logger.info(f"Requesting argument repair for {tool_name}")
        reply = await self.client.create_message(
            messages=messages, tools=None, temperature=self.temperature, tool_choice="none"
        )
        arguments = parse_argument_mapping(reply.content)
        logger.debug(f"Suggested arguments for {tool_name}: {arguments}")
        return arguments
