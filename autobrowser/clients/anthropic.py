"""Anthropic API client with rate limiting and error classification."""

import asyncio
import json
import os
import time
from dataclasses import dataclass
from typing import Any, Literal

import tiktoken
from anthropic import Anthropic, APIError, APIStatusError, RateLimitError
from anthropic.types import ContentBlock as AnthropicContentBlock
from anthropic.types import Message
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from pydantic import BaseModel

from autobrowser.errors import ModelServiceError, RateLimitedError
from autobrowser.models.llm import (
    ContentBlock,
    ConversationMessage,
    LLMUsage,
    ModelReply,
    TextBlock,
    ToolCall,
    ToolResultBlock,
    ToolUseBlock,
)
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


class CacheControl(BaseModel):
    """Cache control configuration for prompt caching."""

    type: Literal["ephemeral"] = "ephemeral"
    ttl: Literal["5m", "1h"] = "5m"


class AnthropicMessage(BaseModel):
    """Message format for Anthropic API."""

    role: Literal["user", "assistant"]
    content: str | list[ContentBlock]


class AnthropicTool(BaseModel):
    """Tool definition for Anthropic API."""

    name: str
    description: str
    input_schema: dict[str, Any]
    cache_control: CacheControl | None = None


@dataclass
class AnthropicConfig:
    """Configuration for Anthropic API client."""

    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.2

    requests_per_minute: int = 50
    tokens_per_minute: int = 40_000

    @classmethod
    def from_env(cls) -> "AnthropicConfig":
        """Build a configuration from ANTHROPIC_* environment variables."""
        return cls(
            model=os.getenv("ANTHROPIC_MODEL", cls.model),
            max_tokens=int(os.getenv("ANTHROPIC_MAX_TOKENS", cls.max_tokens)),
        )


class AnthropicRateLimiter:
    """Client-side pacing using the limits library."""

    def __init__(self, requests_per_minute: int = 50, tokens_per_minute: int = 40_000):
        """Initialize rate limiter.

        Args:
            requests_per_minute: Maximum requests per minute
            tokens_per_minute: Maximum tokens per minute
        """
        self.storage = MemoryStorage()
        self.limiter = MovingWindowRateLimiter(self.storage)

        self.request_limit = parse(f"{requests_per_minute}/minute")
        self.token_limit = parse(f"{tokens_per_minute}/minute")

    async def check_rate_limit(self, estimated_tokens: int, identifier: str = "anthropic") -> None:
        """Wait until the request fits within the configured limits."""
        logger.debug(f"Checking rate limit for {estimated_tokens} tokens, identifier: {identifier}")

        if not self.limiter.hit(self.request_limit, identifier):
            await self._wait_for_window(self.request_limit, identifier, "Request")

        token_identifier = f"{identifier}_tokens"
        cost = min(estimated_tokens, self.token_limit.amount)
        if not self.limiter.hit(self.token_limit, token_identifier, cost=cost):
            await self._wait_for_window(self.token_limit, token_identifier, "Token")

    async def _wait_for_window(self, limit, identifier: str, label: str) -> None:
        window_stats = self.limiter.get_window_stats(limit, identifier)
        if window_stats:
            # reset_time is an epoch timestamp
            wait_time = max(0.0, window_stats.reset_time - time.time())
            if wait_time > 0:
                logger.warning(f"{label} rate limit exceeded, waiting {wait_time:.2f}s")
                await asyncio.sleep(wait_time)


def to_anthropic_messages(messages: list[ConversationMessage]) -> tuple[str, list[AnthropicMessage]]:
    """Translate conversation history into a system prompt and Anthropic messages.

    System messages are joined into the system prompt. Consecutive tool
    messages are merged into one user message of tool_result blocks, as the
    API expects every result of a turn in the following user message.
    """
    system_parts: list[str] = []
    converted: list[AnthropicMessage] = []

    for message in messages:
        if message.role == "system":
            if message.content:
                system_parts.append(message.content)
            continue

        if message.role == "tool":
            block = ToolResultBlock(
                tool_use_id=message.tool_call_id,
                content=message.content or "",
                is_error=message.is_error,
            )
            previous = converted[-1] if converted else None
            if (
                previous is not None
                and previous.role == "user"
                and isinstance(previous.content, list)
                and all(isinstance(b, ToolResultBlock) for b in previous.content)
            ):
                previous.content.append(block)
            else:
                converted.append(AnthropicMessage(role="user", content=[block]))
            continue

        if message.role == "assistant":
            blocks: list[ContentBlock] = []
            if message.content:
                blocks.append(TextBlock(text=message.content))
            for call in message.tool_calls or []:
                blocks.append(ToolUseBlock(id=call.id, name=call.name, input=call.arguments))
            converted.append(AnthropicMessage(role="assistant", content=blocks or ""))
            continue

        converted.append(AnthropicMessage(role="user", content=message.content or ""))

    return "\n\n".join(system_parts), converted


class AnthropicClient:
    """Low-level Anthropic API client with rate limiting and error classification.

    Retries are not performed here. The SDK's own retries are disabled and
    rate limits surface as RateLimitedError so the caller owns retry policy.
    """

    tokenizer: tiktoken.Encoding | None = None
    api_key: str
    client: Anthropic
    config: AnthropicConfig
    rate_limiter: AnthropicRateLimiter

    def __init__(self, api_key: str | None = None, config: AnthropicConfig | None = None):
        """Initialize Anthropic client.

        Args:
            api_key: Anthropic API key (defaults to ANTHROPIC_API_KEY env var)
            config: Client configuration
        """
        anthropic_api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        if not anthropic_api_key:
            raise ValueError("ANTHROPIC_API_KEY environment variable is required")

        self.api_key = anthropic_api_key
        self.config = config or AnthropicConfig.from_env()

        self.client = Anthropic(api_key=self.api_key, max_retries=0)
        self.rate_limiter = AnthropicRateLimiter(self.config.requests_per_minute, self.config.tokens_per_minute)

        # Initialize tokenizer for token estimation
        try:
            # Close approximation for Claude
            self.tokenizer = tiktoken.encoding_for_model("gpt-4")
        except Exception:
            self.tokenizer = None

    async def create_message(
        self,
        messages: list[ConversationMessage],
        tools: list[AnthropicTool] | None = None,
        temperature: float | None = None,
        tool_choice: Literal["auto", "none"] = "auto",
        **kwargs,
    ) -> ModelReply:
        """Submit the conversation and return the model's reply.

        Args:
            messages: Full conversation history, system messages included
            tools: Available tools for Claude
            temperature: Sampling temperature (defaults to the configured one)
            tool_choice: "auto" lets the model decide, "none" forbids tool use
            **kwargs: Additional parameters for Claude API

        Returns:
            Provider-agnostic reply

        Raises:
            RateLimitedError: The API answered with a rate limit
            ModelServiceError: Any other API failure
        """
        system_prompt, anthropic_messages = to_anthropic_messages(messages)

        estimated_tokens = self._estimate_tokens(anthropic_messages, system_prompt)
        logger.debug(f"Estimated tokens: {estimated_tokens}")
        await self.rate_limiter.check_rate_limit(estimated_tokens)

        request_params: dict[str, Any] = {
            "model": kwargs.get("model", self.config.model),
            "max_tokens": kwargs.get("max_tokens", self.config.max_tokens),
            "temperature": self.config.temperature if temperature is None else temperature,
            "messages": [msg.model_dump() for msg in anthropic_messages],
        }
        if system_prompt:
            request_params["system"] = system_prompt
        if tools:
            request_params["tools"] = [tool.model_dump(exclude_none=True) for tool in tools]
            request_params["tool_choice"] = {"type": tool_choice}

        logger.debug(
            f"Making Anthropic API call with model: {request_params['model']}, "
            f"{len(anthropic_messages)} messages, {len(tools) if tools else 0} tools"
        )
        response = await self._request(request_params)

        usage = LLMUsage()
        if response.usage:
            usage = LLMUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
                cache_creation_input_tokens=response.usage.cache_creation_input_tokens or 0,
                cache_read_input_tokens=response.usage.cache_read_input_tokens or 0,
            )

        blocks = self._convert_content_blocks(response.content)
        logger.debug(f"Response received - Stop reason: {response.stop_reason}, Content blocks: {len(blocks)}")

        return ModelReply(
            content="\n".join(b.text for b in blocks if isinstance(b, TextBlock)),
            tool_calls=[
                ToolCall(id=b.id, name=b.name, arguments=b.input) for b in blocks if isinstance(b, ToolUseBlock)
            ],
            stop_reason=response.stop_reason,
            usage=usage,
            model=response.model,
        )

    async def _request(self, request_params: dict[str, Any]) -> Message:
        """Execute one Anthropic API request and classify its failure."""
        try:
            return await asyncio.to_thread(self.client.messages.create, **request_params)
        except RateLimitError as e:
            raise RateLimitedError(f"Rate limit exceeded: {e}") from e
        except APIStatusError as e:
            if e.status_code == 429:
                raise RateLimitedError(f"Rate limit exceeded: {e}") from e
            raise ModelServiceError(f"Anthropic API error ({e.status_code}): {e}") from e
        except APIError as e:
            raise ModelServiceError(f"Anthropic API error: {e}") from e

    def _convert_content_blocks(self, anthropic_content: list[AnthropicContentBlock]) -> list[ContentBlock]:
        """Convert Anthropic content blocks to our ContentBlock types."""
        converted_blocks: list[ContentBlock] = []
        for block in anthropic_content:
            block_dict = block.model_dump() if hasattr(block, "model_dump") else dict(block)

            if block_dict.get("type") == "text":
                converted_blocks.append(TextBlock.model_validate(block_dict))
            elif block_dict.get("type") == "tool_use":
                converted_blocks.append(ToolUseBlock.model_validate(block_dict))
            else:
                logger.warning(f"Unknown content block type: {block_dict.get('type')}")

        return converted_blocks

    def _estimate_tokens(self, messages: list[AnthropicMessage], system_prompt: str) -> int:
        """Estimate token count for rate limiting."""
        text_content = system_prompt

        for message in messages:
            if isinstance(message.content, str):
                text_content += message.content
            else:
                for block in message.content:
                    if isinstance(block, TextBlock):
                        text_content += block.text
                    elif isinstance(block, ToolResultBlock):
                        text_content += block.content
                    elif isinstance(block, ToolUseBlock):
                        text_content += json.dumps(block.input)

        return self.estimate_message_tokens(text_content)

    def estimate_message_tokens(self, message: str) -> int:
        """Estimate token count for a single message."""
        try:
            return len(self.tokenizer.encode(message)) if self.tokenizer else len(message) // 4
        except Exception:
            # Fallback: roughly 4 characters per token
            return len(message) // 4


_anthropic_client: AnthropicClient | None = None


def get_anthropic_client() -> AnthropicClient:
    """Get or create Anthropic client instance."""
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = AnthropicClient()
    return _anthropic_client
