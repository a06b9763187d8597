"""Tool catalog and tool result models."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ToolDescriptor(BaseModel):
    """A tool advertised by the browser backend."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    input_schema: dict[str, Any] | None = None


class TextContent(BaseModel):
    """Text item of a tool result."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """Binary image item of a tool result."""

    type: Literal["image"] = "image"
    mime_type: str
    data: bytes


ToolContent = Annotated[TextContent | ImageContent, Field(discriminator="type")]


class ToolResult(BaseModel):
    """Raw result returned by a backend for one tool call."""

    content: list[ToolContent] = Field(default_factory=list)
    is_error: bool = False

    @classmethod
    def text(cls, text: str, is_error: bool = False) -> "ToolResult":
        """Build a single-text-item result."""
        return cls(content=[TextContent(text=text)], is_error=is_error)


class ExecutionResult(BaseModel):
    """Normalized result of an executed tool call."""

    tool_name: str
    arguments: dict[str, Any] = Field(default_factory=dict)
    text: str
    is_error: bool = False
