"""Fakes shared by the test suite."""

from collections.abc import Awaitable, Callable
from typing import Any

from bs4 import BeautifulSoup
from lxml import etree
from rich.console import Console

from autobrowser.config import AgentConfig
from autobrowser.graphs.state import DriverRuntime
from autobrowser.models.llm import ConversationMessage, ModelReply, ToolCall
from autobrowser.models.session import BrowserSession
from autobrowser.models.tools import ToolDescriptor, ToolResult
from autobrowser.services.catalog import ToolCatalog
from autobrowser.services.executor import ToolExecutor
from autobrowser.services.ledger import InvocationLedger
from autobrowser.services.resolver import Locator

ToolBehaviour = Callable[[dict[str, Any]], Awaitable[ToolResult] | ToolResult]


class FakeBackend:
    """In-memory browser backend with scripted tool behaviour."""

    def __init__(self, tools: dict[str, ToolBehaviour] | None = None, schemas: dict[str, dict | None] | None = None):
        self.tools = tools or {}
        self.schemas = schemas or {}
        self.calls: list[tuple[str, dict[str, Any]]] = []

    async def list_tools(self) -> list[ToolDescriptor]:
        return [
            ToolDescriptor(name=name, description=f"{name} tool", input_schema=self.schemas.get(name))
            for name in self.tools
        ]

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        self.calls.append((name, dict(arguments)))
        outcome = self.tools[name](arguments)
        if isinstance(outcome, ToolResult):
            return outcome
        return await outcome


def text_tool(template: str, is_error: bool = False) -> ToolBehaviour:
    """Tool that answers with ``template`` formatted with its arguments."""

    def behaviour(arguments: dict[str, Any]) -> ToolResult:
        return ToolResult.text(template.format(**arguments), is_error=is_error)

    return behaviour


def browser_tools() -> dict[str, ToolBehaviour]:
    return {
        "navigate": text_tool("Navigated to {url}"),
        "type_text": text_tool("Typed '{text}' into {selector}"),
        "click_button": text_tool("Clicked button {selector}"),
    }


class FakeModelService:
    """Model service that replays a script of replies and exceptions."""

    def __init__(self, script: list[ModelReply | Exception]):
        self.script = list(script)
        self.requests: list[dict[str, Any]] = []

    async def create_message(
        self,
        messages: list[ConversationMessage],
        tools=None,
        temperature: float | None = None,
        tool_choice: str = "auto",
    ) -> ModelReply:
        self.requests.append(
            {"messages": list(messages), "tools": tools, "temperature": temperature, "tool_choice": tool_choice}
        )
        if not self.script:
            raise AssertionError("model called more often than scripted")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def tool_reply(call_id: str, name: str, **arguments: Any) -> ModelReply:
    return ModelReply(content="", tool_calls=[ToolCall(id=call_id, name=name, arguments=arguments)])


def text_reply(text: str) -> ModelReply:
    return ModelReply(content=text)


class HtmlPageQuery:
    """Deterministic PageQuery over a static HTML document."""

    def __init__(self, html: str):
        self.soup = BeautifulSoup(html, "lxml")
        self.tree = etree.HTML(html)
        self.queries: list[Locator] = []

    async def count(self, locator: Locator) -> int:
        self.queries.append(locator)
        if locator.engine == "css":
            return len(self.soup.select(locator.expression))
        return len(self.tree.xpath(locator.expression))


async def open_session(backend: FakeBackend, ledger: InvocationLedger | None = None) -> BrowserSession:
    catalog = ToolCatalog(await backend.list_tools())
    return BrowserSession(backend=backend, catalog=catalog, ledger=ledger if ledger is not None else InvocationLedger())


def make_runtime(
    session: BrowserSession,
    model: FakeModelService,
    config: AgentConfig,
    console: Console,
    wait_for_operator=None,
) -> DriverRuntime:
    return DriverRuntime(
        session=session,
        model=model,
        executor=ToolExecutor(session),
        tools=session.catalog.to_anthropic_tools(),
        config=config,
        console=console,
        wait_for_operator=wait_for_operator,
    )
