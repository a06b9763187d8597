"""Built-in browser backend: Chrome over CDP, driven by Playwright."""

from typing import Any

from playwright.async_api import Browser, Playwright, async_playwright

from autobrowser.backends.chrome import ChromeLauncher
from autobrowser.errors import BackendUnavailableError
from autobrowser.models.tools import ToolDescriptor, ToolResult
from autobrowser.tools.page import BrowserPage
from autobrowser.tools.registry import ToolsRegistry
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


class CDPBrowserBackend:
    """Launches Chrome, attaches Playwright over CDP and serves the built-in tools.

    Use as an async context manager. Chrome is terminated on exit unless
    ``keep_open`` is set.
    """

    def __init__(self, launcher: ChromeLauncher | None = None, keep_open: bool = False):
        self.launcher = launcher or ChromeLauncher()
        self.keep_open = keep_open

        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self.registry: ToolsRegistry | None = None

    async def __aenter__(self) -> "CDPBrowserBackend":
        ws_url = await self.launcher.start()
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.connect_over_cdp(ws_url)

            context = self._browser.contexts[0] if self._browser.contexts else await self._browser.new_context()
            page = context.pages[0] if context.pages else await context.new_page()
            # Confirms the connection is usable
            title = await page.title()
        except Exception as e:
            await self._close()
            raise BackendUnavailableError(f"Failed to attach to Chrome at {ws_url}: {e}") from e

        logger.info(f"Attached to Chrome page {title!r}")
        self.registry = ToolsRegistry(BrowserPage(page))
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._close()

    async def _close(self) -> None:
        if self._browser is not None:
            # Disconnects only; Chrome itself belongs to the launcher
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
        if not self.keep_open:
            await self.launcher.stop()
        self.registry = None

    def _require_registry(self) -> ToolsRegistry:
        if self.registry is None:
            raise BackendUnavailableError("CDP backend is not connected")
        return self.registry

    async def list_tools(self) -> list[ToolDescriptor]:
        return self._require_registry().get_descriptors()

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> ToolResult:
        return await self._require_registry().call(name, arguments)
