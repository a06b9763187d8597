"""Navigation and page capture tools."""

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, Field

from autobrowser.models.tools import ImageContent, ToolResult
from autobrowser.tools.base import ToolDefinition
from autobrowser.tools.page import BrowserPage


class NavigateInput(BaseModel):
    """Input schema for navigate."""

    url: str = Field(..., description="URL to navigate to", min_length=1, examples=["https://example.com"])


class RefreshPageInput(BaseModel):
    """Input schema for refresh_page (no arguments)."""


class ScreenshotInput(BaseModel):
    """Input schema for screenshot."""

    full_page: bool = Field(False, description="Capture the full scrollable page instead of the viewport")


async def navigate_handler(params: NavigateInput, page: BrowserPage) -> ToolResult:
    try:
        await page.page.goto(params.url)
    except PlaywrightError as e:
        return ToolResult.text(f"Error navigating to {params.url}: {e}", is_error=True)
    return ToolResult.text(f"Navigated to {params.url}")


async def refresh_page_handler(params: RefreshPageInput, page: BrowserPage) -> ToolResult:
    try:
        await page.page.reload()
    except PlaywrightError as e:
        return ToolResult.text(f"Error refreshing page: {e}", is_error=True)
    return ToolResult.text("Page refreshed successfully")


async def screenshot_handler(params: ScreenshotInput, page: BrowserPage) -> ToolResult:
    try:
        data = await page.page.screenshot(full_page=params.full_page, type="png")
    except PlaywrightError as e:
        return ToolResult.text(f"Error taking screenshot: {e}", is_error=True)
    return ToolResult(content=[ImageContent(mime_type="image/png", data=data)])


def create_navigate_tool() -> ToolDefinition:
    return ToolDefinition(
        name="navigate",
        description="""Navigate the browser to a URL.

        Waits for the page load event before returning.

        Example Usage:
        - User says: "Open example.com"
        - Call: navigate(url="https://example.com")
        """,
        input_schema_class=NavigateInput,
        handler=navigate_handler,
    )


def create_refresh_page_tool() -> ToolDefinition:
    return ToolDefinition(
        name="refresh_page",
        description="Reload the current page.",
        input_schema_class=RefreshPageInput,
        handler=refresh_page_handler,
    )


def create_screenshot_tool() -> ToolDefinition:
    return ToolDefinition(
        name="screenshot",
        description="Take a PNG screenshot of the current page.",
        input_schema_class=ScreenshotInput,
        handler=screenshot_handler,
    )
