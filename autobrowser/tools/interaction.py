"""Element interaction tools.

Every ``selector`` argument accepts either a CSS selector or a plain
description (an aria-label, id, name, placeholder or visible text); it is
resolved through the element resolver before use.
"""

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, Field

from autobrowser.models.tools import ToolResult
from autobrowser.tools.base import ToolDefinition
from autobrowser.tools.page import BrowserPage

SELECTOR_DESCRIPTION = "CSS selector, aria-label, id, name, placeholder or visible text of the element"


class ClickInput(BaseModel):
    """Input schema for click, click_button and click_link."""

    selector: str = Field(..., description=SELECTOR_DESCRIPTION, min_length=1, examples=["Search", "#submit"])


class TypeTextInput(BaseModel):
    """Input schema for type_text."""

    selector: str = Field(..., description=SELECTOR_DESCRIPTION, min_length=1, examples=["email", "Search"])
    text: str = Field(..., description="Text to type")
    clear: bool = Field(True, description="Replace the current value instead of appending to it")


class SelectDropdownInput(BaseModel):
    """Input schema for select_dropdown."""

    selector: str = Field(..., description=SELECTOR_DESCRIPTION, min_length=1)
    value: str = Field(..., description="Option value or visible label to select")


class ChooseOptionInput(BaseModel):
    """Input schema for choose_option."""

    selector: str = Field(..., description=SELECTOR_DESCRIPTION, min_length=1)
    checked: bool = Field(True, description="Whether the checkbox or radio button should end up checked")


async def _click(params: ClickInput, page: BrowserPage, kind: str) -> ToolResult:
    try:
        element = await page.locate(params.selector)
        await element.click()
    except PlaywrightError as e:
        return ToolResult.text(f"Error clicking {kind} {params.selector}: {e}", is_error=True)
    return ToolResult.text(f"Clicked {kind} {params.selector}")


async def click_handler(params: ClickInput, page: BrowserPage) -> ToolResult:
    return await _click(params, page, "element")


async def click_button_handler(params: ClickInput, page: BrowserPage) -> ToolResult:
    return await _click(params, page, "button")


async def click_link_handler(params: ClickInput, page: BrowserPage) -> ToolResult:
    return await _click(params, page, "link")


async def type_text_handler(params: TypeTextInput, page: BrowserPage) -> ToolResult:
    try:
        element = await page.locate(params.selector)
        if params.clear:
            await element.fill(params.text)
        else:
            await element.press_sequentially(params.text)
    except PlaywrightError as e:
        return ToolResult.text(f"Error typing into {params.selector}: {e}", is_error=True)
    return ToolResult.text(f"Typed '{params.text}' into {params.selector}")


async def select_dropdown_handler(params: SelectDropdownInput, page: BrowserPage) -> ToolResult:
    try:
        element = await page.locate(params.selector)
        selected = await element.select_option(params.value)
    except PlaywrightError as e:
        return ToolResult.text(f"Error selecting {params.value} in {params.selector}: {e}", is_error=True)
    return ToolResult.text(f"Selected {', '.join(selected) or params.value} in {params.selector}")


async def choose_option_handler(params: ChooseOptionInput, page: BrowserPage) -> ToolResult:
    try:
        element = await page.locate(params.selector)
        await element.set_checked(params.checked)
    except PlaywrightError as e:
        return ToolResult.text(f"Error choosing option {params.selector}: {e}", is_error=True)
    state = "Checked" if params.checked else "Unchecked"
    return ToolResult.text(f"{state} {params.selector}")


def create_click_tool() -> ToolDefinition:
    return ToolDefinition(
        name="click",
        description="Click the element matching a CSS selector or description.",
        input_schema_class=ClickInput,
        handler=click_handler,
    )


def create_click_button_tool() -> ToolDefinition:
    return ToolDefinition(
        name="click_button",
        description="""Click a button identified by its label, aria-label, id or CSS selector.

        Example Usage:
        - Page has <button aria-label="Search">
        - Call: click_button(selector="Search")
        """,
        input_schema_class=ClickInput,
        handler=click_button_handler,
    )


def create_click_link_tool() -> ToolDefinition:
    return ToolDefinition(
        name="click_link",
        description="Click a link identified by its text, aria-label, id or CSS selector.",
        input_schema_class=ClickInput,
        handler=click_link_handler,
    )


def create_type_text_tool() -> ToolDefinition:
    return ToolDefinition(
        name="type_text",
        description="""Type text into an input field.

        The field may be named by placeholder, name attribute, aria-label, id
        or CSS selector. With clear=true (default) the current value is
        replaced.
        """,
        input_schema_class=TypeTextInput,
        handler=type_text_handler,
    )


def create_select_dropdown_tool() -> ToolDefinition:
    return ToolDefinition(
        name="select_dropdown",
        description="Select an option of a <select> element by value or label.",
        input_schema_class=SelectDropdownInput,
        handler=select_dropdown_handler,
    )


def create_choose_option_tool() -> ToolDefinition:
    return ToolDefinition(
        name="choose_option",
        description="Check or uncheck a checkbox or radio button. Checks it unless checked=false.",
        input_schema_class=ChooseOptionInput,
        handler=choose_option_handler,
    )
