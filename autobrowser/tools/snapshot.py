"""Accessibility-oriented page snapshot tool.

Not a full accessibility tree: it lists the elements a model is likely to
act on, each with the selector the element resolver will find first.
"""

import json
from typing import Any, Literal

from playwright.async_api import Error as PlaywrightError
from pydantic import BaseModel, Field

from autobrowser.models.tools import ToolResult
from autobrowser.tools.base import ToolDefinition
from autobrowser.tools.page import BrowserPage

FOCUS_SELECTORS = {
    "interactive": (
        'a[href], button, input, select, textarea, [role="button"], [role="link"], '
        '[role="checkbox"], [role="radio"], [role="tab"], [role="menuitem"], [contenteditable="true"]'
    ),
    "headings": 'h1, h2, h3, h4, h5, h6, [role="heading"]',
    "landmarks": (
        'header, nav, main, aside, footer, form, [role="banner"], [role="navigation"], '
        '[role="main"], [role="complementary"], [role="contentinfo"], [role="search"]'
    ),
}
FOCUS_SELECTORS["all"] = ", ".join(FOCUS_SELECTORS.values())

SNAPSHOT_SCRIPT = """
([selectors, maxElements]) => {
    const implicitRoles = {
        a: 'link', button: 'button', select: 'combobox', textarea: 'textbox',
        nav: 'navigation', main: 'main', header: 'banner', footer: 'contentinfo',
        aside: 'complementary', form: 'form',
        h1: 'heading', h2: 'heading', h3: 'heading', h4: 'heading', h5: 'heading', h6: 'heading',
    };
    const inputRoles = { checkbox: 'checkbox', radio: 'radio', submit: 'button', button: 'button' };
    const quote = (v) => '"' + v.replace(/\\\\/g, '\\\\\\\\').replace(/"/g, '\\\\"') + '"';
    const visible = (el) => {
        const rect = el.getBoundingClientRect();
        return rect.width > 0 && rect.height > 0;
    };
    return Array.from(document.querySelectorAll(selectors))
        .filter(visible)
        .slice(0, maxElements)
        .map((el) => {
            const tag = el.tagName.toLowerCase();
            const role = el.getAttribute('role')
                || (tag === 'input' ? (inputRoles[el.type] || 'textbox') : implicitRoles[tag])
                || tag;
            const ariaLabel = el.getAttribute('aria-label');
            const name = (ariaLabel || el.innerText || el.value || el.placeholder || el.title || '')
                .trim().replace(/\\s+/g, ' ').slice(0, 80);
            let selector = null;
            if (ariaLabel) selector = '[aria-label=' + quote(ariaLabel) + ']';
            else if (el.id) selector = '#' + CSS.escape(el.id);
            else if (el.getAttribute('name')) selector = tag + '[name=' + quote(el.getAttribute('name')) + ']';
            else if (el.placeholder) selector = '[placeholder=' + quote(el.placeholder) + ']';
            return { role, name, selector, tag, checked: el.checked === undefined ? null : el.checked };
        });
}
"""


class AriaSnapshotInput(BaseModel):
    """Input schema for aria_snapshot."""

    format: Literal["llm-text", "json"] = Field("llm-text", description="Output format")
    focus: Literal["all", "interactive", "landmarks", "headings"] = Field(
        "interactive", description="Which elements to include"
    )
    max_elements: int = Field(200, ge=1, le=1000, description="Maximum number of elements to list")


def format_snapshot(title: str, url: str, elements: list[dict[str, Any]]) -> str:
    """Render snapshot elements as compact text for a model."""
    lines = [f"Page: {title}", f"URL: {url}", f"Elements ({len(elements)}):"]
    for element in elements:
        line = f"- {element['role']}"
        if element.get("name"):
            line += f' "{element["name"]}"'
        if element.get("checked") is not None:
            line += " [checked]" if element["checked"] else " [unchecked]"
        if element.get("selector"):
            line += f" -> {element['selector']}"
        lines.append(line)
    return "\n".join(lines)


async def aria_snapshot_handler(params: AriaSnapshotInput, page: BrowserPage) -> ToolResult:
    try:
        elements = await page.page.evaluate(SNAPSHOT_SCRIPT, [FOCUS_SELECTORS[params.focus], params.max_elements])
        title = await page.page.title()
    except PlaywrightError as e:
        return ToolResult.text(f"Error taking page snapshot: {e}", is_error=True)

    if params.format == "json":
        return ToolResult.text(json.dumps({"title": title, "url": page.page.url, "elements": elements}, indent=2))
    return ToolResult.text(format_snapshot(title, page.page.url, elements))


def create_aria_snapshot_tool() -> ToolDefinition:
    return ToolDefinition(
        name="aria_snapshot",
        description="""List the page's elements with their roles, accessible names and selectors.

        Use it before interacting with a page to learn which elements exist.
        The listed selectors can be passed to click, type_text and the other
        element tools.
        """,
        input_schema_class=AriaSnapshotInput,
        handler=aria_snapshot_handler,
    )
