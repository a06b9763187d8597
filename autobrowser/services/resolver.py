"""Cascading element resolver.

Maps a human-readable target description ("Search", "email", "Sign in")
to a concrete page locator by trying a fixed list of strategies, most
specific first, and stopping at the first one that matches an element.
"""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Literal, Protocol

from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)

# Characters that make a description unusable as a bare element id
_ID_UNSAFE = ("#", ".", "[", " ")


class ResolutionStrategy(StrEnum):
    """Resolution strategies in priority order."""

    ARIA_LABEL = "aria_label"
    DIRECT_SELECTOR = "direct_selector"
    ELEMENT_ID = "element_id"
    ARIA_LABEL_PARTIAL = "aria_label_partial"
    NAME_ATTRIBUTE = "name_attribute"
    PLACEHOLDER = "placeholder"
    EXACT_TEXT = "exact_text"
    PARTIAL_TEXT = "partial_text"


@dataclass(frozen=True)
class Locator:
    """A concrete query against the page."""

    engine: Literal["css", "xpath"]
    expression: str

    @property
    def selector(self) -> str:
        """Playwright selector string with an explicit engine prefix."""
        return f"{self.engine}={self.expression}"


@dataclass(frozen=True)
class ResolutionAttempt:
    strategy: ResolutionStrategy
    locator: Locator
    matched: bool
    error: str | None = None
    skipped: bool = False


@dataclass
class ResolutionOutcome:
    """Result of resolving one description.

    ``found`` is False when every strategy missed; ``attempts`` then lists
    all of them.
    """

    description: str
    locator: Locator | None = None
    strategy: ResolutionStrategy | None = None
    attempts: list[ResolutionAttempt] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.locator is not None

    def selector_or_literal(self) -> str:
        """Selector for the match, or the raw description when nothing matched."""
        return self.locator.selector if self.locator else self.description


class PageQuery(Protocol):
    """Read-only view of the live page used by the resolver."""

    async def count(self, locator: Locator) -> int:
        """Number of elements the locator matches."""
        ...


def css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def xpath_literal(value: str) -> str:
    """Quote a value as an XPath 1.0 string literal."""
    if '"' not in value:
        return f'"{value}"'
    if "'" not in value:
        return f"'{value}'"
    parts = value.split('"')
    return "concat(" + ", '\"', ".join(f'"{part}"' for part in parts) + ")"


def id_applicable(description: str) -> bool:
    """Whether a description can be tried as a bare element id."""
    return bool(description) and not any(ch in description for ch in _ID_UNSAFE)


def build_candidates(description: str) -> list[tuple[ResolutionStrategy, Locator]]:
    """Candidate locators for a description, in priority order.

    The element-id candidate is always listed; see ``id_applicable``.
    """
    quoted = css_string(description)
    literal = xpath_literal(description)

    candidates: list[tuple[ResolutionStrategy, Locator]] = [
        (ResolutionStrategy.ARIA_LABEL, Locator("css", f"[aria-label={quoted}]")),
        (ResolutionStrategy.DIRECT_SELECTOR, Locator("css", description)),
        (ResolutionStrategy.ELEMENT_ID, Locator("css", f"#{description}")),
        (ResolutionStrategy.ARIA_LABEL_PARTIAL, Locator("css", f"[aria-label*={quoted}]")),
        (ResolutionStrategy.NAME_ATTRIBUTE, Locator("css", f"[name={quoted}]")),
        (ResolutionStrategy.PLACEHOLDER, Locator("css", f"[placeholder={quoted}]")),
        (
            ResolutionStrategy.EXACT_TEXT,
            Locator(
                "xpath",
                f"//button[text()={literal}] | //a[text()={literal}] | //input[@value={literal}]",
            ),
        ),
        (
            ResolutionStrategy.PARTIAL_TEXT,
            Locator(
                "xpath",
                f"//button[contains(text(), {literal})] | //a[contains(text(), {literal})]"
                f" | //input[contains(@value, {literal})]",
            ),
        ),
    ]
    return candidates


class ElementResolver:
    """Resolves element descriptions against a page."""

    def __init__(self, page: PageQuery):
        self.page = page

    async def resolve(self, description: str) -> ResolutionOutcome:
        """Find the first strategy whose locator matches at least one element.

        A strategy whose query raises (an invalid CSS selector, say) counts
        as a miss.
        """
        outcome = ResolutionOutcome(description=description)

        for strategy, locator in build_candidates(description):
            if strategy is ResolutionStrategy.ELEMENT_ID and not id_applicable(description):
                outcome.attempts.append(ResolutionAttempt(strategy, locator, matched=False, skipped=True))
                continue

            try:
                matches = await self.page.count(locator)
            except Exception as e:
                logger.debug(f"Strategy {strategy} query {locator.expression!r} failed: {e}")
                outcome.attempts.append(ResolutionAttempt(strategy, locator, matched=False, error=str(e)))
                continue

            matched = matches > 0
            outcome.attempts.append(ResolutionAttempt(strategy, locator, matched=matched))
            if matched:
                outcome.locator = locator
                outcome.strategy = strategy
                logger.debug(f"Resolved {description!r} via {strategy}: {locator.expression}")
                return outcome

        logger.info(f"Element not found with any targeting strategy: {description!r}")
        return outcome
