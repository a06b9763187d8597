"""Page handle shared by the built-in browser tools."""

from playwright.async_api import Locator as PlaywrightLocator
from playwright.async_api import Page

from autobrowser.services.resolver import ElementResolver, Locator, ResolutionOutcome
from autobrowser.utils.logging import get_logger

logger = get_logger(__name__)


class PlaywrightPageQuery:
    """PageQuery over a live Playwright page."""

    def __init__(self, page: Page):
        self.page = page

    async def count(self, locator: Locator) -> int:
        return await self.page.locator(locator.selector).count()


class BrowserPage:
    """The page tools act on, with element resolution attached."""

    def __init__(self, page: Page, resolver: ElementResolver | None = None):
        self.page = page
        self.resolver = resolver or ElementResolver(PlaywrightPageQuery(page))

    async def resolve(self, description: str) -> ResolutionOutcome:
        return await self.resolver.resolve(description)

    async def locate(self, description: str) -> PlaywrightLocator:
        """Locator for the first element matching a description.

        When no strategy matches, the raw description is handed to the
        browser, which fails with its own error.
        """
        outcome = await self.resolve(description)
        if outcome.found:
            logger.debug(f"Using {outcome.strategy} locator {outcome.locator.selector} for {description!r}")
        return self.page.locator(outcome.selector_or_literal()).first
