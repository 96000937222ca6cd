"""Walk search result pages without revisiting any of them."""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from playwright.async_api import Error as PlaywrightError

from ...config import settings
from ...models import ElementInfo, PaginationState

logger = logging.getLogger(__name__)

PAGINATION_SELECTORS = (
    'a._1q8es29[href*="page"]',
    'a[href*="page"]',
    'a[href*="Page"]',
    '.pagination a[href*="page"]',
    '[class*="pagination"] a[href*="page"]',
    'a[data-testid*="page"]',
)

_PAGE_PATTERNS = (
    re.compile(r"[?&]page=(\d+)", re.IGNORECASE),
    re.compile(r"/page/(\d+)", re.IGNORECASE),
)


def page_number(href: Optional[str]) -> Optional[int]:
    """Parse the target page number from a URL or href, if present."""
    for pattern in _PAGE_PATTERNS:
        match = pattern.search(href or "")
        if match:
            return int(match.group(1))
    return None


class WalkerPhase(str, Enum):
    AT_PAGE = "at_page"
    ADVANCING = "advancing"
    EXHAUSTED = "exhausted"


class PaginationWalker:
    """Advance through result pages, tracking visited page numbers.

    The current page is marked visited before the next link is looked up, so a
    page is never entered twice even when moving on from it fails.
    """

    def __init__(
        self,
        state: Optional[PaginationState] = None,
        *,
        selectors: Iterable[str] = PAGINATION_SELECTORS,
        max_pages: Optional[int] = None,
    ) -> None:
        self.state = state or PaginationState()
        self.selectors = tuple(selectors)
        self.max_pages = max_pages if max_pages is not None else settings.collector_max_pages
        self.phase = WalkerPhase.AT_PAGE

    @property
    def visited_pages(self):
        return self.state.visited_pages

    @property
    def current_page(self) -> int:
        return self.state.current_page

    def mark_current(self, url: Optional[str] = None) -> int:
        """Record the displayed page as visited and return its number."""
        number = page_number(url)
        if number is not None:
            self.state.current_page = number
        self.state.visited_pages.add(self.state.current_page)
        return self.state.current_page

    def select_next(self, links: Iterable[ElementInfo]) -> Optional[Tuple[int, ElementInfo]]:
        """Choose the link to follow from the current page.

        Prefers the link pointing at ``current + 1``; otherwise the smallest
        unvisited page number above the current one.
        """
        current = self.state.current_page
        candidates: List[Tuple[int, ElementInfo]] = []
        for link in links:
            number = page_number(link.href)
            if number is None or number <= current or number in self.state.visited_pages:
                continue
            candidates.append((number, link))

        if not candidates:
            return None
        for number, link in candidates:
            if number == current + 1:
                return number, link
        return min(candidates, key=lambda candidate: candidate[0])

    async def collect_links(self, navigator) -> List[ElementInfo]:
        """Enabled pagination links from the first selector that yields any."""
        for selector in self.selectors:
            elements = await navigator.query_elements(selector)
            links = [element for element in elements if not element.active and not element.disabled]
            if links:
                return links
        return []

    async def advance(self, navigator) -> bool:
        """Move to the next unvisited results page.

        Returns:
            True when a new page is displayed, False once the walk is exhausted.
        """
        if self.phase is WalkerPhase.EXHAUSTED:
            return False

        current = self.mark_current(navigator.url)

        if self.max_pages and len(self.state.visited_pages) >= self.max_pages:
            logger.info("Page limit %d reached", self.max_pages)
            self.phase = WalkerPhase.EXHAUSTED
            return False

        try:
            links = await self.collect_links(navigator)
        except PlaywrightError as exc:
            logger.error("Failed to read pagination on page %d: %s", current, exc)
            self.phase = WalkerPhase.EXHAUSTED
            return False

        choice = self.select_next(links)
        if choice is None:
            logger.info("No unvisited result pages after page %d", current)
            self.phase = WalkerPhase.EXHAUSTED
            return False

        target, link = choice
        self.phase = WalkerPhase.ADVANCING
        try:
            clicked = await navigator.click_nth(link.selector, link.index)
        except PlaywrightError as exc:
            logger.error("Failed to open page %d: %s", target, exc)
            self.phase = WalkerPhase.EXHAUSTED
            return False
        if not clicked:
            logger.error("Pagination link to page %d disappeared", target)
            self.phase = WalkerPhase.EXHAUSTED
            return False

        try:
            await navigator.wait_for_settle()
        except PlaywrightError as exc:
            logger.warning("Navigation to page %d did not settle: %s", target, exc)

        # The target counts as visited even if the URL reports another number.
        self.state.visited_pages.add(target)
        self.state.current_page = page_number(navigator.url) or target
        self.phase = WalkerPhase.AT_PAGE
        logger.info("Moved to results page %d", self.state.current_page)
        return True
