"""Thin async capability surface over a Playwright page.

The discovery and pagination components only talk to the browser through
:class:`PageNavigator`, which keeps timeouts in one place and lets tests swap
the page for a fake.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional

from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeoutError

from ...config import settings
from ...models import ElementInfo, ResponseKind, ScheduleFragment
from .response_observer import ResponseObserver

logger = logging.getLogger(__name__)

SEARCH_INPUT_SELECTORS = (
    'input[placeholder*="Поиск"]',
    'input[type="search"]',
    'input[class*="search"]',
    '[data-testid*="search"]',
)

ROUTE_PAGE_SELECTOR = 'h1, [class*="title"], [class*="route"], [class*="schedule"], [class*="timetable"]'

_QUERY_ELEMENTS_SCRIPT = """
(selector) => Array.from(document.querySelectorAll(selector)).map((el, index) => ({
  index,
  text: (el.textContent || "").trim().substring(0, 200),
  href: el.getAttribute("href") || "",
  active: el.classList.contains("active"),
  disabled: el.hasAttribute("disabled")
    || el.classList.contains("disabled")
    || el.getAttribute("aria-disabled") === "true",
}))
"""

_CLICK_NTH_SCRIPT = """
([selector, index]) => {
  const element = document.querySelectorAll(selector)[index];
  if (!element) {
    return false;
  }
  element.click();
  return true;
}
"""

_SCROLL_SCRIPT = "() => window.scrollTo(0, document.body.scrollHeight)"

_SCHEDULE_TEXT_SCRIPT = """
() => {
  const selectors = {
    interval: '[class*="interval"], [class*="schedule"], [class*="frequency"], [class*="time"], '
      + '[class*="period"], [data-testid*="interval"], [class*="periodicity"], '
      + '[class*="timetable"] span, [class*="schedule"] div',
    hours: '[class*="hours"], [class*="schedule"], [class*="working-hours"], [class*="time"], '
      + '[class*="worktime"], [data-testid*="hours"], [class*="work-hours"], '
      + '[class*="timetable"] span, [class*="schedule"] div',
  };
  const firstMatching = (selector, pattern) => {
    for (const element of document.querySelectorAll(selector)) {
      const text = (element.textContent || "").trim();
      if (text && pattern.test(text)) {
        return text;
      }
    }
    return null;
  };
  return {
    interval: firstMatching(selectors.interval, /кажд|минут|интервал|через|every|minute|interval/i),
    hours: firstMatching(selectors.hours, /\\d{1,2}:\\d{2}.*–.*\\d{1,2}:\\d{2}/),
  };
}
"""


class PageNavigator:
    """Browser capabilities consumed by the discovery loop and the pagination walker."""

    def __init__(
        self,
        page: Page,
        observer: ResponseObserver,
        *,
        timeout_ms: Optional[int] = None,
        selector_timeout_ms: Optional[int] = None,
        typing_delay_ms: Optional[int] = None,
    ) -> None:
        self.page = page
        self.observer = observer
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.collector_timeout_ms
        self.selector_timeout_ms = (
            selector_timeout_ms if selector_timeout_ms is not None else settings.collector_selector_timeout_ms
        )
        self.typing_delay_ms = typing_delay_ms if typing_delay_ms is not None else settings.collector_typing_delay_ms

    @property
    def url(self) -> str:
        return self.page.url

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000

    async def goto(self, url: str) -> None:
        await self.page.goto(url, wait_until="networkidle", timeout=self.timeout_ms)

    async def find_first(self, selectors: Iterable[str]):
        """Return the first element matched by the ordered ``selectors``."""
        for selector in selectors:
            try:
                handle = await self.page.wait_for_selector(selector, timeout=self.selector_timeout_ms)
            except PlaywrightTimeoutError:
                logger.info("Selector %s not found", selector)
                continue
            if handle:
                return handle
        return None

    async def search(self, query: str) -> bool:
        """Type ``query`` into the site search box and submit it."""
        search_input = await self.find_first(SEARCH_INPUT_SELECTORS)
        if search_input is None:
            logger.error("Search input not found")
            return False

        await search_input.click()
        await self.page.keyboard.press("Control+A")
        await self.page.keyboard.type(query, delay=self.typing_delay_ms)
        await self.page.keyboard.press("Enter")

        try:
            await self.wait_for_settle()
        except PlaywrightTimeoutError as exc:
            logger.error("Timed out waiting for search results: %s", exc)
        return True

    async def query_elements(self, selector: str) -> List[ElementInfo]:
        raw: List[Dict[str, Any]] = await self.page.evaluate(_QUERY_ELEMENTS_SCRIPT, selector)
        return [
            ElementInfo(
                selector=selector,
                index=int(item.get("index", position)),
                text=item.get("text") or "",
                href=item.get("href") or "",
                active=bool(item.get("active")),
                disabled=bool(item.get("disabled")),
            )
            for position, item in enumerate(raw or [])
        ]

    async def click_nth(self, selector: str, index: int) -> bool:
        return bool(await self.page.evaluate(_CLICK_NTH_SCRIPT, [selector, index]))

    async def click(self, selector: str, timeout_ms: Optional[int] = None) -> None:
        await self.page.click(selector, timeout=timeout_ms if timeout_ms is not None else self.selector_timeout_ms)

    async def scroll_to_bottom(self) -> None:
        await self.page.evaluate(_SCROLL_SCRIPT)

    async def wait_for_selector(self, selector: str, timeout_ms: Optional[int] = None):
        return await self.page.wait_for_selector(
            selector, timeout=timeout_ms if timeout_ms is not None else self.selector_timeout_ms
        )

    async def wait_for_settle(self) -> None:
        """Wait until the page stops issuing network requests."""
        await self.page.wait_for_load_state("networkidle", timeout=self.timeout_ms)

    async def go_back(self) -> None:
        await self.page.go_back(wait_until="networkidle", timeout=self.timeout_ms)

    def expect_response(self, kind: ResponseKind) -> asyncio.Future:
        return self.observer.expect(kind)

    async def read_schedule_text(self, route_item: Dict[str, Any]) -> Optional[ScheduleFragment]:
        """Read interval and working hours from the rendered route page."""
        try:
            await self.wait_for_selector(ROUTE_PAGE_SELECTOR)
        except PlaywrightTimeoutError:
            logger.info("Route page header not found for %s", route_item.get("name"))
        try:
            await self.scroll_to_bottom()
            info = await self.page.evaluate(_SCHEDULE_TEXT_SCRIPT)
        except PlaywrightError as exc:
            logger.warning("Failed to read schedule text from page: %s", exc)
            return None
        if not isinstance(info, dict):
            return None
        return ScheduleFragment(interval=info.get("interval"), hours=info.get("hours"))
