"""Per-page enumeration of route candidates and the click-and-wait cycle."""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from ...config import settings
from ...models import ElementInfo, ResponseKind
from ..correlator import ResponseCorrelator

logger = logging.getLogger(__name__)

ROUTE_TEXT_MARKERS = ("М", "Т", "автобус")

SCHEDULE_TAB_SELECTOR = (
    '[class*="schedule"], [data-testid*="schedule"], [class*="timetable"], '
    '[href*="schedule"], [class*="working-hours"], [class*="time"]'
)

_NUMERIC_LABEL = re.compile(r"^\d+$")


def looks_like_route(element: ElementInfo) -> bool:
    """Whether an element's text or link plausibly denotes a transit route."""
    text = element.text or ""
    if any(marker in text for marker in ROUTE_TEXT_MARKERS):
        return True
    if "route" in (element.href or ""):
        return True
    return bool(_NUMERIC_LABEL.match(text.strip()))


@dataclass(frozen=True)
class SelectorProbe:
    """One candidate-enumeration strategy: a selector plus a relevance filter."""

    selector: str
    accept: Callable[[ElementInfo], bool] = looks_like_route

    async def probe(self, navigator) -> Optional[List[ElementInfo]]:
        elements = await navigator.query_elements(self.selector)
        matches = [element for element in elements if self.accept(element)]
        return matches or None


DEFAULT_PROBES = (
    SelectorProbe('[data-testid="search-result-item"]'),
    SelectorProbe(".search-results-item"),
    SelectorProbe(".minicard"),
    SelectorProbe(".search-result"),
    SelectorProbe('[class*="searchResult"]'),
    SelectorProbe('[class*="miniCard"]'),
    SelectorProbe('a[href*="route"]'),
)


async def _await_watcher(future: asyncio.Future, timeout: float, *, required: bool, label: str) -> bool:
    try:
        await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError:
        if required:
            logger.error("Timed out waiting for %s response", label)
        else:
            logger.info("No %s response for this route", label)
        return False
    except asyncio.CancelledError:
        if not future.cancelled():
            raise
        return False
    return True


class DiscoveryLoop:
    """Click through every route candidate on the current results page."""

    def __init__(
        self,
        navigator,
        correlator: ResponseCorrelator,
        *,
        probes: Sequence[SelectorProbe] = DEFAULT_PROBES,
        schedule_tab_attempts: Optional[int] = None,
        schedule_tab_timeout_ms: Optional[int] = None,
        is_closed: Callable[[], bool] = lambda: False,
    ) -> None:
        self.navigator = navigator
        self.correlator = correlator
        self.probes = tuple(probes)
        self.schedule_tab_attempts = (
            schedule_tab_attempts
            if schedule_tab_attempts is not None
            else settings.collector_schedule_tab_attempts
        )
        self.schedule_tab_timeout_ms = (
            schedule_tab_timeout_ms
            if schedule_tab_timeout_ms is not None
            else settings.collector_schedule_tab_timeout_ms
        )
        self.is_closed = is_closed

    async def find_candidates(self) -> List[ElementInfo]:
        """Matches of the first probe that yields any; later probes are not consulted."""
        for probe in self.probes:
            try:
                matches = await probe.probe(self.navigator)
            except PlaywrightError as exc:
                logger.warning("Selector %s failed: %s", probe.selector, exc)
                continue
            if matches:
                logger.info("Found %d route candidates with %s", len(matches), probe.selector)
                return matches
        logger.info("No route candidates on this page")
        return []

    async def run_page(self, page_number: int = 1) -> int:
        """Process every candidate on the page; returns how many were attempted."""
        candidates = await self.find_candidates()
        attempted = 0
        for position, candidate in enumerate(candidates, start=1):
            if self.is_closed():
                logger.info("Session closed; stopping discovery on page %d", page_number)
                break
            attempted += 1
            try:
                await self.visit(candidate)
            except Exception as exc:  # pylint: disable=broad-except
                logger.error(
                    "Failed to process candidate %d (%s) on page %d: %s",
                    position,
                    candidate.text[:50],
                    page_number,
                    exc,
                )
        return attempted

    async def visit(self, candidate: ElementInfo) -> bool:
        """Open one candidate and wait for its detail and schedule responses."""
        timeout = self.navigator.timeout_seconds
        detail_watch = self.navigator.expect_response(ResponseKind.DETAIL)
        schedule_watch = self.navigator.expect_response(ResponseKind.SCHEDULE)

        try:
            clicked = await self.navigator.click_nth(candidate.selector, candidate.index)
            if not clicked:
                logger.warning("Candidate %r is no longer on the page", candidate.text[:50])
                return False

            await self._open_schedule_tab()

            try:
                await self.navigator.wait_for_settle()
            except PlaywrightError as exc:
                logger.warning("Navigation after click did not settle: %s", exc)

            await asyncio.gather(
                _await_watcher(detail_watch, timeout, required=True, label="route detail"),
                _await_watcher(schedule_watch, timeout, required=False, label="schedule"),
            )
        finally:
            for watch in (detail_watch, schedule_watch):
                if not watch.done():
                    watch.cancel()
            await self.correlator.drain()

        await self._return_to_results()
        return True

    async def _open_schedule_tab(self) -> None:
        for attempt in range(1, self.schedule_tab_attempts + 1):
            try:
                await self.navigator.click(SCHEDULE_TAB_SELECTOR, timeout_ms=self.schedule_tab_timeout_ms)
            except PlaywrightError:
                logger.info("Schedule tab not found (attempt %d)", attempt)
            try:
                await self.navigator.scroll_to_bottom()
            except PlaywrightError as exc:
                logger.debug("Scroll failed: %s", exc)

    async def _return_to_results(self) -> None:
        current_url = self.navigator.url
        if "route" in current_url or "search" not in current_url:
            try:
                await self.navigator.go_back()
            except PlaywrightError as exc:
                logger.error("Failed to return to results: %s", exc)