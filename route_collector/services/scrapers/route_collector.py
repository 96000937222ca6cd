"""Playwright session that collects transit routes for one city.

Drives a headless Chromium instance through the city's search results, clicks
every route candidate and lets the response observer capture the route detail
and schedule API calls the site makes on its own.

⚠️ The target site does not expose a stable API for this purpose. Selectors and
payload shapes may change at any time, so candidate discovery is heuristic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from playwright.async_api import Browser, Error as PlaywrightError, Playwright, async_playwright

from ...config import settings
from ...models import CollectedRoute
from ..correlator import ResponseCorrelator
from ..record_store import RecordStore
from .discovery import DiscoveryLoop
from .navigator import PageNavigator
from .pagination import PaginationWalker
from .response_observer import ResponseObserver

logger = logging.getLogger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-web-security",
]


@dataclass
class CollectionSummary:
    """Outcome of one collection session."""

    city: str
    routes: List[CollectedRoute]
    pages_visited: List[int]
    started_at: datetime
    finished_at: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "city": self.city,
            "routes": [route.to_dict() for route in self.routes],
            "route_count": len(self.routes),
            "pages_visited": self.pages_visited,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "errors": self.errors,
        }


class CollectorSession:
    """One browser, one page and the components driving them for a single city."""

    def __init__(
        self,
        city: str,
        *,
        headless: Optional[bool] = None,
        timeout_ms: Optional[int] = None,
        base_url: Optional[str] = None,
        store: Optional[RecordStore] = None,
    ) -> None:
        self.city = city.strip().lower()
        self.headless = settings.collector_headless if headless is None else headless
        self.timeout_ms = timeout_ms if timeout_ms is not None else settings.collector_timeout_ms
        self.base_url = (base_url or settings.collector_base_url).rstrip("/")
        self.correlator = ResponseCorrelator(self.city, store=store)
        self.observer = ResponseObserver(self.correlator)
        self.walker = PaginationWalker()
        self.navigator: Optional[PageNavigator] = None
        self.discovery: Optional[DiscoveryLoop] = None
        self.started_at = datetime.now(timezone.utc)
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._closed = False

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def collected_routes(self) -> List[CollectedRoute]:
        return self.correlator.collected_routes

    @property
    def city_url(self) -> str:
        return f"{self.base_url}/{self.city}"

    async def start(self) -> None:
        """Launch the browser and wire the response observer; failures propagate."""
        self._playwright = await async_playwright().start()
        try:
            self._browser = await self._playwright.chromium.launch(headless=self.headless, args=_LAUNCH_ARGS)
            context = await self._browser.new_context(
                user_agent=_USER_AGENT,
                viewport={"width": 1920, "height": 1080},
            )
            page = await context.new_page()
        except PlaywrightError:
            logger.exception("Browser initialisation failed")
            await self.close()
            raise

        self.observer.attach(page)
        self.navigator = PageNavigator(page, self.observer, timeout_ms=self.timeout_ms)
        self.correlator.fallback_provider = self.navigator.read_schedule_text
        self.discovery = DiscoveryLoop(self.navigator, self.correlator, is_closed=lambda: self._closed)

    async def perform_search(self, query: Optional[str] = None) -> None:
        """Open the city page, run the search and walk every result page."""
        if self.navigator is None:
            raise RuntimeError("Session not started")
        query = query or settings.collector_search_query

        try:
            await self.navigator.goto(self.city_url)
            if not await self.navigator.search(query):
                return
            await self.walk_results()
        except PlaywrightError as exc:
            if self._closed:
                logger.info("Search interrupted: session closed")
            else:
                logger.error("Search %r failed: %s", query, exc)

    async def walk_results(self) -> None:
        while not self._closed:
            page_number = self.walker.current_page
            await self.discovery.run_page(page_number)
            if self._closed or not await self.walker.advance(self.navigator):
                break
        # The page is back on the results list, so it no longer describes any route.
        self.correlator.fallback_provider = None
        await self.correlator.drain()

    async def collect(self, query: Optional[str] = None) -> CollectionSummary:
        """Run a full session and always release the browser."""
        summary = CollectionSummary(
            city=self.city,
            routes=self.correlator.collected_routes,
            pages_visited=[],
            started_at=self.started_at,
        )
        try:
            await self.start()
            logger.info("Collecting routes for %s", self.city)
            await self.perform_search(query)
            logger.info("Collected %d routes", len(self.correlator.collected_routes))
        finally:
            await self.close()
            summary.pages_visited = sorted(self.walker.visited_pages)
            summary.finished_at = datetime.now(timezone.utc)
            logger.info("Collection finished for %s", self.city)
        return summary

    async def close(self) -> None:
        """Close the browser; safe to call at any time and more than once."""
        if self._closed:
            return
        self._closed = True
        self.observer.cancel_waiters()
        self.correlator.discard_pending()
        try:
            if self._browser is not None:
                await self._browser.close()
                logger.info("Browser closed")
        except PlaywrightError as exc:
            logger.warning("Error while closing browser: %s", exc)
        finally:
            self._browser = None
            if self._playwright is not None:
                await self._playwright.stop()
                self._playwright = None


if __name__ == "__main__":
    import argparse
    import asyncio
    import json

    from ...logging_utils import configure_logging

    parser = argparse.ArgumentParser(description="Collect transit routes for a city via Playwright.")
    parser.add_argument("--city", required=True, help="City slug as used by the site, ex: samarkand")
    parser.add_argument("--query", default=None, help="Search query typed into the site search box.")
    parser.add_argument("--no-headless", action="store_true", help="Show the browser window.")
    parser.add_argument("--timeout", type=int, default=None, help="Wait timeout in milliseconds.")

    cli_args = parser.parse_args()
    configure_logging(log_format="text")

    session = CollectorSession(
        cli_args.city,
        headless=False if cli_args.no_headless else None,
        timeout_ms=cli_args.timeout,
    )
    result = asyncio.run(session.collect(cli_args.query))
    print(json.dumps(result.to_dict(), ensure_ascii=False, indent=2))


__all__ = ["CollectionSummary", "CollectorSession"]
