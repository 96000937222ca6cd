"""Network observer feeding captured API responses to the correlator mailbox."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional

from playwright.async_api import Error as PlaywrightError, Response

from ...config import settings
from ...models import ResponseEvent, ResponseKind
from ..correlator import ResponseCorrelator

logger = logging.getLogger(__name__)


class ResponseObserver:
    """Classify page responses and hand the interesting ones to the correlator.

    Watchers created through :meth:`expect` resolve only after the matching
    event has been posted to the mailbox, so a drain that follows an awaited
    watcher always sees that event.
    """

    def __init__(
        self,
        correlator: ResponseCorrelator,
        *,
        detail_marker: Optional[str] = None,
        schedule_marker: Optional[str] = None,
    ) -> None:
        self.correlator = correlator
        self.detail_marker = detail_marker or settings.detail_url_marker
        self.schedule_marker = schedule_marker or settings.schedule_url_marker
        self._waiters: Dict[ResponseKind, List[asyncio.Future]] = {
            ResponseKind.DETAIL: [],
            ResponseKind.SCHEDULE: [],
        }

    def attach(self, page) -> None:
        page.on("response", self.on_response)

    def classify(self, url: str, status: int) -> Optional[ResponseKind]:
        if status != 200:
            return None
        if self.detail_marker in url:
            return ResponseKind.DETAIL
        if self.schedule_marker in url:
            return ResponseKind.SCHEDULE
        return None

    async def on_response(self, response: Response) -> None:
        kind = self.classify(response.url, response.status)
        if kind is None:
            return
        try:
            body = await response.text()
        except PlaywrightError as exc:
            logger.warning("Could not read %s response body from %s: %s", kind.value, response.url, exc)
            return
        self.publish(ResponseEvent(kind=kind, url=response.url, payload=body, status=response.status))

    def publish(self, event: ResponseEvent) -> None:
        """Post an event to the correlator and wake any watcher for its kind."""
        self.correlator.submit(event)
        waiters = self._waiters[event.kind]
        self._waiters[event.kind] = []
        for future in waiters:
            if not future.done():
                future.set_result(event)

    def expect(self, kind: ResponseKind) -> asyncio.Future:
        """Return a future resolved by the next response of ``kind``."""
        future = asyncio.get_running_loop().create_future()
        self._waiters[kind].append(future)
        return future

    def cancel_waiters(self) -> None:
        for waiters in self._waiters.values():
            for future in waiters:
                if not future.done():
                    future.cancel()
            waiters.clear()
