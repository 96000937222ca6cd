"""Start/stop control for collection sessions."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from .scrapers.route_collector import CollectionSummary, CollectorSession

logger = logging.getLogger(__name__)


class CollectionAlreadyRunning(RuntimeError):
    """Raised when a session is started while another one is active."""


class CollectionManager:
    """Run at most one collection session at a time."""

    def __init__(self, session_factory: Callable[[str], CollectorSession] = CollectorSession) -> None:
        self._session_factory = session_factory
        self._session: Optional[CollectorSession] = None
        self._task: Optional[asyncio.Task] = None
        self._started_at: Optional[datetime] = None
        self.last_summary: Optional[CollectionSummary] = None
        self.last_error: Optional[str] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @staticmethod
    def normalize_city(city: Optional[str]) -> str:
        if not city or not isinstance(city, str) or not city.strip():
            raise ValueError("City is missing or invalid")
        return city.strip().lower()

    async def start(self, city: str, query: Optional[str] = None) -> Dict[str, Any]:
        """Launch a collection session for ``city`` in the background."""
        normalized = self.normalize_city(city)
        if self.is_running:
            raise CollectionAlreadyRunning(f"Collection for {self._session.city} is already running")

        self._session = self._session_factory(normalized)
        self._started_at = datetime.now(timezone.utc)
        self.last_error = None
        self._task = asyncio.create_task(self._run(self._session, query), name=f"collect-{normalized}")
        logger.info("Starting route collection for %s", normalized)
        return self.status()

    async def _run(self, session: CollectorSession, query: Optional[str]) -> None:
        try:
            self.last_summary = await session.collect(query)
            logger.info("Routes collected: %d", len(session.collected_routes))
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            self.last_error = str(exc)
            logger.error("Collection for %s failed: %s", session.city, exc, exc_info=True)

    async def stop(self) -> bool:
        """Close the running session's browser and wait for the session to wind down."""
        if not self.is_running or self._session is None:
            return False
        await self._session.close()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        logger.info("Collection stopped")
        return True

    def status(self) -> Dict[str, Any]:
        session = self._session
        return {
            "running": self.is_running,
            "city": session.city if session else None,
            "started_at": self._started_at.isoformat() if self._started_at else None,
            "routes_collected": len(session.collected_routes) if session else 0,
            "last_error": self.last_error,
        }


collection_manager = CollectionManager()
