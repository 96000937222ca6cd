"""Tests for the collection session lifecycle without a real browser."""

from __future__ import annotations

from unittest.mock import AsyncMock, Mock

import pytest
from playwright.async_api import Error as PlaywrightError

from route_collector.services.scrapers import route_collector as session_module
from route_collector.services.scrapers.route_collector import CollectorSession


@pytest.mark.asyncio
async def test_walk_results_runs_discovery_on_every_page(store):
    session = CollectorSession("  Samarkand ", store=store)
    session.navigator = Mock()
    session.discovery = Mock()
    session.discovery.run_page = AsyncMock(return_value=3)
    session.walker = Mock()
    session.walker.current_page = 1
    session.walker.advance = AsyncMock(side_effect=[True, True, False])

    await session.walk_results()

    assert session.city == "samarkand"
    assert session.discovery.run_page.await_count == 3
    assert session.walker.advance.await_count == 3


@pytest.mark.asyncio
async def test_closed_session_stops_walking(store):
    session = CollectorSession("samarkand", store=store)
    session.navigator = Mock()
    session.discovery = Mock()
    session.walker = Mock()
    session.walker.advance = AsyncMock(return_value=True)

    async def run_page(page_number):
        await session.close()
        return 1

    session.discovery.run_page = run_page

    await session.walk_results()

    session.walker.advance.assert_not_awaited()
    assert session.is_closed


@pytest.mark.asyncio
async def test_close_is_idempotent_before_start(store):
    session = CollectorSession("samarkand", store=store)

    await session.close()
    await session.close()

    assert session.is_closed


@pytest.mark.asyncio
async def test_launch_failure_propagates_and_releases_playwright(monkeypatch, store):
    playwright = Mock()
    playwright.chromium.launch = AsyncMock(side_effect=PlaywrightError("Executable doesn't exist"))
    playwright.stop = AsyncMock()
    starter = Mock()
    starter.start = AsyncMock(return_value=playwright)
    monkeypatch.setattr(session_module, "async_playwright", lambda: starter)

    session = CollectorSession("samarkand", store=store)

    with pytest.raises(PlaywrightError):
        await session.collect()

    playwright.stop.assert_awaited_once()
    assert session.is_closed


@pytest.mark.asyncio
async def test_perform_search_requires_start(store):
    session = CollectorSession("samarkand", store=store)

    with pytest.raises(RuntimeError):
        await session.perform_search("Bus routes")


@pytest.mark.asyncio
async def test_final_drain_skips_page_fallback(store):
    session = CollectorSession("samarkand", store=store)
    session.correlator.fallback_provider = AsyncMock()
    session.navigator = Mock()
    session.discovery = Mock()
    session.discovery.run_page = AsyncMock(return_value=0)
    session.walker = Mock()
    session.walker.current_page = 1
    session.walker.advance = AsyncMock(return_value=False)
    providers = []
    session.correlator.drain = AsyncMock(side_effect=lambda: providers.append(session.correlator.fallback_provider))

    await session.walk_results()

    assert providers == [None]
